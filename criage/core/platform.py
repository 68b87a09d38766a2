"""
Platform detection for criage.

Registry file entries are keyed by (os, arch) using the naming of the
registry server: ``linux``/``darwin``/``windows`` and ``amd64``/``arm64``/
``386``/``arm``. This module maps the running interpreter's platform onto
those names.

Usage:
    from criage.core.platform import detect_platform

    info = detect_platform()
    print(info.platform_string())  # e.g. 'linux/amd64'
"""

import functools
import platform
from dataclasses import dataclass


@dataclass(frozen=True)
class PlatformInfo:
    """
    Platform identity as understood by the registry.

    Attributes:
        os: Operating system ('linux', 'darwin', 'windows', ...)
        arch: CPU architecture ('amd64', 'arm64', '386', 'arm', ...)
    """

    os: str
    arch: str

    def platform_string(self) -> str:
        """
        Get canonical platform string.

        Example:
            >>> PlatformInfo('linux', 'amd64').platform_string()
            'linux/amd64'
        """
        return f"{self.os}/{self.arch}"

    def __str__(self) -> str:
        return self.platform_string()


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform information.

    This function is cached - it only runs detection once per process.
    """
    return PlatformInfo(os=_detect_os(), arch=_detect_architecture())


def _detect_os() -> str:
    """Normalized OS name: 'linux', 'darwin', 'windows' or the raw system name."""
    system = platform.system().lower()

    if system.startswith(("cygwin", "msys", "mingw")):
        return "windows"
    return system or "unknown"


def _detect_architecture() -> str:
    """Normalized architecture: 'amd64', 'arm64', '386', 'arm' or the raw machine."""
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "amd64"
    elif machine in ("aarch64", "arm64"):
        return "arm64"
    elif machine in ("i386", "i686", "x86"):
        return "386"
    elif machine.startswith("arm"):
        return "arm"
    elif machine.startswith("riscv64"):
        return "riscv64"
    else:
        return machine


def clear_platform_cache():
    """Clear platform detection cache (used by tests)."""
    detect_platform.cache_clear()


__all__ = ["PlatformInfo", "detect_platform", "clear_platform_cache"]
