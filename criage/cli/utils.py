"""
Shared utilities for CLI commands.

Provides common functionality used across multiple CLI commands to
eliminate duplication and ensure consistent behavior.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

from criage.config.settings import ConfigManager
from criage.packages.manager import PackageManager

logger = logging.getLogger(__name__)


# ============================================================================
# Package Manager Construction
# ============================================================================


def get_config_manager(args) -> ConfigManager:
    """Config manager for the ``--config`` path (or the default location)."""
    return ConfigManager(config_path=getattr(args, "config", None))


@contextmanager
def package_manager(args) -> Iterator[PackageManager]:
    """
    Create a PackageManager from parsed arguments and close it afterwards.

    Example:
        >>> with package_manager(args) as pm:
        ...     pm.install(args.name)
    """
    pm = PackageManager(get_config_manager(args))
    try:
        yield pm
    finally:
        pm.close()


# ============================================================================
# Output Formatting
# ============================================================================


def format_size(size: int) -> str:
    """
    Format a byte count with 1024-based units.

    Example:
        >>> format_size(512)
        '512 B'
        >>> format_size(1536)
        '1.5 KB'
    """
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}B"


def print_box(text: str, width: int = 60, char: str = "="):
    """Print text between two rules."""
    print(char * width)
    print(text)
    print(char * width)


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def print_warning(message: str):
    """Print warning message to stderr."""
    print(f"WARNING: {message}", file=sys.stderr)


__all__ = [
    "get_config_manager",
    "package_manager",
    "format_size",
    "print_box",
    "print_error",
    "print_warning",
]
