"""
Centralized exception hierarchy for criage.

This module defines the custom exceptions used across the codebase so that
every failure raised by the client can be caught as a CriageError.
"""


# ============================================================================
# Base Exceptions
# ============================================================================


class CriageError(Exception):
    """Base exception for all criage errors."""

    pass


class ConfigError(CriageError):
    """Configuration parsing or validation error."""

    pass


# ============================================================================
# Not-found Exceptions
# ============================================================================


class NotFoundError(CriageError):
    """Base exception when something cannot be located."""

    pass


class PackageNotFoundError(NotFoundError):
    """Raised when no enabled repository knows a package."""

    def __init__(self, package_name: str, reason: str = ""):
        self.package_name = package_name
        msg = f"package not found: {package_name}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class VersionNotFoundError(NotFoundError):
    """Raised when a package exists but the requested version does not."""

    def __init__(self, package_name: str, version: str):
        self.package_name = package_name
        self.version = version
        super().__init__(f"version {version} not found for package {package_name}")


class PlatformFileNotFoundError(NotFoundError):
    """Raised when a version has no file for the requested os/arch pair."""

    def __init__(self, package_name: str, version: str, os_name: str, arch: str):
        self.package_name = package_name
        self.version = version
        self.os = os_name
        self.arch = arch
        super().__init__(
            f"file for {os_name}/{arch} not found in {package_name} {version}"
        )


class PackageNotInstalledError(NotFoundError):
    """Raised when an operation needs a package that is not installed."""

    def __init__(self, package_name: str):
        self.package_name = package_name
        super().__init__(f"package not installed: {package_name}")


class ManifestNotFoundError(NotFoundError):
    """Raised when a package manifest file is missing."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"manifest not found: {path}")


# ============================================================================
# Registry Protocol Exceptions
# ============================================================================


class RegistryError(CriageError):
    """Base exception for registry communication errors."""

    pass


class TransportError(RegistryError):
    """Connection failure, timeout or unexpected HTTP status."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


class DownloadError(TransportError):
    """Raised when a package archive cannot be downloaded."""

    pass


class ProtocolError(RegistryError):
    """Response could not be decoded into the expected shape."""

    pass


class ApiError(RegistryError):
    """Registry answered with success=false."""

    def __init__(self, error: str, status_code: int = 0):
        self.error = error
        self.status_code = status_code
        super().__init__(f"API error: {error}")


class AuthorizationError(RegistryError):
    """Registry rejected the bearer token (HTTP 401)."""

    def __init__(self):
        super().__init__("invalid authorization token")


# ============================================================================
# Filesystem and Archive Exceptions
# ============================================================================


class FilesystemError(CriageError):
    """Base exception for filesystem operations."""

    pass


class ArchiveError(FilesystemError):
    """Failed to create, read or extract an archive."""

    pass


class UnsupportedArchiveFormat(ArchiveError):
    """Archive format is not supported."""

    pass


class InsecureArchiveError(ArchiveError):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


class PackageLockTimeout(CriageError):
    """Raised when a package lock cannot be acquired within timeout."""

    pass


# ============================================================================
# Lifecycle Exceptions
# ============================================================================


class HookError(CriageError):
    """A lifecycle hook command exited with non-zero status."""

    def __init__(self, command: str, returncode: int):
        self.command = command
        self.returncode = returncode
        super().__init__(f"hook command failed: {command} (exit code {returncode})")


class BuildScriptError(CriageError):
    """The build script exited with non-zero status."""

    def __init__(self, script: str, returncode: int):
        self.script = script
        self.returncode = returncode
        super().__init__(f"build script failed: {script} (exit code {returncode})")


class DependencyCycleError(CriageError):
    """Raised when a dependency chain leads back to a package being installed."""

    def __init__(self, chain):
        self.chain = list(chain)
        super().__init__(f"dependency cycle detected: {' -> '.join(self.chain)}")


class OperationError(CriageError):
    """Base for errors wrapping a failed lifecycle operation."""

    operation = "operation"

    def __init__(self, package_name: str, reason):
        self.package_name = package_name
        self.reason = reason
        super().__init__(f"{self.operation} {package_name} failed: {reason}")


class InstallError(OperationError):
    """Install of a package failed."""

    operation = "install"


class UninstallError(OperationError):
    """Uninstall of a package failed."""

    operation = "uninstall"


class UpdateError(OperationError):
    """Update of a package failed."""

    operation = "update"


class BuildError(OperationError):
    """Build of the local package failed."""

    operation = "build"


class PublishError(OperationError):
    """Publish of the local package failed."""

    operation = "publish"
