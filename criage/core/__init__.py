"""
Core functionality for criage.

This package contains the foundational modules that other components depend on.
"""

from .archive import (
    ArchiveFormat,
    ArchiveManager,
    ArchiveMetadata,
)

from .locking import (
    LockManager,
    LockTimeout,
    ReadWriteLock,
)

from .platform import (
    PlatformInfo,
    detect_platform,
    clear_platform_cache,
)

from .ratelimit import RateLimiter

from .exceptions import (
    CriageError,
    ConfigError,
    NotFoundError,
    PackageNotFoundError,
    VersionNotFoundError,
    PlatformFileNotFoundError,
    PackageNotInstalledError,
    ManifestNotFoundError,
    RegistryError,
    TransportError,
    DownloadError,
    ProtocolError,
    ApiError,
    AuthorizationError,
    FilesystemError,
    ArchiveError,
    PackageLockTimeout,
    HookError,
    BuildScriptError,
    DependencyCycleError,
    OperationError,
    InstallError,
    UninstallError,
    UpdateError,
    BuildError,
    PublishError,
)

__all__ = [
    # Archive
    "ArchiveFormat",
    "ArchiveManager",
    "ArchiveMetadata",
    # Locking
    "LockManager",
    "LockTimeout",
    "ReadWriteLock",
    # Platform
    "PlatformInfo",
    "detect_platform",
    "clear_platform_cache",
    # Rate limiting
    "RateLimiter",
    # Exceptions
    "CriageError",
    "ConfigError",
    "NotFoundError",
    "PackageNotFoundError",
    "VersionNotFoundError",
    "PlatformFileNotFoundError",
    "PackageNotInstalledError",
    "ManifestNotFoundError",
    "RegistryError",
    "TransportError",
    "DownloadError",
    "ProtocolError",
    "ApiError",
    "AuthorizationError",
    "FilesystemError",
    "ArchiveError",
    "PackageLockTimeout",
    "HookError",
    "BuildScriptError",
    "DependencyCycleError",
    "OperationError",
    "InstallError",
    "UninstallError",
    "UpdateError",
    "BuildError",
    "PublishError",
]
