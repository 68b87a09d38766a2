"""Configuration module for criage.

This module provides the client configuration (config.yaml) and the package
and build manifests (criage.yaml, build.yaml).
"""

from criage.config.manifest import (
    BUILD_MANIFEST_FILE,
    COMPRESSION_BEST,
    COMPRESSION_FAST,
    COMPRESSION_NORMAL,
    MANIFEST_FILE,
    BuildManifest,
    BuildTarget,
    CompressionConfig,
    PackageHooks,
    PackageManifest,
    load_build_config,
    load_local_config,
    save_local_config,
)
from criage.config.settings import (
    Config,
    ConfigManager,
    Repository,
    default_config_path,
)

__all__ = [
    "BUILD_MANIFEST_FILE",
    "COMPRESSION_BEST",
    "COMPRESSION_FAST",
    "COMPRESSION_NORMAL",
    "MANIFEST_FILE",
    "BuildManifest",
    "BuildTarget",
    "CompressionConfig",
    "PackageHooks",
    "PackageManifest",
    "load_build_config",
    "load_local_config",
    "save_local_config",
    "Config",
    "ConfigManager",
    "Repository",
    "default_config_path",
]
