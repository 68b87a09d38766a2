"""Package and build manifest handling.

A package directory carries ``criage.yaml`` (the package manifest) and may
carry ``build.yaml`` (the build manifest). Both are YAML documents parsed
with PyYAML into the dataclasses below.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from criage.core.exceptions import ConfigError, ManifestNotFoundError
from criage.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

MANIFEST_FILE = "criage.yaml"
BUILD_MANIFEST_FILE = "build.yaml"

COMPRESSION_FAST = 1
COMPRESSION_NORMAL = 3
COMPRESSION_BEST = 9

DEFAULT_FORMAT = "tar.zst"


def _str_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _str_map(value) -> Dict[str, str]:
    if not value:
        return {}
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


@dataclass
class CompressionConfig:
    """Archive format and compression level."""

    format: str = DEFAULT_FORMAT
    level: int = COMPRESSION_NORMAL

    def to_dict(self) -> dict:
        return {"format": self.format, "level": self.level}

    @staticmethod
    def from_dict(data: Optional[dict]) -> "CompressionConfig":
        data = data or {}
        return CompressionConfig(
            format=str(data.get("format", DEFAULT_FORMAT)),
            level=int(data.get("level", COMPRESSION_NORMAL)),
        )


@dataclass
class PackageHooks:
    """Shell commands run at lifecycle points."""

    pre_install: List[str] = field(default_factory=list)
    post_install: List[str] = field(default_factory=list)
    pre_remove: List[str] = field(default_factory=list)
    post_remove: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pre_install": list(self.pre_install),
            "post_install": list(self.post_install),
            "pre_remove": list(self.pre_remove),
            "post_remove": list(self.post_remove),
        }

    @staticmethod
    def from_dict(data: Optional[dict]) -> "PackageHooks":
        data = data or {}
        return PackageHooks(
            pre_install=_str_list(data.get("pre_install")),
            post_install=_str_list(data.get("post_install")),
            pre_remove=_str_list(data.get("pre_remove")),
            post_remove=_str_list(data.get("post_remove")),
        )


@dataclass
class PackageManifest:
    """
    Declarative package description read from ``criage.yaml``.

    Attributes:
        name: Package name
        version: Package version
        dependencies: Runtime dependencies (name -> version range)
        dev_dependencies: Development dependencies (name -> version range)
        files: Glob patterns of files shipped by the package
        exclude: Patterns excluded when building an archive
        hooks: Lifecycle hook commands
    """

    name: str
    version: str
    description: str = ""
    author: str = ""
    license: str = ""
    homepage: str = ""
    repository: str = ""
    keywords: List[str] = field(default_factory=list)
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    scripts: Dict[str, str] = field(default_factory=dict)
    files: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    arch: List[str] = field(default_factory=list)
    os: List[str] = field(default_factory=list)
    min_version: str = ""
    hooks: PackageHooks = field(default_factory=PackageHooks)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for YAML/JSON serialization."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "license": self.license,
            "homepage": self.homepage,
            "repository": self.repository,
            "keywords": list(self.keywords),
            "dependencies": dict(self.dependencies),
            "dev_dependencies": dict(self.dev_dependencies),
            "scripts": dict(self.scripts),
            "files": list(self.files),
            "exclude": list(self.exclude),
            "arch": list(self.arch),
            "os": list(self.os),
            "min_version": self.min_version,
            "hooks": self.hooks.to_dict(),
            "metadata": dict(self.metadata),
        }

    @staticmethod
    def from_dict(data: dict) -> "PackageManifest":
        """Create from dictionary loaded from YAML."""
        if not isinstance(data, dict):
            raise ConfigError("Manifest must be a mapping")
        for key in ("name", "version"):
            if not data.get(key):
                raise ConfigError(f"Manifest is missing required field '{key}'")

        return PackageManifest(
            name=str(data["name"]),
            version=str(data["version"]),
            description=str(data.get("description") or ""),
            author=str(data.get("author") or ""),
            license=str(data.get("license") or ""),
            homepage=str(data.get("homepage") or ""),
            repository=str(data.get("repository") or ""),
            keywords=_str_list(data.get("keywords")),
            dependencies=_str_map(data.get("dependencies")),
            dev_dependencies=_str_map(data.get("dev_dependencies")),
            scripts=_str_map(data.get("scripts")),
            files=_str_list(data.get("files")),
            exclude=_str_list(data.get("exclude")),
            arch=_str_list(data.get("arch")),
            os=_str_list(data.get("os")),
            min_version=str(data.get("min_version") or ""),
            hooks=PackageHooks.from_dict(data.get("hooks")),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class BuildTarget:
    """One (os, arch) build target."""

    os: str
    arch: str

    def to_dict(self) -> dict:
        return {"os": self.os, "arch": self.arch}


@dataclass
class BuildManifest:
    """Build description read from ``build.yaml``."""

    name: str
    version: str
    build_script: str = ""
    build_env: Dict[str, str] = field(default_factory=dict)
    output_dir: str = ""
    include_files: List[str] = field(default_factory=list)
    exclude_files: List[str] = field(default_factory=list)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    targets: List[BuildTarget] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "build_script": self.build_script,
            "build_env": dict(self.build_env),
            "output_dir": self.output_dir,
            "include_files": list(self.include_files),
            "exclude_files": list(self.exclude_files),
            "compression": self.compression.to_dict(),
            "targets": [t.to_dict() for t in self.targets],
        }

    @staticmethod
    def from_dict(data: dict) -> "BuildManifest":
        if not isinstance(data, dict):
            raise ConfigError("Build manifest must be a mapping")

        targets = []
        for item in data.get("targets") or []:
            if not isinstance(item, dict) or "os" not in item or "arch" not in item:
                raise ConfigError(f"Invalid build target: {item!r}")
            targets.append(BuildTarget(os=str(item["os"]), arch=str(item["arch"])))

        return BuildManifest(
            name=str(data.get("name") or ""),
            version=str(data.get("version") or ""),
            build_script=str(data.get("build_script") or ""),
            build_env=_str_map(data.get("build_env")),
            output_dir=str(data.get("output_dir") or ""),
            include_files=_str_list(data.get("include_files")),
            exclude_files=_str_list(data.get("exclude_files")),
            compression=CompressionConfig.from_dict(data.get("compression")),
            targets=targets,
        )


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        raise ManifestNotFoundError(path)

    logger.debug(f"Loading manifest from {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e

    if data is None:
        raise ConfigError(f"Manifest file is empty: {path}")
    return data


def load_local_config(directory: Union[str, Path]) -> PackageManifest:
    """
    Load ``criage.yaml`` from a package directory.

    Args:
        directory: Package root directory

    Returns:
        Parsed package manifest

    Raises:
        ManifestNotFoundError: If the manifest file does not exist
        ConfigError: If the manifest is invalid
    """
    return PackageManifest.from_dict(_load_yaml(Path(directory) / MANIFEST_FILE))


def load_build_config(directory: Union[str, Path]) -> BuildManifest:
    """
    Load ``build.yaml`` from a package directory.

    Raises:
        ManifestNotFoundError: If the build manifest does not exist
        ConfigError: If the build manifest is invalid
    """
    return BuildManifest.from_dict(_load_yaml(Path(directory) / BUILD_MANIFEST_FILE))


def save_local_config(directory: Union[str, Path], manifest: PackageManifest) -> Path:
    """Write ``criage.yaml`` into a package directory and return its path."""
    path = Path(directory) / MANIFEST_FILE
    content = yaml.safe_dump(manifest.to_dict(), sort_keys=False, allow_unicode=True)
    atomic_write(path, content)
    logger.debug(f"Saved manifest to {path}")
    return path
