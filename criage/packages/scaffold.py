"""Scaffolding of new package directories (``criage create``)."""

import logging
from pathlib import Path
from typing import Optional, Union

from criage.config.manifest import PackageManifest, save_local_config
from criage.core.exceptions import ConfigError, FilesystemError

logger = logging.getLogger(__name__)

TEMPLATES = ("basic",)
SKELETON_DIRS = ("src", "bin", "docs")

README_TEMPLATE = """# {name}

{description}

## Installation

```bash
criage install {name}
```
"""


def default_manifest(name: str, author: str = "", description: str = "") -> PackageManifest:
    """Manifest written for a freshly created package."""
    return PackageManifest(
        name=name,
        version="1.0.0",
        description=description,
        author=author,
        license="MIT",
        files=["*"],
        exclude=[".git", "node_modules", "*.log"],
        arch=["amd64", "arm64"],
        os=["linux", "darwin", "windows"],
        min_version="1.0.0",
    )


def create_package(
    name: str,
    template: str = "basic",
    author: str = "",
    description: str = "",
    parent_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Create a package skeleton in ``<parent_dir>/<name>``.

    Writes criage.yaml and README.md and creates src/, bin/ and docs/.
    Existing files are overwritten.

    Args:
        name: Package name (also the directory name)
        template: Skeleton template; only ``basic`` exists
        author: Manifest author
        description: Manifest and README description
        parent_dir: Where to create the package (default: current directory)

    Returns:
        Path to the package directory

    Raises:
        ConfigError: Unknown template
        FilesystemError: If the skeleton cannot be written
    """
    if template not in TEMPLATES:
        raise ConfigError(
            f"Unknown template '{template}' (available: {', '.join(TEMPLATES)})"
        )

    package_dir = Path(parent_dir or Path.cwd()) / name
    try:
        package_dir.mkdir(parents=True, exist_ok=True)
        save_local_config(package_dir, default_manifest(name, author, description))
        (package_dir / "README.md").write_text(
            README_TEMPLATE.format(name=name, description=description),
            encoding="utf-8",
        )
        for directory in SKELETON_DIRS:
            (package_dir / directory).mkdir(exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Failed to create package {name}: {e}") from e

    logger.info(f"Package {name} created in {package_dir}")
    return package_dir


__all__ = ["create_package", "default_manifest", "TEMPLATES"]
