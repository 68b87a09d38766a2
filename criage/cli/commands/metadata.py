"""
Metadata command implementation.

Shows the metadata embedded in a package archive.
"""

import logging

from criage.core.archive import ArchiveManager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """Run the metadata command."""
    with ArchiveManager() as archives:
        metadata = archives.extract_metadata_from_archive(args.archive)

    print(f"Archive: {args.archive}")
    print(f"Compression: {metadata.compression_type}")
    print(f"Created at:  {metadata.created_at}")
    print(f"Created by:  {metadata.created_by}")

    manifest = metadata.package_manifest
    if manifest:
        print()
        print("Package manifest:")
        for key in ("name", "version", "description", "author", "license"):
            if manifest.get(key):
                print(f"  {key.capitalize()}: {manifest[key]}")
        dependencies = manifest.get("dependencies") or {}
        if dependencies:
            print("  Dependencies:")
            for name, constraint in dependencies.items():
                print(f"    {name}: {constraint}")

    build = metadata.build_manifest
    if build:
        print()
        print("Build manifest:")
        print(f"  Script: {build.get('build_script', '')}")
        print(f"  Output dir: {build.get('output_dir', '')}")
        compression = build.get("compression") or {}
        print(
            f"  Compression: {compression.get('format', '')} "
            f"(level {compression.get('level', '')})"
        )
        targets = build.get("targets") or []
        if targets:
            print("  Targets:")
            for target in targets:
                print(f"    {target.get('os')}/{target.get('arch')}")
    return 0
