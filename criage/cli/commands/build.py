"""
Build command implementation.

Builds the package in the current directory into an archive with embedded
metadata.
"""

import logging

from criage.cli.utils import package_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the build command.

    Args:
        args: Parsed command-line arguments with:
            - output: Archive path (default: <name>-<version>.criage)
            - format: Archive format
            - compression: Compression level

    Returns:
        Exit code (0 for success)
    """
    with package_manager(args) as pm:
        output = pm.build(args.output, args.format, args.compression)

    print(f"Package built: {output}")
    return 0
