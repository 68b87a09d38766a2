"""
Install command implementation.

Installs a package (and its missing dependencies) from the configured
repositories.
"""

import logging

from criage.cli.utils import package_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the install command.

    Args:
        args: Parsed command-line arguments with:
            - name: Package name
            - version: Requested version ('' for latest)
            - global_, force, dev: Install flags
            - arch, os_name: Target platform overrides

    Returns:
        Exit code (0 for success)
    """
    logger.debug(f"Arguments: {args}")

    with package_manager(args) as pm:
        info = pm.install(
            args.name,
            version=args.version,
            global_=args.global_,
            force=args.force,
            dev=args.dev,
            arch=args.arch,
            os_name=args.os_name,
        )

    print(f"Package {info.name} {info.version} installed")
    return 0
