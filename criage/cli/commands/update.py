"""
Update command implementation.

Updates one package, or every local package when no name is given.
"""

import logging

from criage.cli.utils import package_manager, print_error

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the update command.

    Args:
        args: Parsed command-line arguments with:
            - name: Package to update (None for all)
            - all: Update every installed package
            - version: Target version for a named package
            - global_: Scope of the named package

    Returns:
        Exit code (0 for success, 1 if any package failed)
    """
    with package_manager(args) as pm:
        if args.all or not args.name:
            return _update_all(pm)

        before = pm.get_package_info(args.name, args.global_).version
        info = pm.update(args.name, args.version, global_=args.global_)

    if info.version == before:
        print(f"Package {info.name} is up to date ({info.version})")
    else:
        print(f"Package {info.name} updated: {before} -> {info.version}")
    return 0


def _update_all(pm) -> int:
    failures = pm.update_all()
    if not failures:
        print("All packages are up to date")
        return 0

    for name, error in sorted(failures.items()):
        print_error(f"{name}: {error}")
    return 1
