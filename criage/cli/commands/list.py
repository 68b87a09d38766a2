"""
List command implementation.

Lists installed packages of one scope, optionally only the outdated ones.
"""

import logging

from criage.cli.utils import format_size, package_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list command.

    Args:
        args: Parsed command-line arguments with:
            - global_: List the global scope
            - outdated: Only packages with a newer version

    Returns:
        Exit code (0 for success)
    """
    scope = "global" if args.global_ else "local"

    with package_manager(args) as pm:
        packages = pm.list_packages(global_=args.global_, outdated=args.outdated)

    if not packages:
        qualifier = "outdated " if args.outdated else ""
        print(f"No {qualifier}{scope} packages installed")
        return 0

    print(f"Installed {scope} packages:")
    for info in packages:
        line = f"  {info.name} {info.version} ({format_size(info.size)})"
        if info.description:
            line += f" - {info.description}"
        print(line)
    return 0
