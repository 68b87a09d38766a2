"""
Uninstall command implementation.
"""

import logging

from criage.cli.utils import package_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """Run the uninstall command."""
    with package_manager(args) as pm:
        pm.uninstall(args.name, global_=args.global_, purge=args.purge)

    print(f"Package {args.name} uninstalled")
    return 0
