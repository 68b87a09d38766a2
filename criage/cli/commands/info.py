"""
Info command implementation.

Shows the record of an installed package.
"""

import logging

from criage.cli.utils import format_size, package_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """Run the info command."""
    with package_manager(args) as pm:
        info = pm.get_package_info(args.name, args.global_)

    print(f"Name:        {info.name}")
    print(f"Version:     {info.version}")
    print(f"Description: {info.description}")
    print(f"Author:      {info.author}")
    print(f"Installed:   {info.install_date:%Y-%m-%d %H:%M:%S}")
    print(f"Location:    {info.install_path}")
    print(f"Scope:       {'global' if info.global_ else 'local'}")
    print(f"Size:        {format_size(info.size)}")

    if info.dependencies:
        print("Dependencies:")
        for name, constraint in sorted(info.dependencies.items()):
            print(f"  {name}: {constraint}")
    if info.scripts:
        print("Scripts:")
        for name, command in sorted(info.scripts.items()):
            print(f"  {name}: {command}")
    return 0
