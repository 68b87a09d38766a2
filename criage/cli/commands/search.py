"""
Search command implementation.
"""

import logging

from criage.cli.utils import package_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """Run the search command."""
    with package_manager(args) as pm:
        results = pm.search(args.query)

    if not results:
        print(f"No packages found for '{args.query}'")
        return 0

    print(f"Found {len(results)} package(s):")
    for result in results:
        print(f"  {result.name} {result.version} [{result.repository}]")
        if result.description:
            print(f"      {result.description}")
        if result.author:
            print(f"      Author: {result.author}  Downloads: {result.downloads}")
    return 0
