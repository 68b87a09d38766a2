"""
Create command implementation.

Scaffolds a new package directory in the current directory.
"""

import logging

from criage.packages.scaffold import create_package

logger = logging.getLogger(__name__)


def run(args) -> int:
    """Run the create command."""
    package_dir = create_package(
        args.name,
        template=args.template,
        author=args.author,
        description=args.description,
    )

    print(f"Package {args.name} created in {package_dir}")
    return 0
