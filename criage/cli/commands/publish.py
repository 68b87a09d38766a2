"""
Publish command implementation.

Builds the package in the current directory and uploads it.
"""

import logging

from criage.cli.utils import package_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """Run the publish command."""
    with package_manager(args) as pm:
        registry_url, token = args.registry, args.token
        if not registry_url:
            registry_url, default_token = pm.default_publish_target()
            token = token or default_token
        response = pm.publish(registry_url, token)

    print(response.message or f"Package published to {registry_url}")
    return 0
