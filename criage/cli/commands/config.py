"""
Config command implementation.

Gets, sets and lists client configuration values by dotted key.
"""

import logging

import yaml

from criage.cli.utils import get_config_manager

logger = logging.getLogger(__name__)


def _format(value) -> str:
    if isinstance(value, (dict, list)):
        return yaml.safe_dump(value, sort_keys=False, default_flow_style=True).strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def run(args) -> int:
    """
    Run the config command.

    Args:
        args: Parsed command-line arguments with config_command and
            key/value for get and set

    Returns:
        Exit code (0 for success)
    """
    if not getattr(args, "config_command", None):
        print("Error: Specify a config command (set, get, list)")
        print("Use 'criage config --help' for more information")
        return 1

    manager = get_config_manager(args)

    if args.config_command == "set":
        value = manager.set_value(args.key, args.value)
        manager.save()
        print(f"{args.key} = {_format(value)}")
    elif args.config_command == "get":
        print(_format(manager.get_value(args.key)))
    else:
        for key, value in manager.list_values().items():
            print(f"{key} = {_format(value)}")
    return 0
