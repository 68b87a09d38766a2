"""
criage CLI argument parser.

This module implements the command-line interface for criage using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from criage.core.exceptions import CriageError
from criage.cli.utils import print_error

# Get version from package
try:
    from importlib.metadata import version

    __version__ = version("criage")
except Exception:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)


class CLI:
    """criage command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="criage",
            description="criage - package manager",
            epilog='Use "criage COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"criage {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ~/.config/criage/config.yaml)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_install_command(subparsers)
        self._add_uninstall_command(subparsers)
        self._add_update_command(subparsers)
        self._add_search_command(subparsers)
        self._add_list_command(subparsers)
        self._add_info_command(subparsers)
        self._add_create_command(subparsers)
        self._add_build_command(subparsers)
        self._add_publish_command(subparsers)
        self._add_config_command(subparsers)
        self._add_metadata_command(subparsers)
        self._add_repo_command(subparsers)

        return parser

    def _add_install_command(self, subparsers):
        """Add 'install' subcommand."""
        parser = subparsers.add_parser(
            "install",
            help="Install a package",
            description="Install a package and its missing dependencies",
        )
        parser.add_argument("name", help="Package name")
        parser.add_argument(
            "--global", "-g", dest="global_", action="store_true", help="Install globally"
        )
        parser.add_argument(
            "--version", metavar="VER", default="", help="Package version (default: latest)"
        )
        parser.add_argument(
            "--force", "-f", action="store_true", help="Reinstall if already installed"
        )
        parser.add_argument(
            "--dev", "-d", action="store_true", help="Also install dev dependencies"
        )
        parser.add_argument(
            "--arch", "-a", default="", help="Target architecture (default: current)"
        )
        parser.add_argument(
            "--os",
            "-o",
            dest="os_name",
            default="",
            help="Target operating system (default: current)",
        )

    def _add_uninstall_command(self, subparsers):
        """Add 'uninstall' subcommand."""
        parser = subparsers.add_parser(
            "uninstall",
            help="Remove an installed package",
            description="Remove an installed package and its record",
        )
        parser.add_argument("name", help="Package name")
        parser.add_argument(
            "--global",
            "-g",
            dest="global_",
            action="store_true",
            help="Remove from the global scope",
        )
        parser.add_argument(
            "--purge", "-p", action="store_true", help="Remove configuration files too"
        )

    def _add_update_command(self, subparsers):
        """Add 'update' subcommand."""
        parser = subparsers.add_parser(
            "update",
            help="Update packages",
            description="Update one package, or all local packages",
        )
        parser.add_argument("name", nargs="?", help="Package name (default: all)")
        parser.add_argument(
            "--version", metavar="VER", default="", help="Target version (default: latest)"
        )
        parser.add_argument(
            "--all", action="store_true", help="Update every installed package"
        )
        parser.add_argument(
            "--global",
            "-g",
            dest="global_",
            action="store_true",
            help="Package is installed globally",
        )

    def _add_search_command(self, subparsers):
        """Add 'search' subcommand."""
        parser = subparsers.add_parser(
            "search",
            help="Search repositories",
            description="Search every enabled repository",
        )
        parser.add_argument("query", help="Search query")

    def _add_list_command(self, subparsers):
        """Add 'list' subcommand."""
        parser = subparsers.add_parser(
            "list",
            help="List installed packages",
            description="List installed packages of one scope",
        )
        parser.add_argument(
            "--global",
            "-g",
            dest="global_",
            action="store_true",
            help="List global packages",
        )
        parser.add_argument(
            "--outdated",
            "-o",
            action="store_true",
            help="Only packages with a newer version available",
        )

    def _add_info_command(self, subparsers):
        """Add 'info' subcommand."""
        parser = subparsers.add_parser(
            "info",
            help="Show installed package details",
            description="Show the record of an installed package",
        )
        parser.add_argument("name", help="Package name")
        parser.add_argument(
            "--global",
            "-g",
            dest="global_",
            action="store_true",
            help="Package is installed globally",
        )

    def _add_create_command(self, subparsers):
        """Add 'create' subcommand."""
        parser = subparsers.add_parser(
            "create",
            help="Create a new package",
            description="Scaffold a package directory with criage.yaml",
        )
        parser.add_argument("name", help="Package name")
        parser.add_argument(
            "--template", "-t", default="basic", help="Package template"
        )
        parser.add_argument("--author", "-a", default="", help="Package author")
        parser.add_argument(
            "--description", "-d", default="", help="Package description"
        )

    def _add_build_command(self, subparsers):
        """Add 'build' subcommand."""
        parser = subparsers.add_parser(
            "build",
            help="Build the package in the current directory",
            description="Run the build script and create an archive with metadata",
        )
        parser.add_argument(
            "--output", "-o", metavar="PATH", help="Output archive path"
        )
        parser.add_argument(
            "--format",
            "-f",
            default="tar.zst",
            help="Archive format (tar.zst, tar.gz, tar.xz, tar.bz2, zip)",
        )
        parser.add_argument(
            "--compression",
            "-c",
            type=int,
            default=3,
            metavar="LEVEL",
            help="Compression level (default: 3)",
        )

    def _add_publish_command(self, subparsers):
        """Add 'publish' subcommand."""
        parser = subparsers.add_parser(
            "publish",
            help="Publish the package in the current directory",
            description="Build the package and upload it to a registry",
        )
        parser.add_argument(
            "--registry",
            "-r",
            metavar="URL",
            help="Registry URL (default: highest-priority repository)",
        )
        parser.add_argument("--token", "-t", default="", help="Authorization token")

    def _add_config_command(self, subparsers):
        """Add 'config' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "config",
            help="Manage configuration",
            description="Get, set and list configuration values",
        )
        config_subparsers = parser.add_subparsers(
            dest="config_command", help="Configuration commands", metavar="COMMAND"
        )

        set_parser = config_subparsers.add_parser("set", help="Set a value")
        set_parser.add_argument("key", help="Dotted key (e.g. compression.level)")
        set_parser.add_argument("value", help="New value")

        get_parser = config_subparsers.add_parser("get", help="Show a value")
        get_parser.add_argument("key", help="Dotted key")

        config_subparsers.add_parser("list", help="Show all values")

    def _add_metadata_command(self, subparsers):
        """Add 'metadata' subcommand."""
        parser = subparsers.add_parser(
            "metadata",
            help="Show archive metadata",
            description="Show the metadata embedded in a package archive",
        )
        parser.add_argument("archive", type=Path, help="Archive path")

    def _add_repo_command(self, subparsers):
        """Add 'repo' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "repo",
            help="Query a repository server",
            description="Inspect and administer a criage repository",
        )
        repo_subparsers = parser.add_subparsers(
            dest="repo_command", help="Repository commands", metavar="COMMAND"
        )

        info_parser = repo_subparsers.add_parser("info", help="Server information")
        info_parser.add_argument("url", help="Repository URL")

        stats_parser = repo_subparsers.add_parser("stats", help="Repository statistics")
        stats_parser.add_argument("url", help="Repository URL")

        refresh_parser = repo_subparsers.add_parser(
            "refresh", help="Rebuild the repository index"
        )
        refresh_parser.add_argument("url", help="Repository URL")
        refresh_parser.add_argument("--token", "-t", default="", help="Authorization token")

        packages_parser = repo_subparsers.add_parser(
            "packages", help="List repository packages"
        )
        packages_parser.add_argument("url", help="Repository URL")
        packages_parser.add_argument("--page", type=int, default=1, help="Page number")
        packages_parser.add_argument(
            "--limit", type=int, default=20, help="Packages per page"
        )
        packages_parser.add_argument("--token", "-t", default="", help="Authorization token")

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        # Configure logging
        self._configure_logging(parsed_args)

        # Check if command specified
        if not parsed_args.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except CriageError as e:
            print_error(str(e))
            return 1
        except Exception as e:
            logger.error(f"Error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        # Command module mapping
        command_map = {
            "install": "criage.cli.commands.install",
            "uninstall": "criage.cli.commands.uninstall",
            "update": "criage.cli.commands.update",
            "search": "criage.cli.commands.search",
            "list": "criage.cli.commands.list",
            "info": "criage.cli.commands.info",
            "create": "criage.cli.commands.create",
            "build": "criage.cli.commands.build",
            "publish": "criage.cli.commands.publish",
            "config": "criage.cli.commands.config",
            "metadata": "criage.cli.commands.metadata",
            "repo": "criage.cli.commands.repo",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        try:
            # Dynamic import of command module
            module = importlib.import_module(module_name)
        except ImportError as e:
            logger.error(f"Failed to load command module: {e}")
            return 1

        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
