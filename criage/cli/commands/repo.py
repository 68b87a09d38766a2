"""
Repo command implementation.

Queries and administers a repository server.
"""

import logging

from criage.cli.utils import package_manager

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the repo command.

    Args:
        args: Parsed command-line arguments with repo_command and url

    Returns:
        Exit code (0 for success)
    """
    if not getattr(args, "repo_command", None):
        print("Error: Specify a repo command (info, stats, refresh, packages)")
        print("Use 'criage repo --help' for more information")
        return 1

    with package_manager(args) as pm:
        if args.repo_command == "info":
            _show_info(pm.repository_info(args.url))
        elif args.repo_command == "stats":
            _show_stats(pm.repository_stats(args.url))
        elif args.repo_command == "refresh":
            response = pm.refresh_repository(args.url, args.token)
            print(response.message or "Repository index refreshed")
        else:
            _show_packages(
                pm.repository_packages(args.url, args.page, args.limit, args.token)
            )
    return 0


def _show_info(info) -> None:
    for key, value in info.data.items():
        print(f"{key}: {value}")


def _show_stats(stats) -> None:
    print(f"Total packages:  {stats.total_packages}")
    print(f"Total downloads: {stats.total_downloads}")
    if stats.last_updated:
        print(f"Last updated:    {stats.last_updated}")
    if stats.packages_by_license:
        print("Packages by license:")
        for license_name, count in sorted(stats.packages_by_license.items()):
            print(f"  {license_name}: {count}")
    if stats.popular_packages:
        print(f"Popular: {', '.join(stats.popular_packages)}")
    if stats.recent_packages:
        print(f"Recent:  {', '.join(stats.recent_packages)}")


def _show_packages(listing) -> None:
    print(
        f"Page {listing.page}/{listing.total_pages} "
        f"({listing.total} package(s) total)"
    )
    for entry in listing.packages:
        print(f"  {entry.name} {entry.latest_version} - {entry.description}")
