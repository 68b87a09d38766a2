"""Registry protocol client and the local installed-package registry."""

from criage.registry.client import RegistryClient, api_url, download_url
from criage.registry.local import LocalPackageRegistry, record_path
from criage.registry.models import (
    ApiResponse,
    FileEntry,
    PackageEntry,
    PackageInfo,
    PackageListResponse,
    ResolvedPackage,
    SearchResult,
    SearchResults,
    ServerInfo,
    Statistics,
    VersionEntry,
)

__all__ = [
    "RegistryClient",
    "api_url",
    "download_url",
    "LocalPackageRegistry",
    "record_path",
    "ApiResponse",
    "FileEntry",
    "PackageEntry",
    "PackageInfo",
    "PackageListResponse",
    "ResolvedPackage",
    "SearchResult",
    "SearchResults",
    "ServerInfo",
    "Statistics",
    "VersionEntry",
]
