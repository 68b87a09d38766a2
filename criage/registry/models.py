"""
Data model for the registry protocol and the installed-package records.

Registry payloads use camelCase JSON keys; every response is wrapped in the
ApiResponse envelope ``{success, message?, data?, error?}``. The ``data``
member is decoded into one of the payload types below, chosen by the calling
operation:

    Payload = PackageEntry | SearchResults | Statistics
            | PackageListResponse | VersionEntry | ServerInfo

A payload whose shape does not match the expected type raises ProtocolError
at decode time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from criage.core.exceptions import ProtocolError


def _mapping(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise ProtocolError(
            f"unexpected {what} format: expected object, got {type(data).__name__}"
        )
    return data


def _sequence(data: Any, what: str) -> list:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ProtocolError(
            f"unexpected {what} format: expected array, got {type(data).__name__}"
        )
    return data


def _int(value: Any, what: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ProtocolError(f"unexpected {what} value: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ProtocolError(f"unexpected {what} value: {value!r}") from None


def _float(value: Any, what: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ProtocolError(f"unexpected {what} value: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ProtocolError(f"unexpected {what} value: {value!r}") from None


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _str_map(value: Any, what: str) -> Dict[str, str]:
    return {str(k): _str(v) for k, v in _mapping(value or {}, what).items()}


# ============================================================================
# Registry Wire Model
# ============================================================================


@dataclass
class FileEntry:
    """A platform-specific archive of one package version."""

    os: str
    arch: str
    format: str = ""
    filename: str = ""
    size: int = 0
    checksum: str = ""

    def to_dict(self) -> dict:
        return {
            "os": self.os,
            "arch": self.arch,
            "format": self.format,
            "filename": self.filename,
            "size": self.size,
            "checksum": self.checksum,
        }

    @classmethod
    def from_payload(cls, data: Any) -> "FileEntry":
        data = _mapping(data, "file entry")
        return cls(
            os=_str(data.get("os")),
            arch=_str(data.get("arch")),
            format=_str(data.get("format")),
            filename=_str(data.get("filename")),
            size=_int(data.get("size"), "file size"),
            checksum=_str(data.get("checksum")),
        )


@dataclass
class VersionEntry:
    """One published version of a package."""

    version: str
    description: str = ""
    dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)
    files: List[FileEntry] = field(default_factory=list)
    size: int = 0
    checksum: str = ""
    uploaded: str = ""
    downloads: int = 0

    def find_file(self, os_name: str, arch: str) -> Optional[FileEntry]:
        """First file entry matching (os, arch), or None."""
        for entry in self.files:
            if entry.os == os_name and entry.arch == arch:
                return entry
        return None

    def to_dict(self) -> dict:
        data = {
            "version": self.version,
            "description": self.description,
            "files": [f.to_dict() for f in self.files],
            "size": self.size,
            "checksum": self.checksum,
            "uploaded": self.uploaded,
            "downloads": self.downloads,
        }
        if self.dependencies:
            data["dependencies"] = dict(self.dependencies)
        if self.dev_dependencies:
            data["devDependencies"] = dict(self.dev_dependencies)
        return data

    @classmethod
    def from_payload(cls, data: Any) -> "VersionEntry":
        data = _mapping(data, "version entry")
        return cls(
            version=_str(data.get("version")),
            description=_str(data.get("description")),
            dependencies=_str_map(data.get("dependencies"), "dependencies"),
            dev_dependencies=_str_map(data.get("devDependencies"), "devDependencies"),
            files=[
                FileEntry.from_payload(f) for f in _sequence(data.get("files"), "files")
            ],
            size=_int(data.get("size"), "version size"),
            checksum=_str(data.get("checksum")),
            uploaded=_str(data.get("uploaded")),
            downloads=_int(data.get("downloads"), "downloads"),
        )


@dataclass
class PackageEntry:
    """A package as described by the registry; versions are in ascending order."""

    name: str
    description: str = ""
    author: str = ""
    license: str = ""
    homepage: str = ""
    repository: str = ""
    keywords: List[str] = field(default_factory=list)
    versions: List[VersionEntry] = field(default_factory=list)
    latest_version: str = ""
    downloads: int = 0
    updated: str = ""

    def select_version(self, version: str = "") -> Optional[VersionEntry]:
        """
        Pick a version entry.

        With no version requested the last entry wins; otherwise the first
        entry whose version string matches exactly.
        """
        if not version:
            return self.versions[-1] if self.versions else None
        for entry in self.versions:
            if entry.version == version:
                return entry
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "author": self.author,
            "license": self.license,
            "homepage": self.homepage,
            "repository": self.repository,
            "keywords": list(self.keywords),
            "versions": [v.to_dict() for v in self.versions],
            "latestVersion": self.latest_version,
            "downloads": self.downloads,
            "updated": self.updated,
        }

    @classmethod
    def from_payload(cls, data: Any) -> "PackageEntry":
        data = _mapping(data, "package entry")
        if not data.get("name"):
            raise ProtocolError("unexpected package entry format: missing name")
        return cls(
            name=_str(data.get("name")),
            description=_str(data.get("description")),
            author=_str(data.get("author")),
            license=_str(data.get("license")),
            homepage=_str(data.get("homepage")),
            repository=_str(data.get("repository")),
            keywords=[_str(k) for k in _sequence(data.get("keywords"), "keywords")],
            versions=[
                VersionEntry.from_payload(v)
                for v in _sequence(data.get("versions"), "versions")
            ],
            latest_version=_str(data.get("latestVersion")),
            downloads=_int(data.get("downloads"), "downloads"),
            updated=_str(data.get("updated")),
        )


@dataclass
class SearchResult:
    """One search hit; repository is filled in by the client."""

    name: str
    version: str = ""
    description: str = ""
    author: str = ""
    downloads: int = 0
    updated: str = ""
    score: float = 0.0
    repository: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "downloads": self.downloads,
            "updated": self.updated,
            "score": self.score,
            "repository": self.repository,
        }

    @classmethod
    def from_payload(cls, data: Any) -> "SearchResult":
        data = _mapping(data, "search result")
        return cls(
            name=_str(data.get("name")),
            version=_str(data.get("version")),
            description=_str(data.get("description")),
            author=_str(data.get("author")),
            downloads=_int(data.get("downloads"), "downloads"),
            updated=_str(data.get("updated")),
            score=_float(data.get("score"), "score"),
            repository=_str(data.get("repository")),
        )


@dataclass
class SearchResults:
    """Search payload: ``{"results": [...]}``."""

    results: List[SearchResult] = field(default_factory=list)
    total: int = 0

    @classmethod
    def from_payload(cls, data: Any) -> "SearchResults":
        data = _mapping(data, "search response")
        if "results" not in data:
            raise ProtocolError("unexpected search results format: missing results")
        raw = data["results"]
        if raw is not None and not isinstance(raw, list):
            raise ProtocolError("unexpected search results format")
        results = [SearchResult.from_payload(r) for r in raw or []]
        return cls(results=results, total=_int(data.get("total", len(results)), "total"))


@dataclass
class Statistics:
    """Repository statistics."""

    total_packages: int = 0
    total_downloads: int = 0
    packages_by_license: Dict[str, int] = field(default_factory=dict)
    packages_by_author: Dict[str, int] = field(default_factory=dict)
    popular_packages: List[str] = field(default_factory=list)
    recent_packages: List[str] = field(default_factory=list)
    last_updated: str = ""

    def to_dict(self) -> dict:
        return {
            "totalPackages": self.total_packages,
            "totalDownloads": self.total_downloads,
            "packagesByLicense": dict(self.packages_by_license),
            "packagesByAuthor": dict(self.packages_by_author),
            "popularPackages": list(self.popular_packages),
            "recentPackages": list(self.recent_packages),
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_payload(cls, data: Any) -> "Statistics":
        data = _mapping(data, "statistics")
        return cls(
            total_packages=_int(data.get("totalPackages"), "totalPackages"),
            total_downloads=_int(data.get("totalDownloads"), "totalDownloads"),
            packages_by_license={
                str(k): _int(v, "packagesByLicense")
                for k, v in _mapping(
                    data.get("packagesByLicense") or {}, "packagesByLicense"
                ).items()
            },
            packages_by_author={
                str(k): _int(v, "packagesByAuthor")
                for k, v in _mapping(
                    data.get("packagesByAuthor") or {}, "packagesByAuthor"
                ).items()
            },
            popular_packages=[
                _str(p) for p in _sequence(data.get("popularPackages"), "popularPackages")
            ],
            recent_packages=[
                _str(p) for p in _sequence(data.get("recentPackages"), "recentPackages")
            ],
            last_updated=_str(data.get("lastUpdated")),
        )


@dataclass
class PackageListResponse:
    """One page of the repository package listing."""

    packages: List[PackageEntry] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 0
    total_pages: int = 0

    @classmethod
    def from_payload(cls, data: Any) -> "PackageListResponse":
        data = _mapping(data, "package list")
        return cls(
            packages=[
                PackageEntry.from_payload(p)
                for p in _sequence(data.get("packages"), "packages")
            ],
            total=_int(data.get("total"), "total"),
            page=_int(data.get("page"), "page"),
            limit=_int(data.get("limit"), "limit"),
            total_pages=_int(data.get("totalPages"), "totalPages"),
        )


@dataclass
class ServerInfo:
    """Free-form server description returned by ``GET /api/v1/``."""

    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @classmethod
    def from_payload(cls, data: Any) -> "ServerInfo":
        return cls(data=dict(_mapping(data, "server info")))


Payload = Union[
    PackageEntry,
    SearchResults,
    Statistics,
    PackageListResponse,
    VersionEntry,
    ServerInfo,
]

P = TypeVar(
    "P",
    PackageEntry,
    SearchResults,
    Statistics,
    PackageListResponse,
    VersionEntry,
    ServerInfo,
)


@dataclass
class ApiResponse:
    """Registry response envelope."""

    success: bool
    message: str = ""
    data: Any = None
    error: str = ""

    @classmethod
    def from_json(cls, body: Any) -> "ApiResponse":
        body = _mapping(body, "API response")
        if not isinstance(body.get("success"), bool):
            raise ProtocolError("unexpected API response format: missing success flag")
        return cls(
            success=body["success"],
            message=_str(body.get("message")),
            data=body.get("data"),
            error=_str(body.get("error")),
        )

    def decode(self, payload_type: Type[P]) -> P:
        """
        Decode the data member into the expected payload type.

        Raises:
            ProtocolError: If data is missing or has the wrong shape
        """
        if self.data is None:
            raise ProtocolError(
                f"API response has no data (expected {payload_type.__name__})"
            )
        return payload_type.from_payload(self.data)


@dataclass
class ResolvedPackage:
    """Outcome of resolving a package for one platform in one repository."""

    name: str
    version: str
    description: str
    author: str
    dependencies: Dict[str, str]
    size: int
    filename: str
    checksum: str
    download_url: str
    repository: str


# ============================================================================
# Installed Package Record
# ============================================================================


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = _str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ProtocolError(f"invalid install_date: {value!r}") from None


@dataclass
class PackageInfo:
    """
    Record of an installed package, persisted as
    ``<install_path>/.criage/package.json``.

    Attributes:
        name: Package name (identity key within a scope)
        version: Installed version
        install_date: Time the install completed
        install_path: Directory holding the package files
        global_: True for the global scope (JSON key ``global``)
        dependencies: Dependency name -> version range
        size: Installed size in bytes
        files: Include globs the package was installed with
        scripts: Named scripts from the manifest
    """

    name: str
    version: str
    description: str = ""
    author: str = ""
    install_date: datetime = field(default_factory=lambda: datetime.now().astimezone())
    install_path: str = ""
    global_: bool = False
    dependencies: Dict[str, str] = field(default_factory=dict)
    size: int = 0
    files: List[str] = field(default_factory=list)
    scripts: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "install_date": self.install_date.isoformat(),
            "install_path": self.install_path,
            "global": self.global_,
            "dependencies": dict(self.dependencies),
            "size": self.size,
            "files": list(self.files),
            "scripts": dict(self.scripts),
        }

    @staticmethod
    def from_dict(data: dict) -> "PackageInfo":
        """
        Create from dictionary loaded from JSON.

        Raises:
            ProtocolError: If required fields are missing or malformed
        """
        data = _mapping(data, "package record")
        if not data.get("name") or not data.get("version"):
            raise ProtocolError("package record is missing name or version")
        return PackageInfo(
            name=_str(data["name"]),
            version=_str(data["version"]),
            description=_str(data.get("description")),
            author=_str(data.get("author")),
            install_date=_parse_datetime(data.get("install_date")),
            install_path=_str(data.get("install_path")),
            global_=bool(data.get("global", False)),
            dependencies=_str_map(data.get("dependencies"), "dependencies"),
            size=_int(data.get("size"), "size"),
            files=[_str(f) for f in _sequence(data.get("files"), "files")],
            scripts=_str_map(data.get("scripts"), "scripts"),
        )
