"""
HTTP client for the criage registry protocol (``/api/v1/``).

Every request waits on a RateLimiter permit, sends the repository's bearer
token when one is configured and decodes the ApiResponse envelope. A
response with ``success=false`` raises ApiError whatever its HTTP status.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Union
from urllib.parse import quote

import requests
from requests.exceptions import RequestException

from criage.config.settings import Repository
from criage.core.exceptions import (
    ApiError,
    AuthorizationError,
    CriageError,
    DownloadError,
    PackageNotFoundError,
    PlatformFileNotFoundError,
    ProtocolError,
    TransportError,
    VersionNotFoundError,
)
from criage.core.ratelimit import RateLimiter
from criage.registry.models import (
    ApiResponse,
    PackageEntry,
    PackageListResponse,
    ResolvedPackage,
    SearchResult,
    SearchResults,
    ServerInfo,
    Statistics,
    VersionEntry,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
DEFAULT_TIMEOUT = 60
CHUNK_SIZE = 8192


def api_url(base_url: str, path: str = "/") -> str:
    """Join a repository base URL with an API path."""
    return f"{base_url.rstrip('/')}{API_PREFIX}{path}"


def download_url(base_url: str, name: str, version: str, filename: str) -> str:
    return api_url(
        base_url,
        f"/download/{quote(name, safe='')}/{quote(version, safe='')}/"
        f"{quote(filename, safe='')}",
    )


class RegistryClient:
    """
    Client for one or more criage registries.

    Args:
        timeout: Per-request timeout in seconds
        rate_limiter: Shared limiter; a private one is created when omitted
        session: requests session (injectable for tests)

    Example:
        >>> with RegistryClient(timeout=30) as client:
        ...     entry = client.lookup_package(repo, "json-tools")
    """

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        rate_limiter: Optional[RateLimiter] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self._owns_limiter = rate_limiter is None
        self.rate_limiter = rate_limiter or RateLimiter()
        self._owns_session = session is None
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @staticmethod
    def _headers(token: str = "") -> dict:
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _send(
        self, method: str, url: str, token: str = "", **kwargs
    ) -> requests.Response:
        self.rate_limiter.wait()
        logger.debug(f"{method} {url}")
        try:
            return self.session.request(
                method, url, headers=self._headers(token), timeout=self.timeout, **kwargs
            )
        except RequestException as e:
            raise TransportError(f"request to {url} failed: {e}") from e

    def _call(
        self,
        method: str,
        url: str,
        token: str = "",
        expected_status: Iterable[int] = (200,),
        **kwargs,
    ) -> ApiResponse:
        """
        Perform a request and decode its envelope.

        Raises:
            AuthorizationError: HTTP 401
            ApiError: Envelope with success=false
            TransportError: Connection failure or unexpected status
            ProtocolError: Body is not an envelope
        """
        response = self._send(method, url, token, **kwargs)
        status = response.status_code

        if status == 401:
            raise AuthorizationError()

        try:
            envelope = ApiResponse.from_json(response.json())
        except (ValueError, ProtocolError) as e:
            if status not in expected_status:
                raise TransportError(
                    f"unexpected status {status} from {url}", status
                ) from e
            raise ProtocolError(f"invalid response from {url}: {e}") from e

        if not envelope.success:
            raise ApiError(envelope.error or envelope.message or f"HTTP {status}", status)
        if status not in expected_status:
            raise TransportError(f"unexpected status {status} from {url}", status)
        return envelope

    # ------------------------------------------------------------------
    # Package lookup and resolution
    # ------------------------------------------------------------------

    def lookup_package(self, repository: Repository, name: str) -> PackageEntry:
        """
        Fetch the package entry from one repository.

        Raises:
            PackageNotFoundError: If the repository answers with a non-200 status
        """
        url = api_url(repository.url, f"/packages/{quote(name, safe='')}")
        try:
            envelope = self._call("GET", url, repository.auth_token)
        except TransportError as e:
            if e.status_code:
                raise PackageNotFoundError(
                    name, f"not found in repository {repository.name}"
                ) from e
            raise
        return envelope.decode(PackageEntry)

    def find_in_repository(
        self,
        repository: Repository,
        name: str,
        version: str,
        arch: str,
        os_name: str,
    ) -> ResolvedPackage:
        """
        Resolve a package version and platform file in one repository.

        With an empty version the last version entry is taken.

        Raises:
            PackageNotFoundError: Package unknown to the repository
            VersionNotFoundError: No version entry matches
            PlatformFileNotFoundError: No file for (os, arch)
        """
        entry = self.lookup_package(repository, name)

        selected = entry.select_version(version)
        if selected is None:
            raise VersionNotFoundError(name, version or "latest")

        file_entry = selected.find_file(os_name, arch)
        if file_entry is None:
            raise PlatformFileNotFoundError(name, selected.version, os_name, arch)

        return ResolvedPackage(
            name=entry.name,
            version=selected.version,
            description=selected.description or entry.description,
            author=entry.author,
            dependencies=dict(selected.dependencies),
            size=file_entry.size,
            filename=file_entry.filename,
            checksum=file_entry.checksum,
            download_url=download_url(
                repository.url, entry.name, selected.version, file_entry.filename
            ),
            repository=repository.name,
        )

    def resolve(
        self,
        repositories: List[Repository],
        name: str,
        version: str,
        arch: str,
        os_name: str,
    ) -> ResolvedPackage:
        """
        Try enabled repositories in descending priority; the first success wins.

        Raises:
            PackageNotFoundError: If no repository resolves the package
        """
        candidates = sorted(
            (r for r in repositories if r.enabled),
            key=lambda r: r.priority,
            reverse=True,
        )

        last_error: Optional[CriageError] = None
        for repository in candidates:
            try:
                resolved = self.find_in_repository(
                    repository, name, version, arch, os_name
                )
            except CriageError as e:
                logger.debug(f"{name} not resolved in {repository.name}: {e}")
                last_error = e
                continue
            logger.debug(
                f"Resolved {name} {resolved.version} in repository {repository.name}"
            )
            return resolved

        reason = str(last_error) if last_error else "no enabled repositories"
        raise PackageNotFoundError(name, reason)

    # ------------------------------------------------------------------
    # Search and archives
    # ------------------------------------------------------------------

    def search(self, repository: Repository, query: str) -> List[SearchResult]:
        """Search one repository; each result is tagged with the repository name."""
        envelope = self._call(
            "GET",
            api_url(repository.url, "/search"),
            repository.auth_token,
            params={"q": query},
        )
        results = envelope.decode(SearchResults).results
        for result in results:
            result.repository = repository.name
        return results

    def download(self, url: str, destination: Union[str, Path]) -> Path:
        """
        Stream an archive to destination.

        The body is written to a sibling ``.part`` file and moved into place
        once complete, so an interrupted download never leaves a truncated
        cache file.

        Raises:
            DownloadError: Connection failure or non-200 status
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")

        self.rate_limiter.wait()
        logger.info(f"Downloading from {url}")
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                if response.status_code != 200:
                    raise DownloadError(
                        f"download failed with status {response.status_code}",
                        response.status_code,
                    )
                with open(partial, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
            os.replace(partial, destination)
        except RequestException as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"download of {url} failed: {e}") from e
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"failed to write {destination}: {e}") from e

        logger.debug(f"Download complete: {destination}")
        return destination

    def upload(
        self, registry_url: str, archive_path: Union[str, Path], token: str = ""
    ) -> ApiResponse:
        """
        Upload an archive as multipart field ``package``.

        Raises:
            AuthorizationError: HTTP 401
            ApiError: Envelope with success=false
            TransportError: Any status other than 201
        """
        archive_path = Path(archive_path)
        with open(archive_path, "rb") as f:
            return self._call(
                "POST",
                api_url(registry_url, "/upload"),
                token,
                expected_status=(201,),
                files={"package": (archive_path.name, f, "application/octet-stream")},
            )

    # ------------------------------------------------------------------
    # Repository administration
    # ------------------------------------------------------------------

    def server_info(self, registry_url: str) -> ServerInfo:
        return self._call("GET", api_url(registry_url, "/")).decode(ServerInfo)

    def stats(self, registry_url: str) -> Statistics:
        return self._call("GET", api_url(registry_url, "/stats")).decode(Statistics)

    def refresh(self, registry_url: str, token: str = "") -> ApiResponse:
        """Ask the registry to rebuild its index."""
        return self._call("POST", api_url(registry_url, "/refresh"), token)

    def list_packages(
        self, registry_url: str, page: int = 1, limit: int = 20, token: str = ""
    ) -> PackageListResponse:
        envelope = self._call(
            "GET",
            api_url(registry_url, "/packages"),
            token,
            params={"page": page, "limit": limit},
        )
        return envelope.decode(PackageListResponse)

    def get_package_version(
        self, registry_url: str, name: str, version: str, token: str = ""
    ) -> VersionEntry:
        url = api_url(
            registry_url, f"/packages/{quote(name, safe='')}/{quote(version, safe='')}"
        )
        return self._call("GET", url, token).decode(VersionEntry)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the owned session and rate limiter."""
        if self._owns_session:
            self.session.close()
        if self._owns_limiter:
            self.rate_limiter.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


__all__ = [
    "RegistryClient",
    "api_url",
    "download_url",
    "API_PREFIX",
    "DEFAULT_TIMEOUT",
]
