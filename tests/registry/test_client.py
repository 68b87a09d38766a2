"""
Tests for the registry HTTP client.

HTTP is mocked with the responses library.
"""

import pytest
import requests
import responses

from criage.config.settings import Repository
from criage.core.exceptions import (
    ApiError,
    AuthorizationError,
    DownloadError,
    PackageNotFoundError,
    PlatformFileNotFoundError,
    ProtocolError,
    TransportError,
    VersionNotFoundError,
)
from criage.core.ratelimit import RateLimiter
from criage.registry.client import RegistryClient, api_url

BASE = "https://repo.example.com"


def ok(data):
    return {"success": True, "data": data}


def package_payload(name="json-tools", versions=("1.0.0", "1.1.0", "2.0.0")):
    return {
        "name": name,
        "author": "dev",
        "description": "JSON helpers",
        "versions": [
            {
                "version": v,
                "dependencies": {"libyaml": "^1.0"},
                "files": [
                    {
                        "os": "linux",
                        "arch": "amd64",
                        "filename": f"{name}-{v}-linux-amd64.tar.zst",
                        "size": 1234,
                        "checksum": "abc",
                    }
                ],
            }
            for v in versions
        ],
    }


@pytest.fixture
def client():
    limiter = RateLimiter(100)
    with RegistryClient(timeout=5, rate_limiter=limiter) as registry_client:
        yield registry_client
    limiter.close()


@pytest.fixture
def repo():
    return Repository(name="main", url=BASE, priority=10)


class TestLookup:
    """Tests for package lookup and selection."""

    @responses.activate
    def test_latest_version_selected(self, client, repo):
        """Test the last version entry is chosen when none is requested."""
        responses.add(
            responses.GET, api_url(BASE, "/packages/json-tools"), json=ok(package_payload())
        )

        resolved = client.find_in_repository(repo, "json-tools", "", "amd64", "linux")

        assert resolved.version == "2.0.0"
        assert resolved.repository == "main"
        assert resolved.dependencies == {"libyaml": "^1.0"}
        assert resolved.download_url == (
            f"{BASE}/api/v1/download/json-tools/2.0.0/json-tools-2.0.0-linux-amd64.tar.zst"
        )

    @responses.activate
    def test_exact_version(self, client, repo):
        """Test an explicit version is matched exactly."""
        responses.add(
            responses.GET, api_url(BASE, "/packages/json-tools"), json=ok(package_payload())
        )
        resolved = client.find_in_repository(repo, "json-tools", "1.1.0", "amd64", "linux")
        assert resolved.version == "1.1.0"

    @responses.activate
    def test_distinct_not_found_errors(self, client, repo):
        """Test package, version and platform misses raise distinct errors."""
        responses.add(
            responses.GET,
            api_url(BASE, "/packages/json-tools"),
            json=ok(package_payload()),
        )
        responses.add(
            responses.GET,
            api_url(BASE, "/packages/ghost"),
            json={"success": False, "error": "package not found"},
            status=404,
        )
        responses.add(responses.GET, api_url(BASE, "/packages/bare"), status=404)

        with pytest.raises(VersionNotFoundError):
            client.find_in_repository(repo, "json-tools", "9.9.9", "amd64", "linux")
        with pytest.raises(PlatformFileNotFoundError):
            client.find_in_repository(repo, "json-tools", "", "arm64", "darwin")
        with pytest.raises(ApiError, match="package not found"):
            client.find_in_repository(repo, "ghost", "", "amd64", "linux")
        with pytest.raises(PackageNotFoundError):
            client.find_in_repository(repo, "bare", "", "amd64", "linux")

    @responses.activate
    def test_bearer_token_sent(self, client):
        """Test the repository token is sent as a bearer header."""
        repo = Repository(name="private", url=BASE, auth_token="s3cret")
        responses.add(
            responses.GET, api_url(BASE, "/packages/json-tools"), json=ok(package_payload())
        )

        client.lookup_package(repo, "json-tools")

        assert responses.calls[0].request.headers["Authorization"] == "Bearer s3cret"

    @responses.activate
    def test_no_token_no_header(self, client, repo):
        """Test no Authorization header without a token."""
        responses.add(
            responses.GET, api_url(BASE, "/packages/json-tools"), json=ok(package_payload())
        )
        client.lookup_package(repo, "json-tools")
        assert "Authorization" not in responses.calls[0].request.headers


class TestResolve:
    """Tests for multi-repository resolution."""

    @responses.activate
    def test_priority_order(self, client):
        """Test repositories are tried by descending priority."""
        repos = [
            Repository("low", "https://low.example.com", priority=10),
            Repository("high", "https://high.example.com", priority=50),
            Repository("mid", "https://mid.example.com", priority=30),
        ]
        responses.add(
            responses.GET,
            api_url("https://high.example.com", "/packages/json-tools"),
            status=404,
        )
        responses.add(
            responses.GET,
            api_url("https://mid.example.com", "/packages/json-tools"),
            json=ok(package_payload()),
        )
        responses.add(
            responses.GET,
            api_url("https://low.example.com", "/packages/json-tools"),
            json=ok(package_payload()),
        )

        resolved = client.resolve(repos, "json-tools", "", "amd64", "linux")

        assert resolved.repository == "mid"
        hosts = [call.request.url.split("/")[2] for call in responses.calls]
        assert hosts == ["high.example.com", "mid.example.com"]

    @responses.activate
    def test_disabled_repositories_skipped(self, client):
        """Test disabled repositories are never contacted."""
        repos = [
            Repository("off", "https://off.example.com", priority=99, enabled=False),
            Repository("on", "https://on.example.com", priority=1),
        ]
        responses.add(
            responses.GET,
            api_url("https://on.example.com", "/packages/json-tools"),
            json=ok(package_payload()),
        )

        assert client.resolve(repos, "json-tools", "", "amd64", "linux").repository == "on"
        assert len(responses.calls) == 1

    @responses.activate
    def test_exhausted(self, client, repo):
        """Test exhausting every repository raises PackageNotFoundError."""
        responses.add(responses.GET, api_url(BASE, "/packages/ghost"), status=404)
        with pytest.raises(PackageNotFoundError, match="ghost"):
            client.resolve([repo], "ghost", "", "amd64", "linux")

    def test_no_repositories(self, client):
        """Test resolution with no enabled repositories."""
        with pytest.raises(PackageNotFoundError, match="no enabled repositories"):
            client.resolve([], "anything", "", "amd64", "linux")


class TestSearch:
    """Tests for search."""

    @responses.activate
    def test_results_tagged_with_repository(self, client, repo):
        """Test each result carries the repository name."""
        responses.add(
            responses.GET,
            api_url(BASE, "/search"),
            json=ok({"results": [{"name": "json-tools", "score": 0.9}]}),
        )

        results = client.search(repo, "json")

        assert results[0].repository == "main"
        assert "q=json" in responses.calls[0].request.url

    @responses.activate
    def test_malformed_payload(self, client, repo):
        """Test a search payload of the wrong shape raises ProtocolError."""
        responses.add(responses.GET, api_url(BASE, "/search"), json=ok({"items": []}))
        with pytest.raises(ProtocolError):
            client.search(repo, "json")


class TestEnvelopeErrors:
    """Tests for status and envelope handling."""

    @responses.activate
    def test_unauthorized(self, client):
        """Test HTTP 401 raises AuthorizationError."""
        responses.add(responses.POST, api_url(BASE, "/refresh"), status=401)
        with pytest.raises(AuthorizationError, match="invalid authorization token"):
            client.refresh(BASE, "bad")

    @responses.activate
    def test_success_false_with_200(self, client):
        """Test success=false raises ApiError even with HTTP 200."""
        responses.add(
            responses.GET,
            api_url(BASE, "/stats"),
            json={"success": False, "error": "index unavailable"},
        )
        with pytest.raises(ApiError, match="index unavailable"):
            client.stats(BASE)

    @responses.activate
    def test_non_json_error_status(self, client):
        """Test non-envelope error bodies raise TransportError with status."""
        responses.add(responses.GET, api_url(BASE, "/stats"), body="oops", status=502)
        with pytest.raises(TransportError) as exc_info:
            client.stats(BASE)
        assert exc_info.value.status_code == 502

    @responses.activate
    def test_non_json_success_status(self, client):
        """Test a 200 without an envelope raises ProtocolError."""
        responses.add(responses.GET, api_url(BASE, "/"), body="<html>")
        with pytest.raises(ProtocolError):
            client.server_info(BASE)

    @responses.activate
    def test_connection_error(self, client):
        """Test connection failures raise TransportError."""
        responses.add(
            responses.GET,
            api_url(BASE, "/"),
            body=requests.exceptions.ConnectionError("refused"),
        )
        with pytest.raises(TransportError, match="refused"):
            client.server_info(BASE)


class TestUploadDownload:
    """Tests for archive transfer."""

    @responses.activate
    def test_download_streams_to_file(self, client, tmp_path):
        """Test the archive body is written to the destination."""
        url = f"{BASE}/api/v1/download/json-tools/2.0.0/jt.tar.zst"
        responses.add(responses.GET, url, body=b"\x28\xb5\x2f\xfd" + b"x" * 20000)

        path = client.download(url, tmp_path / "cache" / "package.tar.zst")

        assert path.read_bytes().startswith(b"\x28\xb5\x2f\xfd")
        assert path.stat().st_size == 20004
        assert not (tmp_path / "cache" / "package.tar.zst.part").exists()

    @responses.activate
    def test_download_non_200(self, client, tmp_path):
        """Test non-200 downloads raise DownloadError and write nothing."""
        url = f"{BASE}/api/v1/download/json-tools/2.0.0/jt.tar.zst"
        responses.add(responses.GET, url, status=404)

        with pytest.raises(DownloadError) as exc_info:
            client.download(url, tmp_path / "package.tar.zst")

        assert exc_info.value.status_code == 404
        assert not (tmp_path / "package.tar.zst").exists()

    @responses.activate
    def test_upload_requires_201(self, client, tmp_path):
        """Test upload succeeds on 201 and fails on 200."""
        archive = tmp_path / "demo-1.0.0.tar.zst"
        archive.write_bytes(b"data")
        responses.add(
            responses.POST,
            api_url(BASE, "/upload"),
            json={"success": True, "message": "uploaded"},
            status=201,
        )
        responses.add(
            responses.POST,
            api_url(BASE, "/upload"),
            json={"success": True, "message": "uploaded"},
            status=200,
        )

        assert client.upload(BASE, archive, "tok").message == "uploaded"
        request = responses.calls[0].request
        assert request.headers["Authorization"] == "Bearer tok"
        assert b'name="package"' in request.body

        with pytest.raises(TransportError):
            client.upload(BASE, archive, "tok")

    @responses.activate
    def test_upload_unauthorized(self, client, tmp_path):
        """Test upload with a bad token raises AuthorizationError."""
        archive = tmp_path / "demo-1.0.0.tar.zst"
        archive.write_bytes(b"data")
        responses.add(responses.POST, api_url(BASE, "/upload"), status=401)
        with pytest.raises(AuthorizationError):
            client.upload(BASE, archive)


class TestRepositoryAdministration:
    """Tests for info, stats, listing and version lookup."""

    @responses.activate
    def test_list_packages_query(self, client):
        """Test paging parameters are sent."""
        responses.add(
            responses.GET,
            api_url(BASE, "/packages"),
            json=ok({"packages": [], "total": 0, "page": 2, "limit": 5, "totalPages": 0}),
        )

        listing = client.list_packages(BASE, page=2, limit=5)

        assert listing.page == 2
        assert "page=2" in responses.calls[0].request.url
        assert "limit=5" in responses.calls[0].request.url

    @responses.activate
    def test_get_package_version(self, client):
        """Test single version lookup."""
        responses.add(
            responses.GET,
            api_url(BASE, "/packages/json-tools/1.0.0"),
            json=ok({"version": "1.0.0", "downloads": 7}),
        )
        assert client.get_package_version(BASE, "json-tools", "1.0.0").downloads == 7

    @responses.activate
    def test_stats(self, client):
        """Test statistics decoding from the wire."""
        responses.add(
            responses.GET,
            api_url(BASE, "/stats"),
            json=ok({"totalPackages": 4, "packagesByLicense": {"MIT": 4}}),
        )
        stats = client.stats(BASE)
        assert stats.total_packages == 4
        assert stats.packages_by_license == {"MIT": 4}
