"""
Tests for registry wire models and the installed-package record.
"""

import json
from datetime import datetime, timezone

import pytest

from criage.core.exceptions import ProtocolError
from criage.registry.models import (
    ApiResponse,
    PackageEntry,
    PackageInfo,
    PackageListResponse,
    SearchResults,
    ServerInfo,
    Statistics,
    VersionEntry,
)


def _entry(versions):
    return {
        "name": "json-tools",
        "description": "JSON helpers",
        "author": "dev",
        "versions": versions,
        "latestVersion": versions[-1]["version"] if versions else "",
    }


def _version(version, files=None):
    return {
        "version": version,
        "files": files
        if files is not None
        else [{"os": "linux", "arch": "amd64", "filename": f"jt-{version}.tar.zst"}],
    }


class TestPackageEntry:
    """Tests for PackageEntry decoding and selection."""

    def test_decode_camel_case(self):
        """Test camelCase keys map to attributes."""
        data = _entry([_version("1.0.0")])
        data["versions"][0]["devDependencies"] = {"lint": "*"}
        entry = PackageEntry.from_payload(data)

        assert entry.latest_version == "1.0.0"
        assert entry.versions[0].dev_dependencies == {"lint": "*"}
        assert entry.versions[0].files[0].filename == "jt-1.0.0.tar.zst"

    def test_latest_is_last_entry(self):
        """Test no requested version selects the last entry."""
        entry = PackageEntry.from_payload(
            _entry([_version("1.0.0"), _version("1.1.0"), _version("2.0.0")])
        )
        assert entry.select_version().version == "2.0.0"

    def test_exact_version(self):
        """Test an exact version string is matched."""
        entry = PackageEntry.from_payload(
            _entry([_version("1.0.0"), _version("1.1.0")])
        )
        assert entry.select_version("1.0.0").version == "1.0.0"
        assert entry.select_version("3.0.0") is None

    def test_first_matching_file(self):
        """Test the first file matching os/arch is selected."""
        version = VersionEntry.from_payload(
            _version(
                "1.0.0",
                [
                    {"os": "darwin", "arch": "arm64", "filename": "mac"},
                    {"os": "linux", "arch": "amd64", "filename": "first"},
                    {"os": "linux", "arch": "amd64", "filename": "second"},
                ],
            )
        )
        assert version.find_file("linux", "amd64").filename == "first"
        assert version.find_file("windows", "amd64") is None

    def test_to_dict_round_trip(self):
        """Test wire serialization keeps camelCase keys."""
        entry = PackageEntry.from_payload(_entry([_version("1.0.0")]))
        data = entry.to_dict()
        assert "latestVersion" in data
        assert PackageEntry.from_payload(data) == entry

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            "json-tools",
            {"description": "no name"},
            {"name": "x", "versions": {"1.0.0": {}}},
            {"name": "x", "versions": [{"version": "1", "size": "big"}]},
        ],
    )
    def test_shape_mismatch(self, payload):
        """Test malformed payloads raise ProtocolError."""
        with pytest.raises(ProtocolError):
            PackageEntry.from_payload(payload)


class TestApiResponse:
    """Tests for the response envelope."""

    def test_decode_search_results(self):
        """Test search payload decoding."""
        response = ApiResponse.from_json(
            {
                "success": True,
                "data": {"results": [{"name": "a", "score": 1.5}], "total": 1},
            }
        )
        results = response.decode(SearchResults)
        assert results.results[0].score == 1.5
        assert results.total == 1

    def test_decode_statistics(self):
        """Test statistics payload decoding."""
        stats = Statistics(
            total_packages=3,
            total_downloads=10,
            packages_by_license={"MIT": 2},
            popular_packages=["a"],
        )
        response = ApiResponse.from_json({"success": True, "data": stats.to_dict()})
        assert response.decode(Statistics) == stats

    def test_decode_package_list(self):
        """Test package listing decoding."""
        response = ApiResponse.from_json(
            {
                "success": True,
                "data": {
                    "packages": [_entry([_version("1.0.0")])],
                    "total": 1,
                    "page": 1,
                    "limit": 20,
                    "totalPages": 1,
                },
            }
        )
        listing = response.decode(PackageListResponse)
        assert listing.packages[0].name == "json-tools"
        assert listing.total_pages == 1

    def test_decode_server_info(self):
        """Test server info is kept as a mapping."""
        response = ApiResponse.from_json(
            {"success": True, "data": {"name": "criage-server", "version": "1.2"}}
        )
        assert response.decode(ServerInfo).get("name") == "criage-server"

    def test_wrong_shape_for_operation(self):
        """Test decoding into the wrong payload type raises ProtocolError."""
        response = ApiResponse.from_json({"success": True, "data": {"packages": 3}})
        with pytest.raises(ProtocolError):
            response.decode(SearchResults)

    def test_missing_data(self):
        """Test decoding without data raises ProtocolError."""
        with pytest.raises(ProtocolError, match="no data"):
            ApiResponse.from_json({"success": True}).decode(PackageEntry)

    def test_missing_success_flag(self):
        """Test bodies without a success flag are not envelopes."""
        with pytest.raises(ProtocolError):
            ApiResponse.from_json({"data": {}})


class TestPackageInfo:
    """Tests for the installed-package record."""

    def test_json_round_trip(self):
        """Test the record survives JSON serialization field for field."""
        info = PackageInfo(
            name="json-tools",
            version="2.0.0",
            description="JSON helpers",
            author="dev",
            install_date=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
            install_path="/opt/criage/json-tools",
            global_=True,
            dependencies={"libyaml": "^1.0"},
            size=4096,
            files=["bin/*"],
            scripts={"test": "make test"},
        )
        restored = PackageInfo.from_dict(json.loads(json.dumps(info.to_dict())))
        assert restored == info

    def test_json_keys(self):
        """Test the on-disk record uses the documented keys."""
        data = PackageInfo(name="a", version="1").to_dict()
        assert data["global"] is False
        assert "install_date" in data
        assert "global_" not in data

    def test_zulu_timestamp(self):
        """Test RFC 3339 timestamps with Z suffix are accepted."""
        info = PackageInfo.from_dict(
            {"name": "a", "version": "1", "install_date": "2024-05-01T12:00:00Z"}
        )
        assert info.install_date == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)

    def test_missing_name(self):
        """Test records without name are rejected."""
        with pytest.raises(ProtocolError):
            PackageInfo.from_dict({"version": "1", "install_date": "2024-05-01"})
