"""
Pytest configuration and shared fixtures for criage tests.
"""

import tempfile
from pathlib import Path
from typing import Dict, Generator, Optional

import pytest

from criage.config.manifest import PackageManifest, save_local_config
from criage.config.settings import Config, ConfigManager, Repository
from criage.core.archive import create_archive_with_metadata

REPO_URL = "https://repo.example.com"


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests that require network access",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --integration flag is provided."""
    if not config.getoption("--integration"):
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (requires --integration)",
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def isolated_home(temp_dir: Path, monkeypatch) -> Path:
    """Create isolated home directory for tests."""
    fake_home = temp_dir / "home"
    fake_home.mkdir()

    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setenv("USERPROFILE", str(fake_home))
    monkeypatch.delenv("CRIAGE_CONFIG", raising=False)

    return fake_home


@pytest.fixture
def workspace_config(temp_dir: Path) -> ConfigManager:
    """Config manager whose roots, cache and temp all live under temp_dir."""
    config = Config(
        global_path=str(temp_dir / "global"),
        local_path=str(temp_dir / "local"),
        cache_path=str(temp_dir / "cache"),
        temp_path=str(temp_dir / "tmp"),
        repositories=[Repository(name="main", url=REPO_URL, priority=100)],
        timeout=5,
    )
    return ConfigManager(config_path=temp_dir / "config.yaml", config=config)


def build_package_archive(
    work_dir: Path,
    name: str,
    version: str = "1.0.0",
    files: Optional[Dict[str, str]] = None,
    **manifest_fields,
) -> bytes:
    """
    Build a tar.zst package archive and return its bytes.

    Args:
        work_dir: Scratch directory
        name: Package name
        version: Package version
        files: Relative path -> text content of the packaged files
        **manifest_fields: Extra PackageManifest fields (hooks, dependencies, ...)
    """
    source = work_dir / f"src-{name}-{version}"
    source.mkdir(parents=True)
    manifest_fields.setdefault("files", ["*"])
    save_local_config(source, PackageManifest(name=name, version=version, **manifest_fields))
    for rel, content in (files or {"bin/tool": "#!/bin/sh\necho hi\n"}).items():
        path = source / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    output = work_dir / f"{name}-{version}.tar.zst"
    create_archive_with_metadata(source, output, "tar.zst", include=["*"])
    return output.read_bytes()


@pytest.fixture
def package_archive(temp_dir: Path):
    """Factory fixture returning tar.zst package bytes."""
    scratch = temp_dir / "archives"
    scratch.mkdir()

    def factory(name: str, version: str = "1.0.0", **kwargs) -> bytes:
        return build_package_archive(scratch, name, version, **kwargs)

    return factory
