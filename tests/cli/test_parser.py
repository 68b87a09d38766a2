"""
Tests for the criage command-line interface.
"""

import pytest
import yaml

from criage.cli.parser import CLI
from criage.cli.utils import format_size
from criage.config.manifest import PackageManifest, save_local_config
from criage.core.archive import ArchiveMetadata, create_archive_with_metadata


@pytest.fixture
def cli():
    return CLI()


@pytest.fixture
def config_file(temp_dir):
    """Config file keeping every criage directory under temp_dir."""
    path = temp_dir / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "global_path": str(temp_dir / "global"),
                "local_path": str(temp_dir / "local"),
                "cache_path": str(temp_dir / "cache"),
                "temp_path": str(temp_dir / "tmp"),
                "repositories": [
                    {"name": "main", "url": "https://repo.example.com", "priority": 100}
                ],
            }
        )
    )
    return path


class TestArgumentParsing:
    """Tests for argument parsing."""

    def test_install_arguments(self, cli):
        args = cli.parse_args(
            [
                "install",
                "json-tools",
                "-g",
                "--version",
                "1.2.0",
                "-f",
                "-d",
                "-a",
                "arm64",
                "-o",
                "darwin",
            ]
        )

        assert args.command == "install"
        assert args.name == "json-tools"
        assert args.global_ is True
        assert args.version == "1.2.0"
        assert args.force is True
        assert args.dev is True
        assert args.arch == "arm64"
        assert args.os_name == "darwin"

    def test_install_defaults(self, cli):
        args = cli.parse_args(["install", "json-tools"])

        assert args.version == ""
        assert args.global_ is False
        assert args.arch == ""
        assert args.os_name == ""

    def test_update_without_name(self, cli):
        args = cli.parse_args(["update", "--all"])

        assert args.name is None
        assert args.all is True

    def test_update_version(self, cli):
        args = cli.parse_args(["update", "json-tools", "--version", "1.5.0"])

        assert args.name == "json-tools"
        assert args.version == "1.5.0"

    def test_build_arguments(self, cli):
        args = cli.parse_args(["build", "-o", "out.tar.gz", "-f", "tar.gz", "-c", "9"])

        assert args.output == "out.tar.gz"
        assert args.format == "tar.gz"
        assert args.compression == 9

    def test_build_defaults(self, cli):
        args = cli.parse_args(["build"])

        assert args.output is None
        assert args.format == "tar.zst"
        assert args.compression == 3

    def test_publish_arguments(self, cli):
        args = cli.parse_args(["publish", "-r", "https://repo.example.com", "-t", "tok"])

        assert args.registry == "https://repo.example.com"
        assert args.token == "tok"

    def test_config_subcommands(self, cli):
        args = cli.parse_args(["config", "set", "compression.level", "9"])

        assert args.config_command == "set"
        assert args.key == "compression.level"
        assert args.value == "9"

    def test_repo_packages(self, cli):
        args = cli.parse_args(
            ["repo", "packages", "https://repo.example.com", "--page", "2", "--limit", "5"]
        )

        assert args.repo_command == "packages"
        assert args.url == "https://repo.example.com"
        assert args.page == 2
        assert args.limit == 5

    def test_global_options(self, cli, temp_dir):
        args = cli.parse_args(["-v", "--config", str(temp_dir / "c.yaml"), "list"])

        assert args.verbose is True
        assert args.config == temp_dir / "c.yaml"


class TestRun:
    """Tests for CLI.run dispatch and exit codes."""

    def test_no_command(self, cli, capsys):
        assert cli.run([]) == 1
        assert "usage: criage" in capsys.readouterr().out

    def test_version(self, cli, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.run(["--version"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("criage ")

    def test_config_set_and_get(self, cli, config_file, capsys):
        assert cli.run(["--config", str(config_file), "config", "set", "timeout", "30"]) == 0
        assert "timeout = 30" in capsys.readouterr().out
        assert yaml.safe_load(config_file.read_text())["timeout"] == 30

        assert cli.run(["--config", str(config_file), "config", "get", "timeout"]) == 0
        assert capsys.readouterr().out.strip() == "30"

    def test_config_unknown_key(self, cli, config_file, capsys):
        """Test errors are reported on stderr with exit code 1."""
        assert cli.run(["--config", str(config_file), "config", "get", "nope"]) == 1
        assert "ERROR: Unknown configuration key: nope" in capsys.readouterr().err

    def test_config_list(self, cli, config_file, capsys):
        assert cli.run(["--config", str(config_file), "config", "list"]) == 0

        out = capsys.readouterr().out
        assert "compression.level = 3" in out
        assert "verify_hashes = true" in out

    def test_list_empty(self, cli, config_file, capsys):
        assert cli.run(["--config", str(config_file), "list"]) == 0
        assert "No local packages installed" in capsys.readouterr().out

    def test_info_not_installed(self, cli, config_file, capsys):
        assert cli.run(["--config", str(config_file), "info", "ghost"]) == 1
        assert "package not installed: ghost" in capsys.readouterr().err

    def test_create(self, cli, temp_dir, monkeypatch, capsys):
        monkeypatch.chdir(temp_dir)

        assert cli.run(["create", "my-lib", "--author", "Dev"]) == 0

        assert (temp_dir / "my-lib" / "criage.yaml").is_file()
        assert "Package my-lib created" in capsys.readouterr().out

    def test_metadata(self, cli, temp_dir, capsys):
        source = temp_dir / "src"
        source.mkdir()
        manifest = PackageManifest(name="demo", version="0.3.0", author="Dev")
        save_local_config(source, manifest)
        archive = temp_dir / "demo.tar.zst"
        create_archive_with_metadata(
            source,
            archive,
            "tar.zst",
            metadata=ArchiveMetadata(package_manifest=manifest.to_dict()),
        )

        assert cli.run(["metadata", str(archive)]) == 0

        out = capsys.readouterr().out
        assert "Compression: tar.zst" in out
        assert "Name: demo" in out
        assert "Author: Dev" in out


class TestFormatSize:
    """Tests for format_size."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            (0, "0 B"),
            (1023, "1023 B"),
            (1024, "1.0 KB"),
            (1536, "1.5 KB"),
            (5 * 1024 * 1024, "5.0 MB"),
            (3 * 1024 ** 3, "3.0 GB"),
        ],
    )
    def test_units(self, size, expected):
        assert format_size(size) == expected
