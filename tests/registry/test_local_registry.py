"""
Tests for the local installed-package registry.
"""

import json
import threading

import pytest

from criage.core.exceptions import RegistryError
from criage.registry.local import LocalPackageRegistry, record_path
from criage.registry.models import PackageInfo


@pytest.fixture
def roots(temp_dir):
    local_root = temp_dir / "local"
    global_root = temp_dir / "global"
    local_root.mkdir()
    global_root.mkdir()
    return local_root, global_root


@pytest.fixture
def registry(roots):
    return LocalPackageRegistry(*roots)


def make_info(root, name, version="1.0.0", global_=False):
    return PackageInfo(
        name=name,
        version=version,
        install_path=str(root / name),
        global_=global_,
    )


class TestPersistence:
    """Tests for record save/load/delete."""

    def test_save_writes_indented_json(self, registry, roots):
        """Test the record lands under .criage/package.json."""
        info = make_info(roots[0], "json-tools")

        path = registry.save(info)

        assert path == record_path(roots[0] / "json-tools")
        text = path.read_text(encoding="utf-8")
        assert text.endswith("\n")
        assert '\n  "name": "json-tools"' in text
        assert json.loads(text)["global"] is False

    def test_load_both_scopes(self, registry, roots):
        """Test records from both install roots are loaded."""
        registry.save(make_info(roots[0], "alpha"))
        registry.save(make_info(roots[1], "beta", global_=True))

        assert registry.load() == 2
        assert registry.get("alpha").global_ is False
        assert registry.get("beta", global_=True).global_ is True
        assert registry.get("beta") is None
        assert len(registry) == 2

    def test_load_skips_bad_records(self, registry, roots):
        """Test malformed records and stray files are ignored."""
        registry.save(make_info(roots[0], "good"))
        broken = record_path(roots[0] / "broken")
        broken.parent.mkdir(parents=True)
        broken.write_text("{not json", encoding="utf-8")
        nameless = record_path(roots[0] / "nameless")
        nameless.parent.mkdir(parents=True)
        nameless.write_text(json.dumps({"version": "1.0.0"}), encoding="utf-8")
        (roots[0] / "stray.txt").write_text("x", encoding="utf-8")
        (roots[0] / "no-record").mkdir()

        assert registry.load() == 1
        assert "good" in registry
        assert "broken" not in registry

    def test_load_missing_roots(self, temp_dir):
        """Test missing install roots load nothing."""
        registry = LocalPackageRegistry(temp_dir / "nope", temp_dir / "nada")
        assert registry.load() == 0

    def test_delete_record(self, registry, roots):
        """Test deleting a record, twice."""
        info = make_info(roots[0], "alpha")
        path = registry.save(info)

        registry.delete_record(info)
        registry.delete_record(info)

        assert not path.exists()

    def test_round_trip_preserves_fields(self, registry, roots):
        """Test a saved record loads back equal."""
        info = make_info(roots[0], "alpha")
        info.dependencies = {"libyaml": "^1.0"}
        info.size = 42
        registry.save(info)

        registry.load()

        assert registry.get("alpha") == info


class TestMemory:
    """Tests for the in-memory map."""

    def test_put_get_remove(self, registry, roots):
        info = make_info(roots[0], "alpha")
        registry.put(info)
        assert registry.get("alpha") is info

        registry.remove("alpha")
        registry.remove("alpha")
        assert registry.get("alpha") is None
        assert "alpha" not in registry

    def test_same_name_in_both_scopes(self, registry, roots):
        """Test a name installed locally and globally keeps two entries."""
        registry.put(make_info(roots[0], "alpha", "1.0.0"))
        registry.put(make_info(roots[1], "alpha", "2.0.0", global_=True))

        assert registry.get("alpha").version == "1.0.0"
        assert registry.get("alpha", global_=True).version == "2.0.0"

        registry.remove("alpha", global_=True)

        assert registry.get("alpha").version == "1.0.0"
        assert registry.get("alpha", global_=True) is None

    def test_load_keeps_scopes_apart(self, registry, roots):
        """Test reloading does not let the global record shadow the local one."""
        registry.save(make_info(roots[0], "alpha", "1.0.0"))
        registry.save(make_info(roots[1], "alpha", "2.0.0", global_=True))

        assert registry.load() == 2
        assert [p.version for p in registry.list()] == ["1.0.0"]
        assert [p.version for p in registry.list(global_=True)] == ["2.0.0"]

    def test_scope_follows_root(self, registry, roots):
        """Test a record found under the global root is global."""
        info = make_info(roots[1], "beta")
        registry.save(info)

        registry.load()

        assert registry.get("beta", global_=True) is not None
        assert registry.get("beta") is None

    def test_register_unregister(self, registry, roots):
        info = make_info(roots[0], "alpha")

        path = registry.register(info)

        assert path.is_file()
        assert registry.get("alpha") is info

        registry.unregister(info)

        assert not path.exists()
        assert registry.get("alpha") is None

    def test_readers_never_see_missing_records(self, registry, roots):
        """Test concurrent readers only observe entries whose record exists."""
        infos = [make_info(roots[0], f"pkg{i}") for i in range(4)]
        done = threading.Event()
        violations = []

        def writer():
            try:
                for _ in range(50):
                    for info in infos:
                        registry.register(info)
                    for info in infos:
                        registry.unregister(info)
            finally:
                done.set()

        def reader():
            while not done.is_set():
                with registry._lock.read_lock():
                    for info in registry._packages.values():
                        if not record_path(info.install_path).exists():
                            violations.append(info.name)

        threads = [threading.Thread(target=reader) for _ in range(3)]
        threads.append(threading.Thread(target=writer))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert done.is_set()
        assert violations == []
        assert len(registry) == 0


class TestList:
    """Tests for list filtering."""

    def test_scope_filter_and_sort(self, registry, roots):
        """Test list returns one scope sorted by name."""
        registry.put(make_info(roots[0], "zeta"))
        registry.put(make_info(roots[0], "alpha"))
        registry.put(make_info(roots[1], "mid", global_=True))

        assert [p.name for p in registry.list()] == ["alpha", "zeta"]
        assert [p.name for p in registry.list(global_=True)] == ["mid"]

    def test_outdated(self, registry, roots):
        """Test only packages with a differing latest version are kept."""
        registry.put(make_info(roots[0], "current", "2.0.0"))
        registry.put(make_info(roots[0], "stale", "1.0.0"))
        registry.put(make_info(roots[0], "unknown", "1.0.0"))

        def latest(name):
            if name == "unknown":
                raise RegistryError("unreachable")
            return "2.0.0"

        outdated = registry.list(outdated=True, latest_version=latest)

        assert [p.name for p in outdated] == ["stale"]

    def test_outdated_requires_lookup(self, registry):
        with pytest.raises(ValueError):
            registry.list(outdated=True)
