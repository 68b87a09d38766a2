"""
Local registry of installed packages.

Each installed package carries its record at
``<install_path>/.criage/package.json``. The registry mirrors those records in
memory, keyed by package name, behind a read/write lock.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from criage.core.exceptions import CriageError, FilesystemError
from criage.core.filesystem import atomic_write
from criage.core.locking import ReadWriteLock
from criage.registry.models import PackageInfo

logger = logging.getLogger(__name__)

RECORD_DIR = ".criage"
RECORD_FILE = "package.json"

LatestVersionLookup = Callable[[str], str]


def record_path(install_path: Union[str, Path]) -> Path:
    """Location of the package record inside an install directory."""
    return Path(install_path) / RECORD_DIR / RECORD_FILE


class LocalPackageRegistry:
    """
    In-memory map of installed packages backed by per-package JSON records.

    Entries are keyed by (scope, name): the same package name may be
    installed locally and globally at the same time.

    register() persists the record before inserting the entry and
    unregister() deletes the record before dropping the entry, each under the
    write lock, so a reader never sees an entry whose record is not on disk.

    Args:
        local_root: Install root of the local scope
        global_root: Install root of the global scope
    """

    def __init__(self, local_root: Union[str, Path], global_root: Union[str, Path]):
        self.local_root = Path(local_root)
        self.global_root = Path(global_root)
        self._packages: Dict[Tuple[bool, str], PackageInfo] = {}
        self._lock = ReadWriteLock()

    def load(self) -> int:
        """
        Scan the local root, then the global root, for package records.

        A record takes its scope from the root it was found in. Missing roots
        contribute nothing; unreadable or malformed records are skipped.

        Returns:
            Number of records loaded
        """
        loaded = 0
        with self._lock.write_lock():
            for global_, root in ((False, self.local_root), (True, self.global_root)):
                if not root.is_dir():
                    logger.debug(f"Install root does not exist: {root}")
                    continue
                for entry in sorted(root.iterdir()):
                    path = record_path(entry)
                    if not entry.is_dir() or not path.is_file():
                        continue
                    try:
                        with open(path, "r", encoding="utf-8") as f:
                            info = PackageInfo.from_dict(json.load(f))
                    except (OSError, ValueError, CriageError) as e:
                        logger.debug(f"Skipping unreadable package record {path}: {e}")
                        continue
                    info.global_ = global_
                    self._packages[(global_, info.name)] = info
                    loaded += 1

        logger.debug(f"Loaded {loaded} installed package record(s)")
        return loaded

    def get(self, name: str, global_: bool = False) -> Optional[PackageInfo]:
        with self._lock.read_lock():
            return self._packages.get((global_, name))

    def put(self, info: PackageInfo) -> None:
        with self._lock.write_lock():
            self._packages[(info.global_, info.name)] = info

    def remove(self, name: str, global_: bool = False) -> None:
        with self._lock.write_lock():
            self._packages.pop((global_, name), None)

    def register(self, info: PackageInfo) -> Path:
        """
        Save the record, then insert the entry, as one write.

        Raises:
            FilesystemError: If the record cannot be written; the map is
                left unchanged
        """
        with self._lock.write_lock():
            path = self.save(info)
            self._packages[(info.global_, info.name)] = info
        return path

    def unregister(self, info: PackageInfo) -> None:
        """
        Delete the record, then drop the entry, as one write.

        Raises:
            FilesystemError: If the record cannot be deleted; the entry is kept
        """
        with self._lock.write_lock():
            self.delete_record(info)
            self._packages.pop((info.global_, info.name), None)

    def __contains__(self, name: str) -> bool:
        """True if name is installed in either scope."""
        with self._lock.read_lock():
            return (False, name) in self._packages or (True, name) in self._packages

    def __len__(self) -> int:
        with self._lock.read_lock():
            return len(self._packages)

    def save(self, info: PackageInfo) -> Path:
        """
        Persist a record as indented JSON under its install path.

        Raises:
            FilesystemError: If the record cannot be written
        """
        path = record_path(info.install_path)
        try:
            atomic_write(path, json.dumps(info.to_dict(), indent=2) + "\n")
        except OSError as e:
            raise FilesystemError(f"Failed to save package record {path}: {e}") from e
        logger.debug(f"Saved package record {path}")
        return path

    def delete_record(self, info: PackageInfo) -> None:
        """
        Remove the on-disk record. A record that is already gone counts as
        deleted.

        Raises:
            FilesystemError: If the record exists but cannot be removed
        """
        path = record_path(info.install_path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"Failed to delete package record {path}: {e}"
            ) from e

    def list(
        self,
        global_: bool = False,
        outdated: bool = False,
        latest_version: Optional[LatestVersionLookup] = None,
    ) -> List[PackageInfo]:
        """
        Installed packages of one scope, sorted by name.

        Args:
            global_: Scope to list
            outdated: Keep only packages whose latest version differs
            latest_version: Lookup used with outdated; failures exclude the
                package

        Returns:
            Matching records sorted by name
        """
        with self._lock.read_lock():
            selected = [
                info for (scope, _), info in self._packages.items() if scope == global_
            ]

        if outdated:
            if latest_version is None:
                raise ValueError("latest_version lookup is required with outdated")
            selected = [p for p in selected if self._is_outdated(p, latest_version)]

        return sorted(selected, key=lambda p: p.name)

    @staticmethod
    def _is_outdated(info: PackageInfo, latest_version: LatestVersionLookup) -> bool:
        try:
            latest = latest_version(info.name)
        except CriageError as e:
            logger.debug(f"Could not determine latest version of {info.name}: {e}")
            return False
        return bool(latest) and latest != info.version


__all__ = ["LocalPackageRegistry", "record_path", "RECORD_DIR", "RECORD_FILE"]
