"""
Concurrent access control for criage.

Two kinds of locks are provided:
- ReadWriteLock: in-process lock guarding the installed-package map. Readers
  share the lock, writers are exclusive.
- LockManager: file-based locks (via the `filelock` library) serializing
  install/uninstall of the same package across criage processes.

Usage:
    from criage.core.locking import LockManager, ReadWriteLock

    rw = ReadWriteLock()
    with rw.read_lock():
        ...

    lock_manager = LockManager(Path('/tmp/criage/locks'))
    with lock_manager.package_lock('foo', global_=False, timeout=300):
        # Install or remove foo
        pass
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

from criage.core.exceptions import PackageLockTimeout

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """
    Readers-writer lock built on a condition variable.

    Any number of readers may hold the lock at once; a writer waits for all
    readers to leave and blocks new readers while it is waiting.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_lock(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_lock(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class LockManager:
    """
    Manages cross-process locks for criage resources.

    Uses file-based locking with the `filelock` library for cross-platform
    compatibility and automatic cleanup on process death.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Path):
        """
        Initialize lock manager.

        Args:
            lock_dir: Directory for lock files
        """
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def package_lock_path(self, package_name: str, global_: bool) -> Path:
        scope = "global" if global_ else "local"
        safe_name = package_name.replace("/", "-").replace("\\", "-").replace(":", "-")
        return self.lock_dir / f"{scope}-{safe_name}.lock"

    @contextmanager
    def package_lock(self, package_name: str, global_: bool = False, timeout: int = 300):
        """
        Acquire lock for one package in one scope.

        Prevents two processes from installing or removing the same package
        simultaneously.

        Args:
            package_name: Package name
            global_: Scope of the package
            timeout: Maximum wait time in seconds (default: 300 for long downloads)

        Yields:
            None

        Raises:
            PackageLockTimeout: If lock can't be acquired within timeout
        """
        lock_path = self.package_lock_path(package_name, global_)
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired package lock: {lock_path}")
                yield
                logger.debug(f"Released package lock: {lock_path}")
        except LockTimeout as e:
            logger.error(
                f"Could not acquire lock for {package_name} after {timeout}s. "
                "Another criage process may be working on this package."
            )
            raise PackageLockTimeout(
                f"Could not acquire lock for {package_name} after {timeout}s. "
                "Another criage process may be working on this package."
            ) from e


__all__ = ["ReadWriteLock", "LockManager", "LockTimeout"]
