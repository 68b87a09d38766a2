"""
File system utilities for criage.

This module provides the file operations used by the package lifecycle:
- Safe file operations (atomic writes, safe deletion)
- Glob-driven copying of package files into an install directory
- Scoped working directories that are always removed on exit
- Archive member path validation
"""

import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, List, Union

from criage.core.exceptions import FilesystemError, InsecureArchiveError

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Args:
        path: Path to check
        parent: Parent directory

    Returns:
        True if path is under parent directory

    Example:
        >>> is_relative_to(Path("/home/user/project/file.txt"), Path("/home/user"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Prevents directory traversal attacks (e.g., paths containing '../').

    Args:
        path: Member path from archive
        destination: Extraction destination

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    This ensures the file is never in a partially-written state.
    If the write fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)

    Example:
        >>> atomic_write('package.json', '{"name": "foo"}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Temp file in same directory keeps the rename on one filesystem
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        # mkstemp creates 0600 files
        os.chmod(temp_path, 0o644)
        temp_path.replace(file_path)

    except Exception:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def safe_rmtree(
    path: Union[str, Path], require_prefix: Union[str, Path, None] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Missing paths are ignored.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree('/tmp/criage/install_foo', require_prefix='/tmp/criage')
    """
    path = Path(path).resolve()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists():
        return

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        if IS_WINDOWS:

            def handle_remove_readonly(func, path, exc):
                """Error handler for Windows read-only files."""
                if not os.access(path, os.W_OK):
                    os.chmod(path, 0o777)
                    func(path)
                else:
                    raise

            shutil.rmtree(path, onerror=handle_remove_readonly)
        else:
            shutil.rmtree(path)

    except Exception as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e


def copy_matching(
    source: Union[str, Path], destination: Union[str, Path], patterns: Iterable[str]
) -> List[Path]:
    """
    Copy entries of source matching glob patterns into destination.

    Relative paths and file modes are preserved. A matched directory is
    copied with its whole subtree.

    Args:
        source: Directory to copy from
        destination: Directory to copy into (created if missing)
        patterns: Glob patterns relative to source (e.g. ``*``, ``bin/*``,
            ``lib/**/*.so``)

    Returns:
        Relative paths of the copied entries

    Raises:
        FilesystemError: If source is missing or a copy fails

    Example:
        >>> copy_matching('/tmp/extract', '/opt/pkg', ['bin/*', 'README.md'])
    """
    source = Path(source)
    destination = Path(destination)

    if not source.is_dir():
        raise FilesystemError(f"Source is not a directory: {source}")

    destination.mkdir(parents=True, exist_ok=True)
    copied: List[Path] = []
    seen = set()

    for pattern in patterns:
        for item in sorted(source.glob(pattern)):
            rel_path = item.relative_to(source)
            if rel_path in seen:
                continue
            seen.add(rel_path)
            target = destination / rel_path

            try:
                if item.is_dir():
                    shutil.copytree(item, target, symlinks=True, dirs_exist_ok=True)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(item, target)  # copy2 preserves mode and times
            except OSError as e:
                raise FilesystemError(f"Failed to copy '{rel_path}': {e}") from e

            copied.append(rel_path)

    logger.debug(f"Copied {len(copied)} entries from {source} to {destination}")
    return copied


def directory_size(path: Union[str, Path]) -> int:
    """
    Calculate total size of a directory in bytes.

    Args:
        path: Directory path

    Returns:
        Total size in bytes (0 if the directory does not exist)
    """
    path = Path(path)
    if not path.is_dir():
        return 0

    total_size = 0

    for item in path.rglob("*"):
        if item.is_file() and not item.is_symlink():
            total_size += item.stat().st_size

    return total_size


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists (idempotent).

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


# ============================================================================
# Scoped Directories
# ============================================================================


@contextmanager
def scoped_directory(path: Union[str, Path]):
    """
    Context manager that creates a directory and always removes it on exit.

    Args:
        path: Directory to create

    Yields:
        Path to the directory

    Example:
        >>> with scoped_directory('/tmp/criage/install_foo_1700000000') as tmp:
        ...     extract_archive(archive, tmp)
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)

    try:
        yield path
    finally:
        try:
            safe_rmtree(path)
        except FilesystemError as e:
            logger.warning(f"Failed to remove temporary directory {path}: {e}")


# ============================================================================
# Public API
# ============================================================================

__all__ = [
    "is_relative_to",
    "validate_archive_path",
    "atomic_write",
    "safe_rmtree",
    "copy_matching",
    "directory_size",
    "ensure_directory",
    "scoped_directory",
]
