"""
Package archive handling for criage.

Supported formats:
- .tar.zst (default, via the `zstandard` library)
- .tar.gz, .tar.xz, .tar.bz2
- .zip

Archives built by criage embed a JSON metadata document (package manifest,
build manifest, compression type, creator) as the first member,
``.criage-metadata.json``. Extraction never materializes that member.

Usage:
    from criage.core.archive import ArchiveManager

    manager = ArchiveManager()
    fmt = manager.detect_format('package.tar.zst')
    manager.extract_archive('package.tar.zst', '/tmp/criage/install_foo', fmt)
"""

import fnmatch
import io
import json
import logging
import os
import sys
import tarfile
import tempfile
import time
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Union

import zstandard as zstd

from criage.core.exceptions import (
    ArchiveError,
    InsecureArchiveError,
    UnsupportedArchiveFormat,
)
from criage.core.filesystem import validate_archive_path

logger = logging.getLogger(__name__)

METADATA_MEMBER = ".criage-metadata.json"
CREATED_BY = "criage"


class ArchiveFormat(str, Enum):
    """Archive container and compression."""

    TAR_ZST = "tar.zst"
    TAR_GZ = "tar.gz"
    TAR_XZ = "tar.xz"
    TAR_BZ2 = "tar.bz2"
    ZIP = "zip"

    @classmethod
    def parse(cls, value: Union[str, "ArchiveFormat"]) -> "ArchiveFormat":
        """
        Parse a format name, accepting common aliases.

        Raises:
            UnsupportedArchiveFormat: If the name is not recognized
        """
        if isinstance(value, ArchiveFormat):
            return value
        normalized = str(value).strip().lower().lstrip(".")
        aliases = {
            "zst": cls.TAR_ZST,
            "zstd": cls.TAR_ZST,
            "tzst": cls.TAR_ZST,
            "criage": cls.TAR_ZST,
            "tgz": cls.TAR_GZ,
            "gz": cls.TAR_GZ,
            "txz": cls.TAR_XZ,
            "xz": cls.TAR_XZ,
            "tbz2": cls.TAR_BZ2,
            "bz2": cls.TAR_BZ2,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise UnsupportedArchiveFormat(
                f"Unsupported archive format: {value}. "
                "Supported: tar.zst, tar.gz, tar.xz, tar.bz2, zip"
            ) from None


# Magic numbers checked before falling back to the file suffix
_MAGIC = [
    (b"\x28\xb5\x2f\xfd", ArchiveFormat.TAR_ZST),
    (b"\x1f\x8b", ArchiveFormat.TAR_GZ),
    (b"\xfd7zXZ\x00", ArchiveFormat.TAR_XZ),
    (b"BZh", ArchiveFormat.TAR_BZ2),
    (b"PK\x03\x04", ArchiveFormat.ZIP),
    (b"PK\x05\x06", ArchiveFormat.ZIP),
]

_SUFFIXES = [
    ((".tar.zst", ".tzst", ".criage"), ArchiveFormat.TAR_ZST),
    ((".tar.gz", ".tgz"), ArchiveFormat.TAR_GZ),
    ((".tar.xz", ".txz"), ArchiveFormat.TAR_XZ),
    ((".tar.bz2", ".tbz2"), ArchiveFormat.TAR_BZ2),
    ((".zip",), ArchiveFormat.ZIP),
]


@dataclass
class ArchiveMetadata:
    """
    Metadata embedded in archives built by criage.

    Attributes:
        package_manifest: Package manifest as a mapping
        build_manifest: Build manifest as a mapping
        compression_type: Archive format name
        created_by: Producer identifier
        created_at: ISO 8601 creation timestamp
    """

    package_manifest: Optional[dict] = None
    build_manifest: Optional[dict] = None
    compression_type: str = ArchiveFormat.TAR_ZST.value
    created_by: str = CREATED_BY
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {
            "package_manifest": self.package_manifest,
            "build_manifest": self.build_manifest,
            "compression_type": self.compression_type,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "ArchiveMetadata":
        if not isinstance(data, dict):
            raise ArchiveError("Embedded metadata is not a JSON object")
        return ArchiveMetadata(
            package_manifest=data.get("package_manifest"),
            build_manifest=data.get("build_manifest"),
            compression_type=str(data.get("compression_type") or ""),
            created_by=str(data.get("created_by") or ""),
            created_at=str(data.get("created_at") or ""),
        )


# ============================================================================
# Format Detection
# ============================================================================


def detect_format(archive_path: Union[str, Path]) -> ArchiveFormat:
    """
    Detect archive format from magic bytes, falling back to the file name.

    Args:
        archive_path: Path to the archive

    Returns:
        Detected format

    Raises:
        UnsupportedArchiveFormat: If the format cannot be determined
    """
    archive_path = Path(archive_path)

    try:
        with open(archive_path, "rb") as f:
            header = f.read(8)
    except OSError:
        header = b""

    for magic, fmt in _MAGIC:
        if header.startswith(magic):
            return fmt

    name = archive_path.name.lower()
    for suffixes, fmt in _SUFFIXES:
        if name.endswith(suffixes):
            return fmt

    raise UnsupportedArchiveFormat(f"Cannot determine archive format: {archive_path}")


# ============================================================================
# Archive Extraction
# ============================================================================


def extract_archive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    fmt: Optional[Union[str, ArchiveFormat]] = None,
    decompressor: Optional[zstd.ZstdDecompressor] = None,
) -> None:
    """
    Extract an archive to a destination directory.

    Validates all paths to prevent directory traversal attacks and skips
    the embedded metadata member.

    Args:
        archive_path: Path to the archive file
        destination: Directory to extract to
        fmt: Archive format (detected if None)
        decompressor: Reusable zstd decompression context

    Raises:
        UnsupportedArchiveFormat: If archive format is not recognized
        ArchiveError: If extraction fails
        InsecureArchiveError: If archive contains malicious paths
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ArchiveError(f"Archive not found: {archive_path}")

    fmt = ArchiveFormat.parse(fmt) if fmt is not None else detect_format(archive_path)
    destination.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Extracting {archive_path} ({fmt.value}) to {destination}")

    try:
        if fmt is ArchiveFormat.ZIP:
            _extract_zip(archive_path, destination)
        elif fmt is ArchiveFormat.TAR_ZST:
            _extract_tar_zst(archive_path, destination, decompressor)
        elif fmt is ArchiveFormat.TAR_GZ:
            _extract_tar(archive_path, destination, "r:gz")
        elif fmt is ArchiveFormat.TAR_XZ:
            _extract_tar(archive_path, destination, "r:xz")
        else:
            _extract_tar(archive_path, destination, "r:bz2")
    except (InsecureArchiveError, UnsupportedArchiveFormat):
        raise
    except Exception as e:
        raise ArchiveError(f"Failed to extract {archive_path}: {e}") from e


def _extract_tar_zst(
    archive_path: Path,
    destination: Path,
    decompressor: Optional[zstd.ZstdDecompressor] = None,
) -> None:
    """Decompress zstd to an intermediate tar, then extract it."""
    dctx = decompressor or zstd.ZstdDecompressor()
    fd, tar_name = tempfile.mkstemp(suffix=".tar", dir=destination.parent)
    tar_path = Path(tar_name)

    try:
        with open(archive_path, "rb") as ifh, open(fd, "wb") as ofh:
            dctx.copy_stream(ifh, ofh)
        _extract_tar(tar_path, destination, "r:")
    finally:
        tar_path.unlink(missing_ok=True)


def _extract_tar(archive_path: Path, destination: Path, mode: str) -> None:
    """Extract a tar archive with specified compression."""
    with tarfile.open(archive_path, mode) as tar:
        members = [m for m in tar.getmembers() if m.name != METADATA_MEMBER]

        # Validate all paths first
        for member in members:
            validate_archive_path(member.name, destination)

        # For older Python, paths were already validated above
        if sys.version_info >= (3, 12):
            tar.extractall(destination, members=members, filter="data")
        else:
            tar.extractall(destination, members=members)


def _extract_zip(archive_path: Path, destination: Path) -> None:
    """Extract a ZIP archive, restoring unix permission bits when present."""
    with zipfile.ZipFile(archive_path, "r") as zf:
        members = [m for m in zf.infolist() if m.filename != METADATA_MEMBER]

        for member in members:
            validate_archive_path(member.filename, destination)

        for member in members:
            extracted = zf.extract(member, destination)
            mode = (member.external_attr >> 16) & 0o777
            if mode and not member.is_dir():
                os.chmod(extracted, mode)


# ============================================================================
# Archive Creation
# ============================================================================


def _is_excluded(rel_path: str, exclude: Iterable[str]) -> bool:
    parts = rel_path.split("/")
    for pattern in exclude:
        pattern = pattern.rstrip("/")
        if fnmatch.fnmatch(rel_path, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


def collect_files(
    source_dir: Union[str, Path],
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
    skip: Optional[Iterable[Path]] = None,
) -> List[str]:
    """
    Collect files under source_dir selected by include/exclude patterns.

    Args:
        source_dir: Root directory
        include: Glob patterns relative to source_dir (default: everything)
        exclude: Patterns matched against the relative path and each of its
            components (e.g. ``.git``, ``*.log``, ``build/tmp``)
        skip: Absolute paths never to include (e.g. the output archive)

    Returns:
        Sorted relative POSIX paths of regular files and symlinks
    """
    source_dir = Path(source_dir).resolve()
    include = list(include or []) or ["*"]
    exclude = list(exclude or [])
    skipped = {Path(p).resolve() for p in (skip or [])}

    selected = set()
    for pattern in include:
        for match in source_dir.glob(pattern):
            candidates = [match]
            if match.is_dir() and not match.is_symlink():
                candidates = list(match.rglob("*"))
            for path in candidates:
                if path.is_dir() and not path.is_symlink():
                    continue
                if path.resolve() in skipped or path in skipped:
                    continue
                rel = path.relative_to(source_dir).as_posix()
                if rel == METADATA_MEMBER or _is_excluded(rel, exclude):
                    continue
                selected.add(rel)

    return sorted(selected)


def create_archive_with_metadata(
    source_dir: Union[str, Path],
    output_path: Union[str, Path],
    fmt: Union[str, ArchiveFormat],
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
    metadata: Optional[ArchiveMetadata] = None,
    level: int = 3,
    compressor: Optional[zstd.ZstdCompressor] = None,
) -> List[str]:
    """
    Create an archive of source_dir with embedded metadata.

    Args:
        source_dir: Directory to archive
        output_path: Archive file to create (parent directories are created)
        fmt: Archive format
        include: Include glob patterns (default: everything)
        exclude: Exclude patterns
        metadata: Metadata embedded as the first member
        level: Compression level
        compressor: Reusable zstd compression context

    Returns:
        Relative paths of the archived files

    Raises:
        ArchiveError: If the archive cannot be written
    """
    source_dir = Path(source_dir)
    output_path = Path(output_path)
    fmt = ArchiveFormat.parse(fmt)

    if not source_dir.is_dir():
        raise ArchiveError(f"Source is not a directory: {source_dir}")

    files = collect_files(source_dir, include, exclude, skip=[output_path])
    if metadata is None:
        metadata = ArchiveMetadata(compression_type=fmt.value)
    payload = json.dumps(metadata.to_dict(), indent=2).encode("utf-8")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Creating {fmt.value} archive {output_path} with {len(files)} files")

    try:
        if fmt is ArchiveFormat.ZIP:
            _write_zip(source_dir, output_path, files, payload, level)
        elif fmt is ArchiveFormat.TAR_ZST:
            cctx = compressor or zstd.ZstdCompressor(level=max(1, min(level, 22)))
            fd, tar_name = tempfile.mkstemp(suffix=".tar", dir=output_path.parent)
            os.close(fd)
            tar_path = Path(tar_name)
            try:
                _write_tar(source_dir, tar_path, files, payload, "w")
                with open(tar_path, "rb") as ifh, open(output_path, "wb") as ofh:
                    cctx.copy_stream(ifh, ofh)
            finally:
                tar_path.unlink(missing_ok=True)
        elif fmt is ArchiveFormat.TAR_XZ:
            _write_tar(
                source_dir,
                output_path,
                files,
                payload,
                "w:xz",
                preset=max(0, min(level, 9)),
            )
        else:
            mode = "w:gz" if fmt is ArchiveFormat.TAR_GZ else "w:bz2"
            _write_tar(
                source_dir,
                output_path,
                files,
                payload,
                mode,
                compresslevel=max(1, min(level, 9)),
            )
    except Exception as e:
        output_path.unlink(missing_ok=True)
        raise ArchiveError(f"Failed to create archive {output_path}: {e}") from e

    return files


def _write_tar(
    source_dir: Path,
    out_path: Path,
    files: List[str],
    payload: bytes,
    mode: str,
    **kwargs,
) -> None:
    with tarfile.open(out_path, mode, **kwargs) as tar:
        info = tarfile.TarInfo(METADATA_MEMBER)
        info.size = len(payload)
        info.mtime = int(time.time())
        info.mode = 0o644
        tar.addfile(info, io.BytesIO(payload))

        for rel in files:
            tar.add(source_dir / rel, arcname=rel, recursive=False)


def _write_zip(
    source_dir: Path, out_path: Path, files: List[str], payload: bytes, level: int
) -> None:
    with zipfile.ZipFile(
        out_path, "w", zipfile.ZIP_DEFLATED, compresslevel=max(1, min(level, 9))
    ) as zf:
        zf.writestr(METADATA_MEMBER, payload)
        for rel in files:
            zf.write(source_dir / rel, arcname=rel)


# ============================================================================
# Metadata Extraction
# ============================================================================


def extract_metadata_from_archive(
    archive_path: Union[str, Path],
    fmt: Optional[Union[str, ArchiveFormat]] = None,
    decompressor: Optional[zstd.ZstdDecompressor] = None,
) -> ArchiveMetadata:
    """
    Read the embedded metadata of an archive without extracting it.

    Raises:
        ArchiveError: If the archive cannot be read or carries no metadata
    """
    archive_path = Path(archive_path)
    if not archive_path.exists():
        raise ArchiveError(f"Archive not found: {archive_path}")

    fmt = ArchiveFormat.parse(fmt) if fmt is not None else detect_format(archive_path)

    try:
        if fmt is ArchiveFormat.ZIP:
            with zipfile.ZipFile(archive_path, "r") as zf:
                try:
                    raw = zf.read(METADATA_MEMBER)
                except KeyError:
                    raw = None
        else:
            with open(archive_path, "rb") as fh:
                if fmt is ArchiveFormat.TAR_ZST:
                    dctx = decompressor or zstd.ZstdDecompressor()
                    with dctx.stream_reader(fh) as reader:
                        raw = _read_tar_member(reader, "r|")
                else:
                    raw = _read_tar_member(fh, "r|*")
    except ArchiveError:
        raise
    except Exception as e:
        raise ArchiveError(f"Failed to read archive {archive_path}: {e}") from e

    if raw is None:
        raise ArchiveError(f"Archive has no embedded metadata: {archive_path}")

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ArchiveError(f"Invalid embedded metadata in {archive_path}: {e}") from e

    return ArchiveMetadata.from_dict(data)


def _read_tar_member(fileobj, mode: str) -> Optional[bytes]:
    with tarfile.open(fileobj=fileobj, mode=mode) as tar:
        for member in tar:
            if member.name == METADATA_MEMBER and member.isfile():
                extracted = tar.extractfile(member)
                return extracted.read() if extracted else None
    return None


# ============================================================================
# Manager
# ============================================================================


class ArchiveManager:
    """
    Format-agnostic archive service used by the package lifecycle.

    Holds reusable zstd contexts; call close() when done.
    """

    def __init__(self, compression_level: int = 3):
        self.compression_level = compression_level
        self._compressors = {}
        self._decompressor: Optional[zstd.ZstdDecompressor] = zstd.ZstdDecompressor()
        self._closed = False

    def _check_open(self):
        if self._closed:
            raise ArchiveError("Archive manager is closed")

    def _compressor(self, level: int) -> zstd.ZstdCompressor:
        level = max(1, min(level, 22))
        if level not in self._compressors:
            self._compressors[level] = zstd.ZstdCompressor(level=level)
        return self._compressors[level]

    def detect_format(self, archive_path: Union[str, Path]) -> ArchiveFormat:
        return detect_format(archive_path)

    def extract_archive(
        self,
        archive_path: Union[str, Path],
        destination: Union[str, Path],
        fmt: Optional[Union[str, ArchiveFormat]] = None,
    ) -> None:
        self._check_open()
        extract_archive(archive_path, destination, fmt, self._decompressor)

    def create_archive_with_metadata(
        self,
        source_dir: Union[str, Path],
        output_path: Union[str, Path],
        fmt: Union[str, ArchiveFormat],
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
        metadata: Optional[ArchiveMetadata] = None,
        level: Optional[int] = None,
    ) -> List[str]:
        self._check_open()
        level = self.compression_level if level is None else level
        return create_archive_with_metadata(
            source_dir,
            output_path,
            fmt,
            include,
            exclude,
            metadata,
            level,
            compressor=self._compressor(level),
        )

    def extract_metadata_from_archive(
        self,
        archive_path: Union[str, Path],
        fmt: Optional[Union[str, ArchiveFormat]] = None,
    ) -> ArchiveMetadata:
        self._check_open()
        return extract_metadata_from_archive(archive_path, fmt, self._decompressor)

    def close(self) -> None:
        self._compressors.clear()
        self._decompressor = None
        self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


__all__ = [
    "ArchiveFormat",
    "ArchiveMetadata",
    "ArchiveManager",
    "METADATA_MEMBER",
    "detect_format",
    "extract_archive",
    "collect_files",
    "create_archive_with_metadata",
    "extract_metadata_from_archive",
]
