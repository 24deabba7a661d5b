"""Zip archive safety extractor.

Unpacks an uploaded zip into a fresh scratch directory under strict
caps.  Every entry in the central directory is checked against the
limits *before* the first byte is written, so an archive that breaches
any cap leaves nothing behind on disk:

- entry count (``max_entries``)
- cumulative decompressed size (``max_total_bytes``)
- per-entry ``decompressed / compressed`` ratio (``max_compression_ratio``)

Entries are written under their base name only, which strips ``..``
segments and absolute paths.  Two entries sharing a base name (compared
case-insensitively) are rejected up front rather than overwriting each
other.  Directory entries are skipped.  Entries whose data turns out to
be corrupt or unreadable are reported as an invalid archive.  This
module knows nothing about shapefiles.
"""

from __future__ import annotations

import logging
import math
import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath

from geo_parser.core.config import ArchiveSafetyLimits
from geo_parser.core.constants import EXTRACTION_PREFIX
from geo_parser.core.exceptions import ArchiveSafetyError

logger = logging.getLogger("geo_parser.parsers.archive")

_COPY_CHUNK_BYTES = 1024 * 1024

#: Errors zipfile raises while decoding an entry (bad CRC, truncated or
#: corrupt deflate stream, encrypted or unsupported compression).
_ENTRY_READ_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError)


def extract_archive(
    archive_path: Path | str,
    limits: ArchiveSafetyLimits | None = None,
    *,
    parent: Path | str | None = None,
) -> Path:
    """Safely extract *archive_path* into a new directory and return it.

    Args:
        archive_path: Path to the zip file.
        limits: Extraction caps (documented defaults when ``None``).
        parent: Directory in which to create the extraction directory
            (system temp dir when ``None``).

    Raises:
        ArchiveSafetyError: If the file is not a zip archive or any cap
            is exceeded.  The extraction directory is removed first.
    """
    limits = limits or ArchiveSafetyLimits()
    archive_path = Path(archive_path)
    target = Path(tempfile.mkdtemp(prefix=EXTRACTION_PREFIX, dir=parent))

    logger.info("Extracting zip archive | archive=%s | target=%s", archive_path.name, target)

    try:
        try:
            archive = zipfile.ZipFile(archive_path)
        except zipfile.BadZipFile as exc:
            msg = f"Invalid zip archive: {exc}"
            raise ArchiveSafetyError(msg, code="ARCHIVE_INVALID") from exc

        with archive:
            entries = archive.infolist()
            check_limits(entries, limits)
            written = 0
            for info in entries:
                try:
                    if _write_entry(archive, info, target):
                        written += 1
                except _ENTRY_READ_ERRORS as exc:
                    logger.warning(
                        "Unreadable zip entry | archive=%s | entry=%s | error=%s",
                        archive_path.name,
                        info.filename,
                        exc,
                    )
                    msg = f"Invalid zip archive: {exc}"
                    raise ArchiveSafetyError(msg, code="ARCHIVE_INVALID") from exc
    except BaseException:
        remove_directory(target)
        raise

    logger.info(
        "Extracted zip archive | archive=%s | entries=%d | files=%d",
        archive_path.name,
        len(entries),
        written,
    )
    return target


def check_limits(entries: list[zipfile.ZipInfo], limits: ArchiveSafetyLimits) -> None:
    """Walk *entries* in order and raise at the first breached cap.

    Raises:
        ArchiveSafetyError: With code ``ARCHIVE_TOO_MANY_ENTRIES``,
            ``ARCHIVE_TOO_LARGE``, ``ARCHIVE_COMPRESSION_RATIO_EXCEEDED``
            or ``ARCHIVE_DUPLICATE_ENTRY``.
    """
    total_bytes = 0
    seen: dict[str, str] = {}
    for count, info in enumerate(entries, start=1):
        if count > limits.max_entries:
            msg = f"Reached max number of files ({limits.max_entries})"
            raise ArchiveSafetyError(msg, code="ARCHIVE_TOO_MANY_ENTRIES")

        total_bytes += info.file_size
        if total_bytes > limits.max_total_bytes:
            msg = f"Reached max size ({limits.max_total_bytes} bytes)"
            raise ArchiveSafetyError(msg, code="ARCHIVE_TOO_LARGE")

        ratio = compression_ratio(info)
        if ratio > limits.max_compression_ratio:
            logger.warning(
                "Rejecting zip entry | entry=%s | size=%d | compressed=%d | ratio=%.1f | max=%.1f",
                info.filename,
                info.file_size,
                info.compress_size,
                ratio,
                limits.max_compression_ratio,
            )
            msg = f"Reached max compression ratio ({limits.max_compression_ratio})"
            raise ArchiveSafetyError(msg, code="ARCHIVE_COMPRESSION_RATIO_EXCEEDED")

        name = entry_name(info)
        if name is None:
            continue
        key = name.lower()
        if key in seen:
            logger.warning(
                "Rejecting duplicate zip entry | entry=%s | first=%s | name=%s",
                info.filename,
                seen[key],
                name,
            )
            msg = f"Duplicate file name in zip archive: {name}"
            raise ArchiveSafetyError(msg, code="ARCHIVE_DUPLICATE_ENTRY")
        seen[key] = info.filename


def entry_name(info: zipfile.ZipInfo) -> str | None:
    """Return the base name *info* is written under, or ``None`` if skipped."""
    if info.is_dir():
        return None
    name = PurePosixPath(info.filename.replace("\\", "/")).name
    if name in ("", ".", ".."):
        return None
    return name


def compression_ratio(info: zipfile.ZipInfo) -> float:
    """Return ``decompressed / compressed`` for one entry.

    Empty entries score 0; a non-empty entry claiming zero compressed
    bytes scores infinity.
    """
    if info.compress_size > 0:
        return info.file_size / info.compress_size
    return math.inf if info.file_size > 0 else 0.0


def remove_directory(path: Path) -> None:
    """Recursively delete *path*, logging failures instead of raising."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to clean up directory | path=%s | error=%s", path, exc)
    else:
        logger.debug("Cleaned up directory | path=%s", path)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _write_entry(archive: zipfile.ZipFile, info: zipfile.ZipInfo, target: Path) -> bool:
    """Write one file entry under its base name; return False if skipped."""
    name = entry_name(info)
    if name is None:
        if not info.is_dir():
            logger.warning("Skipping zip entry with no usable name | entry=%r", info.filename)
        return False

    destination = target / name
    written = 0
    with archive.open(info) as source, destination.open("wb") as sink:
        while True:
            chunk = source.read(_COPY_CHUNK_BYTES)
            if not chunk:
                break
            written += len(chunk)
            # zipfile already stops at the declared size; this guards the invariant.
            if written > info.file_size:
                msg = f"Zip entry {info.filename!r} expands beyond its declared size"
                raise ArchiveSafetyError(msg, code="ARCHIVE_TOO_LARGE")
            sink.write(chunk)
    return True
