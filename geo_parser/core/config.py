"""Extraction configuration loaded from environment variables.

All values have defaults matching the documented limits; deployment
settings override them through ``GEO_PARSER_*`` environment variables.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any numeric
    value is out of its valid range, so bad configuration is caught at
    startup rather than on the first upload.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from geo_parser.core.constants import (
    DEFAULT_ARCHIVE_MAX_COMPRESSION_RATIO,
    DEFAULT_ARCHIVE_MAX_ENTRIES,
    DEFAULT_ARCHIVE_MAX_TOTAL_BYTES,
    DEFAULT_MAX_UPLOAD_BYTES,
    DEFAULT_MEMORY_LIMIT_BYTES,
    DEFAULT_PROCESSING_TIMEOUT_S,
    MAX_PROJECTION_FILE_SIZE_BYTES,
)
from geo_parser.core.exceptions import InternalError


class ConfigValidationError(InternalError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class ArchiveSafetyLimits:
    """Caps applied while unpacking an uploaded zip archive.

    Attributes:
        max_entries: Maximum number of entries (files and directories).
        max_total_bytes: Maximum cumulative decompressed size.
        max_compression_ratio: Maximum ``decompressed / compressed`` ratio
            for any single entry.
    """

    max_entries: int = DEFAULT_ARCHIVE_MAX_ENTRIES
    max_total_bytes: int = DEFAULT_ARCHIVE_MAX_TOTAL_BYTES
    max_compression_ratio: float = DEFAULT_ARCHIVE_MAX_COMPRESSION_RATIO


@dataclass(frozen=True, slots=True)
class ParserSettings:
    """The subset of configuration the parse worker needs.

    Kept separate from ``ExtractionConfig`` so it can be pickled into
    the worker process without dragging request-level settings along.
    """

    archive_limits: ArchiveSafetyLimits = ArchiveSafetyLimits()
    max_projection_file_bytes: int = MAX_PROJECTION_FILE_SIZE_BYTES


@dataclass(frozen=True, slots=True)
class ExtractionConfig:
    """Immutable extraction configuration.

    Loaded once at startup and shared read-only by concurrent requests.

    Attributes:
        max_upload_bytes: Largest source object accepted (bytes).
        processing_timeout_s: Deadline for the parse worker (seconds).
        memory_limit_bytes: Largest serialised GeoJSON accepted (bytes).
        archive_max_entries: Zip entry count cap.
        archive_max_total_bytes: Zip cumulative decompressed size cap.
        archive_max_compression_ratio: Zip per-entry compression ratio cap.
        max_projection_file_bytes: ``.prj`` size cap (bytes).
        scratch_root: Parent directory for scratch workspaces
            (empty means the system temp directory).
        allowed_bucket: When set, the only bucket extraction may read from.
    """

    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    processing_timeout_s: float = DEFAULT_PROCESSING_TIMEOUT_S
    memory_limit_bytes: int = DEFAULT_MEMORY_LIMIT_BYTES
    archive_max_entries: int = DEFAULT_ARCHIVE_MAX_ENTRIES
    archive_max_total_bytes: int = DEFAULT_ARCHIVE_MAX_TOTAL_BYTES
    archive_max_compression_ratio: float = DEFAULT_ARCHIVE_MAX_COMPRESSION_RATIO
    max_projection_file_bytes: int = MAX_PROJECTION_FILE_SIZE_BYTES
    scratch_root: str = ""
    allowed_bucket: str = ""

    @property
    def archive_limits(self) -> ArchiveSafetyLimits:
        """Return the zip extraction caps as one value."""
        return ArchiveSafetyLimits(
            max_entries=self.archive_max_entries,
            max_total_bytes=self.archive_max_total_bytes,
            max_compression_ratio=self.archive_max_compression_ratio,
        )

    @property
    def parser_settings(self) -> ParserSettings:
        """Return the settings handed to the parse worker."""
        return ParserSettings(
            archive_limits=self.archive_limits,
            max_projection_file_bytes=self.max_projection_file_bytes,
        )

    @classmethod
    def from_env(cls) -> ExtractionConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a numeric value is out of range.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``GEO_PARSER_MAX_UPLOAD_BYTES=abc``).
        """
        config = cls(
            max_upload_bytes=int(
                os.getenv("GEO_PARSER_MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES))
            ),
            processing_timeout_s=float(
                os.getenv("GEO_PARSER_PROCESSING_TIMEOUT_S", str(DEFAULT_PROCESSING_TIMEOUT_S))
            ),
            memory_limit_bytes=int(
                os.getenv("GEO_PARSER_MEMORY_LIMIT_BYTES", str(DEFAULT_MEMORY_LIMIT_BYTES))
            ),
            archive_max_entries=int(
                os.getenv("GEO_PARSER_ARCHIVE_MAX_ENTRIES", str(DEFAULT_ARCHIVE_MAX_ENTRIES))
            ),
            archive_max_total_bytes=int(
                os.getenv(
                    "GEO_PARSER_ARCHIVE_MAX_TOTAL_BYTES", str(DEFAULT_ARCHIVE_MAX_TOTAL_BYTES)
                )
            ),
            archive_max_compression_ratio=float(
                os.getenv(
                    "GEO_PARSER_ARCHIVE_MAX_COMPRESSION_RATIO",
                    str(DEFAULT_ARCHIVE_MAX_COMPRESSION_RATIO),
                )
            ),
            max_projection_file_bytes=int(
                os.getenv(
                    "GEO_PARSER_MAX_PROJECTION_FILE_BYTES", str(MAX_PROJECTION_FILE_SIZE_BYTES)
                )
            ),
            scratch_root=os.getenv("GEO_PARSER_SCRATCH_ROOT", ""),
            allowed_bucket=os.getenv("GEO_PARSER_ALLOWED_BUCKET", ""),
        )
        _validate(config)
        return config


def _validate(config: ExtractionConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    positive_fields = (
        ("GEO_PARSER_MAX_UPLOAD_BYTES", config.max_upload_bytes, "bytes"),
        ("GEO_PARSER_PROCESSING_TIMEOUT_S", config.processing_timeout_s, "seconds"),
        ("GEO_PARSER_MEMORY_LIMIT_BYTES", config.memory_limit_bytes, "bytes"),
        ("GEO_PARSER_ARCHIVE_MAX_ENTRIES", config.archive_max_entries, "entries"),
        ("GEO_PARSER_ARCHIVE_MAX_TOTAL_BYTES", config.archive_max_total_bytes, "bytes"),
        ("GEO_PARSER_MAX_PROJECTION_FILE_BYTES", config.max_projection_file_bytes, "bytes"),
    )
    for key, value, unit in positive_fields:
        if value <= 0:
            raise ConfigValidationError(key, value, f"must be > 0 ({unit})")

    if config.archive_max_compression_ratio < 1:
        raise ConfigValidationError(
            "GEO_PARSER_ARCHIVE_MAX_COMPRESSION_RATIO",
            config.archive_max_compression_ratio,
            "must be >= 1 (decompressed / compressed)",
        )

    if config.scratch_root and not os.path.isdir(config.scratch_root):
        raise ConfigValidationError(
            "GEO_PARSER_SCRATCH_ROOT",
            config.scratch_root,
            "must be an existing directory",
        )
