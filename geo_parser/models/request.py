"""Extraction request model.

An ``ExtractionRequest`` identifies one uploaded object and the parser
that should decode it.  It is immutable and created fresh per call.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from geo_parser.core.exceptions import BadRequestError, UnsupportedFileKindError

MAX_KEY_LENGTH = 1024
_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9._/-]+$")


class FileKind(str, Enum):
    """Supported upload formats."""

    KML = "kml"
    SHAPEFILE = "shapefile"

    @classmethod
    def parse(cls, value: str | FileKind) -> FileKind:
        """Return the kind named by *value*, ignoring case.

        Raises:
            UnsupportedFileKindError: If *value* names no supported kind.
        """
        if isinstance(value, FileKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            msg = f"Unsupported file type: {value}"
            raise UnsupportedFileKindError(msg) from None


class ExtractionRequest(BaseModel):
    """Reference to an uploaded object plus its declared format.

    Attributes:
        bucket: Storage bucket / container holding the upload.
        key: Object key within *bucket*.
        file_kind: Parser to use.
    """

    model_config = ConfigDict(frozen=True)

    bucket: str = Field(min_length=1)
    key: str = Field(min_length=1, max_length=MAX_KEY_LENGTH)
    file_kind: FileKind

    @field_validator("bucket")
    @classmethod
    def _bucket_not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "S3_BUCKET_REQUIRED"
            raise ValueError(msg)
        return value

    @field_validator("key")
    @classmethod
    def _key_is_safe(cls, value: str) -> str:
        if not _KEY_PATTERN.match(value) or "../" in value or value.startswith("/"):
            msg = "S3_KEY_INVALID"
            raise ValueError(msg)
        return value

    @field_validator("file_kind", mode="before")
    @classmethod
    def _normalise_kind(cls, value: object) -> FileKind:
        return FileKind.parse(value)  # type: ignore[arg-type]

    @classmethod
    def build(cls, bucket: str, key: str, file_kind: str | FileKind) -> ExtractionRequest:
        """Validate and construct a request, mapping failures to ``BadRequestError``.

        Raises:
            UnsupportedFileKindError: If *file_kind* is not supported.
            BadRequestError: If *bucket* or *key* is missing or unsafe.
        """
        kind = FileKind.parse(file_kind)
        try:
            return cls(bucket=bucket, key=key, file_kind=kind)
        except ValidationError as exc:
            first = exc.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else ""
            if field == "bucket":
                code = "S3_BUCKET_REQUIRED"
            elif not key:
                code = "S3_KEY_REQUIRED"
            else:
                code = "S3_KEY_INVALID"
            msg = f"Invalid extraction request: {code}"
            raise BadRequestError(msg, stage="request", code=code) from exc
