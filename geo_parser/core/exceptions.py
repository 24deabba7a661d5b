"""Unified extraction error taxonomy.

Every failure raised inside the extraction pipeline inherits from
``GeoParserError`` and carries structured context fields so the caller
(the HTTP layer, a queue consumer, a test) can map it to a response
without string matching.

Taxonomy categories
-------------------
- ``NotFoundError``: source object missing in blob storage (404).
- ``ClientTimeoutError``: download or parse exceeded its deadline (408).
- ``EntityTooLargeError``: source or decoded GeoJSON exceeds a cap (413).
- ``BadRequestError``: unsupported or malformed input (400).
- ``InternalError``: worker crash, unexpected I/O, unmapped error (500).

Errors cross the parse-worker process boundary as plain dicts; see
``to_error_payload`` and ``from_error_payload``.
"""

from __future__ import annotations


class GeoParserError(Exception):
    """Base exception for all extraction-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"parse_kml"``, ``"download"``).
        code: Machine-readable error code (e.g. ``"SHAPEFILE_MISSING_PRJ_FILE"``).
        retryable: Whether the caller may retry the same request.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""
    #: HTTP-equivalent status for the category.
    status_code: int = 500

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        for category, cls in _CATEGORIES.items():
            if isinstance(self, cls):
                return category
        return "internal"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "status_code": self.status_code,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class NotFoundError(GeoParserError):
    """The source object does not exist."""

    status_code = 404
    default_code = "NOT_FOUND"


class ClientTimeoutError(GeoParserError):
    """A download or parse exceeded its deadline. Retryable."""

    status_code = 408
    default_code = "CLIENT_TIMEOUT"

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class EntityTooLargeError(GeoParserError):
    """The source file or the decoded GeoJSON exceeds a configured cap."""

    status_code = 413
    default_code = "ENTITY_TOO_LARGE"


class BadRequestError(GeoParserError):
    """The input is unsupported, malformed or hostile. Never retryable."""

    status_code = 400
    default_code = "BAD_REQUEST"


class InternalError(GeoParserError):
    """Unexpected failure inside the pipeline."""

    status_code = 500
    default_code = "INTERNAL"


_CATEGORIES: dict[str, type[GeoParserError]] = {
    "not_found": NotFoundError,
    "client_timeout": ClientTimeoutError,
    "entity_too_large": EntityTooLargeError,
    "bad_request": BadRequestError,
    "internal": InternalError,
}


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class UnsupportedFileKindError(BadRequestError):
    """Raised when the requested file kind has no parser."""

    default_stage = "request"
    default_code = "FILE_TYPE_INVALID"


class KmlParseError(BadRequestError):
    """Raised when a KML document is not well-formed XML."""

    default_stage = "parse_kml"
    default_code = "KML_INVALID_FORMAT"


class ArchiveSafetyError(BadRequestError):
    """Raised when a zip archive breaches an extraction safety limit."""

    default_stage = "extract_archive"
    default_code = "ARCHIVE_INVALID"


class ShapefileValidationError(BadRequestError):
    """Raised when an extracted shapefile archive lacks required components.

    The error code doubles as the message so it reaches the caller intact.
    """

    default_stage = "parse_shapefile"

    def __init__(self, code: str) -> None:
        super().__init__(code, code=code)


class ReprojectionError(BadRequestError):
    """Raised when a transformed coordinate falls outside WGS 84 bounds."""

    default_stage = "reproject"
    default_code = "COORDINATE_OUT_OF_RANGE"


class WorkerError(InternalError):
    """Raised when the isolated parse worker dies without a result."""

    default_stage = "parse_worker"
    default_code = "WORKER_FAILED"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_error_payload(exc: BaseException) -> dict[str, object]:
    """Serialise *exc* into a plain dict that survives pickling across processes."""
    if isinstance(exc, GeoParserError):
        return exc.to_error_dict()
    return {
        "category": "internal",
        "code": InternalError.default_code,
        "stage": "",
        "message": str(exc),
        "retryable": False,
    }


def from_error_payload(payload: object) -> GeoParserError:
    """Rebuild a ``GeoParserError`` from ``to_error_payload`` output.

    Payloads without a recognised category (including bare strings)
    become ``InternalError``.
    """
    if not isinstance(payload, dict):
        return InternalError(str(payload))

    cls = _CATEGORIES.get(str(payload.get("category", "")), InternalError)
    return cls(
        str(payload.get("message", "")),
        stage=str(payload.get("stage", "") or ""),
        code=str(payload.get("code", "") or ""),
        retryable=bool(payload.get("retryable", cls is ClientTimeoutError)),
    )
