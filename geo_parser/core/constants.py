"""Shared extraction constants.

Centralises limits, file extensions and error codes that are shared by
the parsers, the reprojection engine and the orchestrator.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# WGS 84 coordinate bounds
# ---------------------------------------------------------------------------

MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0

WGS84_CRS: str = "EPSG:4326"
"""Target CRS for every extracted geometry."""

# ---------------------------------------------------------------------------
# Request / result limits
# ---------------------------------------------------------------------------

DEFAULT_MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024
"""Largest source object accepted before any byte is downloaded."""

DEFAULT_PROCESSING_TIMEOUT_S: float = 30.0
"""Deadline for the isolated parse worker."""

DEFAULT_MEMORY_LIMIT_BYTES: int = 500 * 1024 * 1024
"""Largest serialised GeoJSON accepted by the validator."""

# ---------------------------------------------------------------------------
# Zip extraction limits
# ---------------------------------------------------------------------------

DEFAULT_ARCHIVE_MAX_ENTRIES: int = 10_000
DEFAULT_ARCHIVE_MAX_TOTAL_BYTES: int = 1_000_000_000

# Ratio is checked per entry, so it must admit the most compressible
# legitimate member. Multi-site .dbf files have been seen at 66.8x.
DEFAULT_ARCHIVE_MAX_COMPRESSION_RATIO: float = 100.0

# ---------------------------------------------------------------------------
# Shapefile components
# ---------------------------------------------------------------------------

SHAPE_EXTENSION = ".shp"
INDEX_EXTENSION = ".shx"
DBASE_EXTENSION = ".dbf"
PROJECTION_EXTENSION = ".prj"

CORE_SHAPEFILE_EXTENSIONS: tuple[str, ...] = (
    SHAPE_EXTENSION,
    INDEX_EXTENSION,
    DBASE_EXTENSION,
)

# Typical .prj files are ~500 bytes.
MAX_PROJECTION_FILE_SIZE_BYTES: int = 50_000

SHAPEFILE_MISSING_CORE_FILES = "SHAPEFILE_MISSING_CORE_FILES"
SHAPEFILE_MISSING_PRJ_FILE = "SHAPEFILE_MISSING_PRJ_FILE"
SHAPEFILE_PRJ_FILE_TOO_LARGE = "SHAPEFILE_PRJ_FILE_TOO_LARGE"
SHAPEFILE_NOT_FOUND = "SHAPEFILE_NOT_FOUND"

# ---------------------------------------------------------------------------
# Scratch space
# ---------------------------------------------------------------------------

WORKSPACE_PREFIX: str = "geo-parser-"
EXTRACTION_PREFIX: str = "shapefile-"
SOURCE_FILE_STEM: str = "source"
