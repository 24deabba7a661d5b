"""Zipped shapefile parser.

Pipeline for one upload:

1. Unpack the zip through the archive safety extractor into a
   subdirectory next to the archive.
2. Group the extracted files by lower-cased extension and check the
   component set: ``.shp``, ``.shx`` and ``.dbf`` are mandatory, a
   ``.prj`` is required and capped in size.
3. For every ``.shp`` (sorted), read the ``.prj`` sharing its basename,
   build a transformer to WGS 84 and stream records with fiona,
   reprojecting each geometry as it is read.
4. Concatenate the features of all shapefiles into one collection.

Records without geometry are skipped with a warning.  The extraction
directory is removed whatever the outcome.  Failures that are not
already domain errors surface as ``"Failed to parse shapefile: ..."``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from geo_parser.core.config import ArchiveSafetyLimits
from geo_parser.core.constants import (
    CORE_SHAPEFILE_EXTENSIONS,
    MAX_PROJECTION_FILE_SIZE_BYTES,
    PROJECTION_EXTENSION,
    SHAPE_EXTENSION,
    SHAPEFILE_MISSING_CORE_FILES,
    SHAPEFILE_MISSING_PRJ_FILE,
    SHAPEFILE_NOT_FOUND,
    SHAPEFILE_PRJ_FILE_TOO_LARGE,
)
from geo_parser.core.exceptions import GeoParserError, InternalError, ShapefileValidationError
from geo_parser.models.geojson import make_feature, make_feature_collection
from geo_parser.parsers.archive import extract_archive, remove_directory
from geo_parser.utils.reprojection import build_transformer, reproject_geometry

if TYPE_CHECKING:
    from geo_parser.models.geojson import Feature, FeatureCollection
    from geo_parser.utils.reprojection import CoordinateTransformer

logger = logging.getLogger("geo_parser.parsers.shapefile")


@dataclass(frozen=True, slots=True)
class ShapefileComponentSet:
    """Extracted files grouped by lower-cased extension.

    Attributes:
        directory: Directory the archive was extracted into.
        files: Mapping of extension (e.g. ``".shp"``) to sorted paths.
    """

    directory: Path
    files: dict[str, tuple[Path, ...]] = field(default_factory=dict)

    @classmethod
    def from_directory(cls, directory: Path) -> ShapefileComponentSet:
        """Scan *directory* recursively and group regular files by extension."""
        grouped: dict[str, list[Path]] = defaultdict(list)
        for path in sorted(directory.rglob("*")):
            if path.is_file():
                grouped[path.suffix.lower()].append(path)
        return cls(directory, {ext: tuple(paths) for ext, paths in grouped.items()})

    def paths(self, extension: str) -> tuple[Path, ...]:
        """Return the paths with *extension* (lower-case, leading dot)."""
        return self.files.get(extension, ())

    @property
    def shapefiles(self) -> tuple[Path, ...]:
        return self.paths(SHAPE_EXTENSION)

    def validate(self, max_projection_bytes: int = MAX_PROJECTION_FILE_SIZE_BYTES) -> None:
        """Check the mandatory components, failing on the first problem.

        Raises:
            ShapefileValidationError: ``SHAPEFILE_MISSING_CORE_FILES``,
                ``SHAPEFILE_MISSING_PRJ_FILE`` or
                ``SHAPEFILE_PRJ_FILE_TOO_LARGE``.
        """
        missing = [ext for ext in CORE_SHAPEFILE_EXTENSIONS if not self.paths(ext)]
        if missing:
            logger.warning(
                "Shapefile validation failed: missing core files | missing=%s | dir=%s",
                ",".join(missing),
                self.directory,
            )
            raise ShapefileValidationError(SHAPEFILE_MISSING_CORE_FILES)

        projections = self.paths(PROJECTION_EXTENSION)
        if not projections:
            logger.warning("Shapefile validation failed: missing .prj file | dir=%s", self.directory)
            raise ShapefileValidationError(SHAPEFILE_MISSING_PRJ_FILE)

        for prj in projections:
            size = prj.stat().st_size
            if size > max_projection_bytes:
                logger.warning(
                    "Shapefile validation failed: .prj file too large | file=%s | size=%d | max=%d",
                    prj.name,
                    size,
                    max_projection_bytes,
                )
                raise ShapefileValidationError(SHAPEFILE_PRJ_FILE_TOO_LARGE)

        logger.info(
            "Shapefile validation passed | dir=%s | files=%d",
            self.directory,
            sum(len(paths) for paths in self.files.values()),
        )

    def projection_for(self, shp_path: Path) -> Path | None:
        """Return the ``.prj`` sharing *shp_path*'s basename, ignoring case."""
        stem = shp_path.stem.lower()
        for prj in self.paths(PROJECTION_EXTENSION):
            if prj.stem.lower() == stem:
                return prj
        return None


def parse_shapefile(
    zip_path: Path | str,
    limits: ArchiveSafetyLimits | None = None,
    max_projection_bytes: int = MAX_PROJECTION_FILE_SIZE_BYTES,
) -> FeatureCollection:
    """Parse a zipped shapefile into a WGS 84 FeatureCollection.

    Args:
        zip_path: Path to the uploaded zip archive.
        limits: Zip extraction caps.
        max_projection_bytes: Largest ``.prj`` accepted.

    Raises:
        ArchiveSafetyError: If the archive breaches an extraction cap.
        ShapefileValidationError: If components are missing or oversized.
        ReprojectionError: If a coordinate lands outside WGS 84 bounds.
        InternalError: On any other failure.
    """
    zip_path = Path(zip_path)
    logger.info("Parsing shapefile archive | file=%s", zip_path.name)

    try:
        extract_dir = extract_archive(zip_path, limits, parent=zip_path.parent)
        try:
            components = ShapefileComponentSet.from_directory(extract_dir)
            components.validate(max_projection_bytes)

            shapefiles = components.shapefiles
            if not shapefiles:
                raise ShapefileValidationError(SHAPEFILE_NOT_FOUND)

            features: list[Feature] = []
            for shp_path in shapefiles:
                transformer = build_transformer(_read_projection(components, shp_path))
                features.extend(read_features(shp_path, transformer))
        finally:
            remove_directory(extract_dir)
    except GeoParserError:
        raise
    except Exception as exc:
        msg = f"Failed to parse shapefile: {exc}"
        raise InternalError(msg, stage="parse_shapefile") from exc

    logger.info(
        "Parsed %d feature(s) from %d shapefile(s) in %s",
        len(features),
        len(shapefiles),
        zip_path.name,
    )
    return make_feature_collection(features)


def read_features(
    shp_path: Path, transformer: CoordinateTransformer | None = None
) -> list[Feature]:
    """Stream the records of one ``.shp`` into reprojected features.

    Records are read one at a time; those without geometry are skipped.
    """
    import fiona
    from fiona.model import to_dict

    features: list[Feature] = []
    skipped = 0

    with fiona.open(str(shp_path)) as collection:
        for idx, record in enumerate(collection):
            data = to_dict(record)
            geometry = data.get("geometry")
            if not _has_geometry(geometry):
                logger.warning(
                    "Ignoring feature without geometry | file=%s | index=%d", shp_path.name, idx
                )
                skipped += 1
                continue

            geometry = reproject_geometry(_as_lists(geometry), transformer)
            features.append(make_feature(geometry, data.get("properties")))

    logger.info(
        "Read shapefile | file=%s | features=%d | skipped=%d | crs=%s",
        shp_path.name,
        len(features),
        skipped,
        transformer.source_name if transformer is not None else "WGS 84",
    )
    return features


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_projection(components: ShapefileComponentSet, shp_path: Path) -> str | None:
    prj = components.projection_for(shp_path)
    if prj is None:
        logger.error(
            "No projection file for shapefile, coordinates will not be transformed | file=%s",
            shp_path.name,
        )
        return None
    return prj.read_text(encoding="utf-8", errors="replace")


def _has_geometry(geometry: Any) -> bool:
    if not geometry:
        return False
    if geometry.get("type") == "GeometryCollection":
        return bool(geometry.get("geometries"))
    return bool(geometry.get("coordinates"))


def _as_lists(value: Any) -> Any:
    """Convert fiona's coordinate tuples into JSON-style nested lists."""
    if isinstance(value, dict):
        return {key: _as_lists(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_as_lists(item) for item in value]
    return value
