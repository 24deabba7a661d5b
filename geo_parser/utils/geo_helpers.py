"""Shared geometry helpers used outside the upload parsers.

- ``osgb36_to_wgs84``: single British National Grid point to WGS 84,
  for manually entered site coordinates.
- ``buffer_geometry``: metric buffer around a WGS 84 geometry.  The
  buffer is applied in the local UTM zone, never by adding degrees.
- ``normalize_for_storage``: repair self-intersecting geometries so a
  strict geospatial store will accept them.
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING

from geo_parser.core.constants import WGS84_CRS
from geo_parser.core.exceptions import BadRequestError
from geo_parser.models.geojson import make_feature, make_feature_collection

if TYPE_CHECKING:
    from pyproj import Transformer

    from geo_parser.models.geojson import FeatureCollection, Geometry

logger = logging.getLogger("geo_parser.utils.geo_helpers")

OSGB36_CRS: str = "EPSG:27700"
DEFAULT_BUFFER_M = 50.0


@functools.lru_cache(maxsize=8)
def _transformer(source: str, target: str) -> Transformer:
    from pyproj import Transformer

    return Transformer.from_crs(source, target, always_xy=True)


# ---------------------------------------------------------------------------
# Single-point conversion
# ---------------------------------------------------------------------------


def osgb36_to_wgs84(eastings: float | str, northings: float | str) -> tuple[float, float]:
    """Convert an OSGB36 National Grid point to ``(lon, lat)``.

    Args:
        eastings: Grid eastings in metres (number or numeric string).
        northings: Grid northings in metres (number or numeric string).

    Raises:
        BadRequestError: If either value is not numeric.
    """
    try:
        x = float(eastings)
        y = float(northings)
    except (TypeError, ValueError) as exc:
        msg = f"Invalid OSGB36 coordinates: eastings={eastings!r}, northings={northings!r}"
        raise BadRequestError(msg, stage="osgb36", code="COORDINATES_INVALID") from exc

    lon, lat = _transformer(OSGB36_CRS, WGS84_CRS).transform(x, y)
    return (float(lon), float(lat))


# ---------------------------------------------------------------------------
# Metric buffer
# ---------------------------------------------------------------------------


def buffer_geometry(geometry: Geometry, distance_m: float = DEFAULT_BUFFER_M) -> Geometry:
    """Buffer a WGS 84 GeoJSON geometry by *distance_m* metres.

    The geometry is projected to the UTM zone of its centroid, buffered
    with shapely, and projected back to WGS 84.

    Raises:
        BadRequestError: If the geometry cannot be read or the distance
            is negative.
    """
    from shapely.errors import ShapelyError
    from shapely.geometry import mapping, shape
    from shapely.ops import transform

    if distance_m < 0:
        msg = f"Buffer distance must be >= 0 metres, got {distance_m}"
        raise BadRequestError(msg, stage="buffer", code="BUFFER_INVALID")

    try:
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, AttributeError) as exc:
        msg = f"Cannot buffer geometry: {exc}"
        raise BadRequestError(msg, stage="buffer", code="GEOMETRY_INVALID") from exc

    if geom.is_empty:
        return geometry

    centroid = geom.centroid
    utm_crs = _get_utm_crs(centroid.x, centroid.y)
    to_utm = _transformer(WGS84_CRS, utm_crs)
    to_wgs = _transformer(utm_crs, WGS84_CRS)

    buffered = transform(to_utm.transform, geom).buffer(distance_m)
    return mapping(transform(to_wgs.transform, buffered))  # type: ignore[return-value]


def _get_utm_crs(lon: float, lat: float) -> str:
    """Return the UTM EPSG code covering ``(lon, lat)``."""
    zone_number = int((lon + 180) / 6) + 1
    zone_number = max(1, min(60, zone_number))
    if lat >= 0:
        return f"EPSG:{32600 + zone_number}"
    return f"EPSG:{32700 + zone_number}"


# ---------------------------------------------------------------------------
# Storage normalisation
# ---------------------------------------------------------------------------


def normalize_for_storage(feature_collection: FeatureCollection) -> FeatureCollection:
    """Return a copy of *feature_collection* with repaired geometries.

    Invalid geometries (e.g. self-intersecting polygons) are rebuilt with
    ``make_valid``.  Features without geometry are dropped; properties
    are carried over untouched.
    """
    from shapely.geometry import mapping, shape
    from shapely.validation import make_valid

    features = []
    for idx, feature in enumerate(feature_collection.get("features", [])):
        geometry = feature.get("geometry")
        if not geometry:
            logger.warning("Dropping feature without geometry | index=%d", idx)
            continue

        geom = shape(geometry)
        if not geom.is_valid:
            logger.info("Repairing invalid geometry | index=%d | type=%s", idx, geom.geom_type)
            geom = make_valid(geom)

        features.append(make_feature(mapping(geom), feature.get("properties")))  # type: ignore[arg-type]

    return make_feature_collection(features)
