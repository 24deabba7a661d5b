"""Coordinate reprojection engine.

Transforms GeoJSON coordinates from a source CRS (parsed from ``.prj``
WKT or PROJ text) to WGS 84 using pyproj.

Rules:
- A ``None`` transformer means "no reprojection necessary"; every
  function here treats it as the identity.
- Non-finite results (projection singularities) leave the original
  coordinate untouched and are logged.
- Finite results outside WGS 84 bounds raise ``ReprojectionError``:
  they signal a degenerate or incompatible CRS, never something to clamp.
- Only the first two ordinates are transformed; altitude is preserved.
"""

from __future__ import annotations

import logging
import math
from numbers import Real
from typing import TYPE_CHECKING, Any

from geo_parser.core.constants import (
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
    WGS84_CRS,
)
from geo_parser.core.exceptions import ReprojectionError

if TYPE_CHECKING:
    from pyproj import Transformer

    from geo_parser.models.geojson import Geometry

logger = logging.getLogger("geo_parser.utils.reprojection")


class CoordinateTransformer:
    """Forward transform from a parsed source CRS to WGS 84 (lon, lat order)."""

    def __init__(self, transformer: Transformer, source_name: str = "") -> None:
        self._transformer = transformer
        self.source_name = source_name

    def forward(self, x: float, y: float) -> tuple[float, float]:
        """Transform one position, returning ``(lon, lat)``."""
        lon, lat = self._transformer.transform(x, y)
        return (float(lon), float(lat))

    def __repr__(self) -> str:
        return f"CoordinateTransformer(source={self.source_name!r})"


def build_transformer(projection_text: str | None) -> CoordinateTransformer | None:
    """Build a transformer from ``.prj`` content.

    Returns ``None`` when the text is empty, cannot be parsed, or already
    describes WGS 84.  Parse failures are logged, not raised: the caller
    then treats coordinates as WGS 84.
    """
    from pyproj import CRS, Transformer
    from pyproj.exceptions import CRSError, ProjError

    text = (projection_text or "").strip()
    if not text:
        logger.warning("Empty projection text; no coordinate transformation will take place")
        return None

    try:
        source = CRS.from_user_input(text)
        if source.equals(CRS.from_user_input(WGS84_CRS), ignore_axis_order=True):
            logger.info("Source CRS is already WGS 84, no transformation needed")
            return None
        transformer = Transformer.from_crs(source, WGS84_CRS, always_xy=True)
    except (CRSError, ProjError) as exc:
        logger.error(
            "Failed to create CRS transformer, assuming WGS 84 coordinates | error=%s | prj=%.200s",
            exc,
            text,
        )
        return None

    logger.info("Created CRS transformer | source=%s | target=%s", source.name, WGS84_CRS)
    return CoordinateTransformer(transformer, source.name)


def validate_position(lon: float, lat: float) -> None:
    """Raise ``ReprojectionError`` if ``(lon, lat)`` is outside WGS 84 bounds."""
    if not (MIN_LONGITUDE <= lon <= MAX_LONGITUDE):
        msg = f"Invalid longitude received: {lon} from CRS transformation"
        raise ReprojectionError(msg)
    if not (MIN_LATITUDE <= lat <= MAX_LATITUDE):
        msg = f"Invalid latitude received: {lat} from CRS transformation"
        raise ReprojectionError(msg)


def transform_position(position: list[Any], transformer: CoordinateTransformer) -> list[Any]:
    """Transform a single ``[x, y, *rest]`` position.

    Returns a new list; trailing ordinates (altitude, measure) are kept.
    """
    if len(position) < 2:
        logger.warning("Invalid coordinate pair: insufficient elements | coords=%s", position)
        return list(position)

    lon, lat = transformer.forward(position[0], position[1])
    if not (math.isfinite(lon) and math.isfinite(lat)):
        logger.error(
            "Invalid transformation result, no transformation has taken place | "
            "original=%s | transformed=%s",
            list(position[:2]),
            [lon, lat],
        )
        return list(position)

    validate_position(lon, lat)
    return [lon, lat, *position[2:]]


def transform_coordinates(coords: Any, transformer: CoordinateTransformer | None) -> Any:
    """Recursively transform a GeoJSON coordinate array of any depth.

    Non-sequence or empty input is returned unchanged, as is everything
    when *transformer* is ``None``.

    Raises:
        ReprojectionError: If a transformed position is out of range.
    """
    if transformer is None or not isinstance(coords, list | tuple) or not coords:
        return coords
    if isinstance(coords[0], Real):
        return transform_position(list(coords), transformer)
    return [transform_coordinates(c, transformer) for c in coords]


def reproject_geometry(
    geometry: Geometry | None, transformer: CoordinateTransformer | None
) -> Geometry | None:
    """Return *geometry* with every position transformed to WGS 84.

    ``GeometryCollection`` members are reprojected one by one; all other
    types carry a ``coordinates`` array.
    """
    if geometry is None or transformer is None:
        return geometry

    if geometry.get("type") == "GeometryCollection":
        return {
            **geometry,
            "geometries": [
                reproject_geometry(member, transformer)
                for member in geometry.get("geometries", [])
            ],
        }

    return {
        **geometry,
        "coordinates": transform_coordinates(geometry.get("coordinates"), transformer),
    }
