"""GeoJSON shapes produced by the parsers.

Features and collections stay plain dicts end to end: they cross the
worker process boundary by pickling and are handed to the caller as
JSON-ready values.  The ``TypedDict`` declarations document the shape;
the builders keep construction in one place.
"""

from __future__ import annotations

from typing import Any, Literal, NotRequired, TypedDict

GEOJSON_TYPES: frozenset[str] = frozenset({"Feature", "FeatureCollection"})

GEOMETRY_TYPES: frozenset[str] = frozenset(
    {
        "Point",
        "MultiPoint",
        "LineString",
        "MultiLineString",
        "Polygon",
        "MultiPolygon",
        "GeometryCollection",
    }
)


class Geometry(TypedDict):
    """A GeoJSON geometry object."""

    type: str
    coordinates: NotRequired[list[Any]]
    geometries: NotRequired[list[Geometry]]


class Feature(TypedDict):
    """A GeoJSON Feature."""

    type: Literal["Feature"]
    geometry: Geometry | None
    properties: dict[str, Any]


class FeatureCollection(TypedDict):
    """A GeoJSON FeatureCollection."""

    type: Literal["FeatureCollection"]
    features: list[Feature]


def make_feature(geometry: Geometry | None, properties: dict[str, Any] | None = None) -> Feature:
    """Build a Feature with an (optionally empty) property dict."""
    return {"type": "Feature", "geometry": geometry, "properties": dict(properties or {})}


def make_feature_collection(features: list[Feature] | None = None) -> FeatureCollection:
    """Build a FeatureCollection around *features*."""
    return {"type": "FeatureCollection", "features": list(features or [])}
