"""KML parser.

Parses a KML document with lxml and converts every Placemark into a
GeoJSON Feature.  The XML parser never resolves entities, never touches
the network and refuses huge trees, which defuses entity-expansion and
external-entity payloads before any geometry is read.

Supported geometry:
- Point, LineString, LinearRing (as LineString), Polygon with holes
- MultiGeometry (one member → that member, several → GeometryCollection)
- gx:Track / gx:MultiTrack (as LineString / MultiLineString)

Placemarks without geometry become features with ``geometry: null``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from geo_parser.core.exceptions import GeoParserError, InternalError, KmlParseError
from geo_parser.models.geojson import make_feature, make_feature_collection

if TYPE_CHECKING:
    from lxml.etree import _Element

    from geo_parser.models.geojson import Feature, FeatureCollection, Geometry

logger = logging.getLogger("geo_parser.parsers.kml")

_GEOMETRY_TAGS = frozenset(
    {"Point", "LineString", "LinearRing", "Polygon", "MultiGeometry", "Track", "MultiTrack"}
)


def parse_kml(kml_path: Path | str) -> FeatureCollection:
    """Parse a KML file into a GeoJSON FeatureCollection.

    Raises:
        KmlParseError: If the file is empty or not well-formed XML.
        InternalError: On any other failure (e.g. the file cannot be read).
    """
    from lxml import etree  # type: ignore[attr-defined]

    kml_path = Path(kml_path)
    logger.info("Parsing KML file | file=%s", kml_path.name)

    try:
        content = kml_path.read_bytes()
        if not content.strip():
            msg = "Invalid KML format: file is empty"
            raise KmlParseError(msg)

        parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
        try:
            root: _Element = etree.fromstring(content, parser=parser)
        except etree.XMLSyntaxError as exc:
            msg = f"Invalid KML format: {exc}"
            raise KmlParseError(msg) from exc

        features = [
            _placemark_to_feature(element)
            for element in root.iter()
            if _local_name(element) == "Placemark"
        ]
    except GeoParserError:
        raise
    except Exception as exc:
        msg = f"KML parsing failed: {exc}"
        raise InternalError(msg, stage="parse_kml") from exc

    logger.info("Parsed %d feature(s) from %s", len(features), kml_path.name)
    return make_feature_collection(features)


# ---------------------------------------------------------------------------
# Placemark → Feature
# ---------------------------------------------------------------------------


def _placemark_to_feature(placemark: _Element) -> Feature:
    properties: dict[str, Any] = {}
    for tag in ("name", "description", "styleUrl"):
        elem = _child(placemark, tag)
        if elem is not None:
            properties[tag] = (elem.text or "").strip()
    properties.update(_extended_data(placemark))

    return make_feature(_combine(_member_geometries(placemark)), properties)


def _extended_data(placemark: _Element) -> dict[str, str]:
    """Collect ``Data/value`` and ``SchemaData/SimpleData`` pairs."""
    metadata: dict[str, str] = {}
    extended = _child(placemark, "ExtendedData")
    if extended is None:
        return metadata

    for data in _children(extended, "Data"):
        key = data.get("name", "")
        value = _child(data, "value")
        if key and value is not None and value.text:
            metadata[key] = value.text.strip()

    for schema_data in _children(extended, "SchemaData"):
        for simple in _children(schema_data, "SimpleData"):
            key = simple.get("name", "")
            if key and simple.text:
                metadata[key] = simple.text.strip()

    return metadata


# ---------------------------------------------------------------------------
# Geometry conversion
# ---------------------------------------------------------------------------


def _to_geometry(element: _Element) -> Geometry | None:
    tag = _local_name(element)

    if tag == "Point":
        positions = _coordinates(element)
        return {"type": "Point", "coordinates": positions[0]} if positions else None

    if tag in ("LineString", "LinearRing"):
        positions = _coordinates(element)
        return {"type": "LineString", "coordinates": positions} if positions else None

    if tag == "Polygon":
        return _polygon(element)

    if tag == "Track":
        positions = _track_positions(element)
        return {"type": "LineString", "coordinates": positions} if positions else None

    if tag == "MultiTrack":
        lines = [p for p in (_track_positions(t) for t in _children(element, "Track")) if p]
        return {"type": "MultiLineString", "coordinates": lines} if lines else None

    if tag == "MultiGeometry":
        return _combine(_member_geometries(element))

    return None


def _member_geometries(parent: _Element) -> list[Geometry]:
    geometries: list[Geometry] = []
    for child in parent:
        if _local_name(child) in _GEOMETRY_TAGS:
            geom = _to_geometry(child)
            if geom is not None:
                geometries.append(geom)
    return geometries


def _polygon(element: _Element) -> Geometry | None:
    outer = [r for r in (_ring(b) for b in _children(element, "outerBoundaryIs")) if r]
    if not outer:
        return None
    # Some writers put several LinearRings inside one innerBoundaryIs.
    inner: list[list[list[float]]] = []
    for boundary in _children(element, "innerBoundaryIs"):
        for ring in _children(boundary, "LinearRing"):
            positions = _coordinates(ring)
            if positions:
                inner.append(positions)
    return {"type": "Polygon", "coordinates": [outer[0], *inner]}


def _ring(boundary: _Element) -> list[list[float]]:
    ring = _child(boundary, "LinearRing")
    return _coordinates(ring) if ring is not None else []


def _combine(geometries: list[Geometry]) -> Geometry | None:
    if not geometries:
        return None
    if len(geometries) == 1:
        return geometries[0]
    return {"type": "GeometryCollection", "geometries": geometries}


def _coordinates(element: _Element) -> list[list[float]]:
    coords = _child(element, "coordinates")
    if coords is None or not coords.text:
        return []
    return parse_coordinates_text(coords.text)


def _track_positions(track: _Element) -> list[list[float]]:
    positions: list[list[float]] = []
    for coord in _children(track, "coord"):
        try:
            values = [float(v) for v in (coord.text or "").split()]
        except ValueError:
            continue
        if len(values) >= 2:
            positions.append(values[:3])
    return positions


def parse_coordinates_text(text: str) -> list[list[float]]:
    """Parse KML ``lon,lat[,alt] ...`` text into GeoJSON positions.

    Altitude is kept when present; malformed tuples are skipped.
    """
    positions: list[list[float]] = []
    for token in text.split():
        parts = token.strip().split(",")
        if len(parts) < 2:
            continue
        try:
            positions.append([float(p) for p in parts[:3] if p != ""])
        except ValueError:
            continue
    return [p for p in positions if len(p) >= 2]


# ---------------------------------------------------------------------------
# Namespace-agnostic element helpers
# ---------------------------------------------------------------------------


def _local_name(element: _Element) -> str:
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _child(element: _Element, name: str) -> _Element | None:
    return next((c for c in element if _local_name(c) == name), None)


def _children(element: _Element, name: str) -> list[_Element]:
    return [c for c in element if _local_name(c) == name]
