"""Data models.

- request: ``FileKind`` and the immutable ``ExtractionRequest``
- geojson: Feature / FeatureCollection shapes and builders
"""

from geo_parser.models.geojson import (
    Feature,
    FeatureCollection,
    Geometry,
    make_feature,
    make_feature_collection,
)
from geo_parser.models.request import ExtractionRequest, FileKind

__all__ = [
    "ExtractionRequest",
    "Feature",
    "FeatureCollection",
    "FileKind",
    "Geometry",
    "make_feature",
    "make_feature_collection",
]
