"""GeoJSON validator for the final extraction artifact.

Checks, in order:

1. the value is a JSON object
2. ``type`` is ``Feature`` or ``FeatureCollection``
3. a FeatureCollection's ``features`` is an array (empty is allowed
   but logged)
4. the compact UTF-8 serialisation fits within the memory limit

Structural failures are internal errors: a parser produced something it
should not have.  A result that is merely too big is ``EntityTooLargeError``.
"""

from __future__ import annotations

import json
import logging

from geo_parser.core.constants import DEFAULT_MEMORY_LIMIT_BYTES
from geo_parser.core.exceptions import EntityTooLargeError, InternalError
from geo_parser.models.geojson import GEOJSON_TYPES

logger = logging.getLogger("geo_parser.orchestrators.validation")


def serialized_size(value: object) -> int:
    """Return the byte length of *value* as compact UTF-8 JSON."""
    return len(json.dumps(value, separators=(",", ":")).encode("utf-8"))


def validate_geojson(value: object, memory_limit: int = DEFAULT_MEMORY_LIMIT_BYTES) -> bool:
    """Validate a parser result, returning ``True`` or raising.

    Raises:
        InternalError: If the structure is not a GeoJSON Feature or
            FeatureCollection.
        EntityTooLargeError: If the serialised result exceeds *memory_limit*.
    """
    if not isinstance(value, dict):
        msg = "Invalid GeoJSON: not an object"
        raise InternalError(msg, stage="validate", code="GEOJSON_INVALID")

    geojson_type = value.get("type")
    if geojson_type not in GEOJSON_TYPES:
        msg = "Invalid GeoJSON: missing or invalid type"
        raise InternalError(msg, stage="validate", code="GEOJSON_INVALID")

    if geojson_type == "FeatureCollection":
        features = value.get("features")
        if not isinstance(features, list):
            msg = "Invalid GeoJSON: features must be an array"
            raise InternalError(msg, stage="validate", code="GEOJSON_INVALID")
        if not features:
            logger.warning("GeoJSON FeatureCollection has no features")

    try:
        size = serialized_size(value)
    except (TypeError, ValueError) as exc:
        msg = f"Invalid GeoJSON: not serialisable ({exc})"
        raise InternalError(msg, stage="validate", code="GEOJSON_INVALID") from exc

    if size > memory_limit:
        logger.warning(
            "GeoJSON exceeds memory limit | size=%d | limit=%d",
            size,
            memory_limit,
        )
        msg = f"GeoJSON size {size} bytes exceeds memory limit of {memory_limit} bytes"
        raise EntityTooLargeError(msg, stage="validate", code="GEOJSON_TOO_LARGE")

    logger.debug("GeoJSON validated | type=%s | size=%d", geojson_type, size)
    return True
