"""Upload parsers and the isolated worker that runs them.

- kml: lxml-based KML → GeoJSON
- archive: zip extraction under safety caps
- shapefile: zipped shapefile → GeoJSON, reprojected to WGS 84
- worker: runs a parser in a child process with a hard deadline

The parser for a request is chosen from ``_PARSER_REGISTRY`` by
``FileKind``.  Each entry is a lazy import thunk so the child process
only loads the libraries its format needs (lxml or fiona/pyproj).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from geo_parser.core.config import ParserSettings
from geo_parser.models.request import FileKind

if TYPE_CHECKING:
    from collections.abc import Callable

    from geo_parser.models.geojson import FeatureCollection

    Parser = Callable[[Path, ParserSettings], FeatureCollection]

logger = logging.getLogger("geo_parser.parsers")

# ---------------------------------------------------------------------------
# Lazy-import parser registry
# ---------------------------------------------------------------------------


def _kml_parser() -> Parser:
    from geo_parser.parsers.kml import parse_kml

    def parse(path: Path, settings: ParserSettings) -> FeatureCollection:
        return parse_kml(path)

    return parse


def _shapefile_parser() -> Parser:
    from geo_parser.parsers.shapefile import parse_shapefile

    def parse(path: Path, settings: ParserSettings) -> FeatureCollection:
        return parse_shapefile(
            path,
            settings.archive_limits,
            settings.max_projection_file_bytes,
        )

    return parse


_PARSER_REGISTRY: dict[FileKind, Callable[[], Parser]] = {
    FileKind.KML: _kml_parser,
    FileKind.SHAPEFILE: _shapefile_parser,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_parser(file_kind: FileKind | str) -> Parser:
    """Return the parser for *file_kind*.

    Raises:
        UnsupportedFileKindError: If *file_kind* is not a supported format.
    """
    kind = FileKind.parse(file_kind)
    return _PARSER_REGISTRY[kind]()


def run_parser(
    file_path: Path | str,
    file_kind: FileKind | str,
    settings: ParserSettings | None = None,
) -> FeatureCollection:
    """Decode *file_path* with the parser registered for *file_kind*."""
    kind = FileKind.parse(file_kind)
    logger.debug("Dispatching parser | kind=%s | file=%s", kind.value, file_path)
    return get_parser(kind)(Path(file_path), settings or ParserSettings())


__all__ = ["get_parser", "run_parser"]
