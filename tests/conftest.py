"""Shared pytest fixtures for the geo_parser test suite.

Fixture files are generated per test in ``tmp_path``: KML documents as
text, shapefiles written with fiona and zipped with ``zipfile``.
"""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

KML_NS = "http://www.opengis.net/kml/2.2"

# OSGB36 National Grid reference point and its WGS 84 equivalent.
OSGB_POINT = (513967.0, 476895.0)
OSGB_POINT_WGS84 = (-0.2555, 54.1752)

# ---------------------------------------------------------------------------
# KML fixtures
# ---------------------------------------------------------------------------


def point_placemark(name: str, lon: float, lat: float) -> str:
    return (
        f"<Placemark><name>{name}</name>"
        f"<Point><coordinates>{lon},{lat}</coordinates></Point></Placemark>"
    )


def kml_document(*placemarks: str) -> str:
    body = "".join(placemarks)
    return f'<?xml version="1.0" encoding="UTF-8"?><kml xmlns="{KML_NS}"><Document>{body}</Document></kml>'


@pytest.fixture()
def write_kml(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing KML text to ``tmp_path`` and returning its path."""

    def _write(text: str, name: str = "upload.kml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def three_point_kml(write_kml: Callable[..., Path]) -> Path:
    """KML document with three Point placemarks."""
    return write_kml(
        kml_document(
            point_placemark("Site A", -1.123456, 52.654321),
            point_placemark("Site B", 0.5, 51.25),
            point_placemark("Site C", -3.75, 55.9),
        )
    )


# ---------------------------------------------------------------------------
# Shapefile fixtures
# ---------------------------------------------------------------------------


def write_shapefile(
    directory: Path,
    name: str,
    records: Iterable[dict[str, Any]],
    *,
    geometry_type: str = "Point",
    crs: str | None = "EPSG:27700",
) -> Path:
    """Write an ESRI Shapefile with fiona and return the ``.shp`` path."""
    import fiona

    directory.mkdir(parents=True, exist_ok=True)
    shp_path = directory / f"{name}.shp"
    schema = {"geometry": geometry_type, "properties": {"name": "str"}}
    with fiona.open(
        str(shp_path), "w", driver="ESRI Shapefile", crs=crs, schema=schema
    ) as dst:
        for record in records:
            dst.write(record)
    return shp_path


def zip_files(
    zip_path: Path,
    files: Iterable[Path],
    *,
    arcnames: dict[str, str] | None = None,
    compression: int = zipfile.ZIP_DEFLATED,
) -> Path:
    """Zip *files* flat into *zip_path* (deflated unless *compression* says otherwise)."""
    arcnames = arcnames or {}
    with zipfile.ZipFile(zip_path, "w", compression=compression) as archive:
        for path in files:
            archive.write(path, arcname=arcnames.get(path.name, path.name))
    return zip_path


def osgb_point_record(name: str = "site", point: tuple[float, float] = OSGB_POINT) -> dict[str, Any]:
    return {
        "geometry": {"type": "Point", "coordinates": point},
        "properties": {"name": name},
    }


@pytest.fixture()
def osgb_shapefile_dir(tmp_path: Path) -> Path:
    """Directory holding a one-point OSGB36 shapefile (.shp/.shx/.dbf/.prj)."""
    directory = tmp_path / "components"
    write_shapefile(directory, "sites", [osgb_point_record()])
    return directory


@pytest.fixture()
def make_shapefile_zip(tmp_path: Path, osgb_shapefile_dir: Path) -> Callable[..., Path]:
    """Factory zipping the OSGB36 shapefile, optionally dropping or adding files."""

    def _make(
        *,
        exclude: tuple[str, ...] = (),
        extra: dict[str, bytes] | None = None,
        name: str = "upload.zip",
        compression: int = zipfile.ZIP_DEFLATED,
    ) -> Path:
        for filename, content in (extra or {}).items():
            (osgb_shapefile_dir / filename).write_bytes(content)
        files = [
            p
            for p in sorted(osgb_shapefile_dir.iterdir())
            if p.suffix.lower() not in exclude
        ]
        return zip_files(tmp_path / name, files, compression=compression)

    return _make


@pytest.fixture()
def osgb_shapefile_zip(make_shapefile_zip: Callable[..., Path]) -> Path:
    """Valid zipped OSGB36 shapefile with one point record."""
    return make_shapefile_zip()
