"""Tests for the coordinate reprojection engine.

Covers:
- Transformer construction from .prj text (WKT / EPSG / garbage)
- OSGB36 → WGS 84 accuracy
- WGS 84 range guard on transformed output
- Identity behaviour of a ``None`` transformer
- Recursive walking of nested coordinate arrays and collections
"""

from __future__ import annotations

import logging
import math
from unittest.mock import MagicMock

import pytest

from geo_parser.core.exceptions import ReprojectionError
from geo_parser.utils.reprojection import (
    CoordinateTransformer,
    build_transformer,
    reproject_geometry,
    transform_coordinates,
    transform_position,
    validate_position,
)
from tests.conftest import OSGB_POINT, OSGB_POINT_WGS84


def _fake_transformer(result: tuple[float, float]) -> CoordinateTransformer:
    inner = MagicMock()
    inner.transform.return_value = result
    return CoordinateTransformer(inner, "fake")


@pytest.fixture()
def osgb_transformer() -> CoordinateTransformer:
    from pyproj import CRS

    transformer = build_transformer(CRS.from_epsg(27700).to_wkt())
    assert transformer is not None
    return transformer


class TestBuildTransformer:
    """Transformer construction from projection text."""

    @pytest.mark.parametrize("text", [None, "", "   \n"])
    def test_empty_text_gives_none(self, text: str | None) -> None:
        assert build_transformer(text) is None

    def test_wgs84_gives_none(self) -> None:
        from pyproj import CRS

        assert build_transformer("EPSG:4326") is None
        assert build_transformer(CRS.from_epsg(4326).to_wkt()) is None

    def test_unparsable_text_gives_none_and_logs(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="geo_parser.utils.reprojection"):
            assert build_transformer("THIS IS NOT A CRS") is None
        assert "Failed to create CRS transformer" in caplog.text

    def test_projected_crs_gives_transformer(self, osgb_transformer: CoordinateTransformer) -> None:
        assert "British National Grid" in osgb_transformer.source_name


class TestOsgbAccuracy:
    """OSGB36 National Grid to WGS 84."""

    def test_reference_point(self, osgb_transformer: CoordinateTransformer) -> None:
        lon, lat = transform_position(list(OSGB_POINT), osgb_transformer)
        assert lon == pytest.approx(OSGB_POINT_WGS84[0], abs=1e-4)
        assert lat == pytest.approx(OSGB_POINT_WGS84[1], abs=1e-4)

    def test_altitude_preserved(self, osgb_transformer: CoordinateTransformer) -> None:
        result = transform_position([*OSGB_POINT, 42.0], osgb_transformer)
        assert len(result) == 3
        assert result[2] == 42.0


class TestRangeGuard:
    """Out-of-range output is a hard failure, never clamped."""

    def test_longitude_181(self) -> None:
        with pytest.raises(ReprojectionError, match="Invalid longitude received: 181"):
            transform_position([1.0, 2.0], _fake_transformer((181.0, 10.0)))

    def test_latitude_90_01(self) -> None:
        with pytest.raises(ReprojectionError, match="Invalid latitude received: 90.01"):
            transform_position([1.0, 2.0], _fake_transformer((10.0, 90.01)))

    def test_bounds_are_inclusive(self) -> None:
        validate_position(-180.0, -90.0)
        validate_position(180.0, 90.0)

    def test_guard_inside_nested_geometry(self) -> None:
        geometry = {"type": "LineString", "coordinates": [[0.0, 0.0], [1.0, 1.0]]}
        with pytest.raises(ReprojectionError):
            reproject_geometry(geometry, _fake_transformer((-200.0, 0.0)))

    def test_error_is_bad_request(self) -> None:
        with pytest.raises(ReprojectionError) as exc_info:
            validate_position(0.0, -91.0)
        assert exc_info.value.category == "bad_request"
        assert exc_info.value.code == "COORDINATE_OUT_OF_RANGE"


class TestNonFiniteResults:
    """Singular transforms leave the original coordinate untouched."""

    @pytest.mark.parametrize("bad", [(math.inf, 1.0), (1.0, math.nan)])
    def test_original_kept(self, bad: tuple[float, float]) -> None:
        assert transform_position([5.0, 6.0], _fake_transformer(bad)) == [5.0, 6.0]

    def test_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="geo_parser.utils.reprojection"):
            transform_position([5.0, 6.0], _fake_transformer((math.inf, math.inf)))
        assert "no transformation has taken place" in caplog.text


class TestIdentity:
    """A ``None`` transformer leaves coordinates unchanged."""

    def test_polygon_unchanged(self) -> None:
        coords = [[[-1.5, 52.0], [-1.4, 52.0], [-1.4, 52.1], [-1.5, 52.0]]]
        assert transform_coordinates(coords, None) is coords

    def test_geometry_unchanged(self) -> None:
        geometry = {"type": "Point", "coordinates": [-0.1, 51.5]}
        assert reproject_geometry(geometry, None) == {"type": "Point", "coordinates": [-0.1, 51.5]}

    def test_none_geometry(self) -> None:
        assert reproject_geometry(None, _fake_transformer((0.0, 0.0))) is None


class TestRecursiveWalk:
    """Nested coordinate arrays and collections."""

    @pytest.mark.parametrize("coords", [[], "not-an-array", 7, None])
    def test_non_array_or_empty_is_noop(self, coords: object) -> None:
        assert transform_coordinates(coords, _fake_transformer((0.0, 0.0))) == coords

    def test_short_position_kept(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="geo_parser.utils.reprojection"):
            assert transform_position([1.0], _fake_transformer((0.0, 0.0))) == [1.0]
        assert "insufficient elements" in caplog.text

    def test_multipolygon_every_position(self) -> None:
        fake = _fake_transformer((10.0, 20.0))
        coords = [
            [[[0, 0], [1, 0], [1, 1], [0, 0]]],
            [[[5, 5], [6, 5], [6, 6], [5, 5]], [[5.2, 5.2], [5.4, 5.2], [5.4, 5.4], [5.2, 5.2]]],
        ]
        result = transform_coordinates(coords, fake)
        assert fake._transformer.transform.call_count == 12
        assert result[1][1][0] == [10.0, 20.0]

    def test_input_not_mutated(self) -> None:
        coords = [[0.0, 0.0], [1.0, 1.0]]
        transform_coordinates(coords, _fake_transformer((3.0, 4.0)))
        assert coords == [[0.0, 0.0], [1.0, 1.0]]

    def test_geometry_collection(self, osgb_transformer: CoordinateTransformer) -> None:
        geometry = {
            "type": "GeometryCollection",
            "geometries": [
                {"type": "Point", "coordinates": list(OSGB_POINT)},
                {"type": "LineString", "coordinates": [list(OSGB_POINT), list(OSGB_POINT)]},
            ],
        }
        result = reproject_geometry(geometry, osgb_transformer)
        assert result is not None
        point = result["geometries"][0]["coordinates"]
        assert point[0] == pytest.approx(OSGB_POINT_WGS84[0], abs=1e-4)
        assert result["geometries"][1]["coordinates"][1][1] == pytest.approx(
            OSGB_POINT_WGS84[1], abs=1e-4
        )
