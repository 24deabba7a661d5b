"""Tests for FileKind and ExtractionRequest."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from geo_parser.core.exceptions import BadRequestError, UnsupportedFileKindError
from geo_parser.models.request import ExtractionRequest, FileKind


class TestFileKind:
    """Case-insensitive parsing of the declared format."""

    @pytest.mark.parametrize("value", ["kml", "KML", " Kml "])
    def test_kml(self, value: str) -> None:
        assert FileKind.parse(value) is FileKind.KML

    @pytest.mark.parametrize("value", ["shapefile", "SHAPEFILE", "ShapeFile"])
    def test_shapefile(self, value: str) -> None:
        assert FileKind.parse(value) is FileKind.SHAPEFILE

    def test_enum_passes_through(self) -> None:
        assert FileKind.parse(FileKind.KML) is FileKind.KML

    @pytest.mark.parametrize("value", ["kmz", "gpx", "", "geojson"])
    def test_unsupported(self, value: str) -> None:
        with pytest.raises(UnsupportedFileKindError, match="Unsupported file type") as exc_info:
            FileKind.parse(value)
        assert exc_info.value.code == "FILE_TYPE_INVALID"
        assert exc_info.value.status_code == 400


class TestExtractionRequest:
    """Request validation and immutability."""

    def test_build_valid(self) -> None:
        req = ExtractionRequest.build("uploads", "2026/site-plan.kml", "KML")
        assert req.bucket == "uploads"
        assert req.key == "2026/site-plan.kml"
        assert req.file_kind is FileKind.KML

    def test_frozen(self) -> None:
        req = ExtractionRequest.build("uploads", "a.kml", "kml")
        with pytest.raises(ValidationError):
            req.key = "b.kml"  # type: ignore[misc]

    def test_missing_bucket(self) -> None:
        with pytest.raises(BadRequestError) as exc_info:
            ExtractionRequest.build("", "a.kml", "kml")
        assert exc_info.value.code == "S3_BUCKET_REQUIRED"

    def test_blank_bucket(self) -> None:
        with pytest.raises(BadRequestError) as exc_info:
            ExtractionRequest.build("   ", "a.kml", "kml")
        assert exc_info.value.code == "S3_BUCKET_REQUIRED"

    def test_missing_key(self) -> None:
        with pytest.raises(BadRequestError) as exc_info:
            ExtractionRequest.build("uploads", "", "kml")
        assert exc_info.value.code == "S3_KEY_REQUIRED"

    @pytest.mark.parametrize(
        "key",
        ["../etc/passwd", "dir/../../secret.kml", "/absolute.kml", "spaces in key.kml", "a" * 1025],
    )
    def test_unsafe_key(self, key: str) -> None:
        with pytest.raises(BadRequestError) as exc_info:
            ExtractionRequest.build("uploads", key, "kml")
        assert exc_info.value.code == "S3_KEY_INVALID"

    def test_unsupported_kind(self) -> None:
        with pytest.raises(UnsupportedFileKindError):
            ExtractionRequest.build("uploads", "a.gpx", "gpx")
