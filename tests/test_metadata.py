"""EXIF timestamp and GPS parsing."""

from __future__ import annotations

from datetime import datetime

import pytest
from PIL import Image
from PIL.ExifTags import GPS

from conftest import jpeg_with_exif, jpeg_with_gps, png_bytes
from fishlog.metadata import (
    MetadataExtractor,
    dms_to_decimal,
    parse_coordinate,
    parse_exif_datetime,
    parse_gps_block,
)


def _gps(lat, lat_ref, lon, lon_ref) -> dict:
    return {
        GPS.GPSLatitude: lat,
        GPS.GPSLatitudeRef: lat_ref,
        GPS.GPSLongitude: lon,
        GPS.GPSLongitudeRef: lon_ref,
    }


@pytest.mark.parametrize(
    ("dms", "ref", "expected"),
    [
        ((40, 0, 0), "N", 40.0),
        ((74, 0, 0), "W", -74.0),
        ((40, 30, 0), "S", -40.5),
        ((12, 15, 36), "E", 12.26),
    ],
)
def test_dms_to_decimal(dms, ref, expected) -> None:
    assert dms_to_decimal(dms, ref) == pytest.approx(expected)


def test_dms_to_decimal_rejects_non_sequences() -> None:
    with pytest.raises(ValueError):
        dms_to_decimal(40, "N")


def test_parse_coordinate_accepts_decimal_degrees() -> None:
    assert parse_coordinate(40.7128, "N") == pytest.approx(40.7128)
    assert parse_coordinate(74.006, "W") == pytest.approx(-74.006)
    assert parse_coordinate(74.006, b"W\x00") == pytest.approx(-74.006)


def test_parse_coordinate_requires_hemisphere() -> None:
    assert parse_coordinate(40.0, None) is None
    assert parse_coordinate(40.0, "Q") is None
    assert parse_coordinate((40, 0), "N") is None


def test_parse_gps_block_returns_both_coordinates() -> None:
    coords = parse_gps_block(_gps((40, 0, 0), "N", (74, 0, 0), "W"))

    assert coords == pytest.approx((40.0, -74.0))


def test_parse_gps_block_is_all_or_nothing() -> None:
    partial = {GPS.GPSLatitude: (40, 0, 0), GPS.GPSLatitudeRef: "N"}

    assert parse_gps_block(partial) is None
    assert parse_gps_block({}) is None


def test_parse_gps_block_rejects_out_of_range_values() -> None:
    assert parse_gps_block(_gps(95.0, "N", 10.0, "E")) is None
    assert parse_gps_block(_gps(10.0, "N", 181.0, "E")) is None


def test_parse_exif_datetime() -> None:
    assert parse_exif_datetime("2023:06:15 10:30:00") == datetime(2023, 6, 15, 10, 30)
    assert parse_exif_datetime(b"2023:06:15 10:30:00\x00") == datetime(2023, 6, 15, 10, 30)
    assert parse_exif_datetime("2023-06-15 10:30:00") is None
    assert parse_exif_datetime("    ") is None
    assert parse_exif_datetime(None) is None


def test_extract_prefers_capture_time() -> None:
    data = jpeg_with_exif(original="2023:06:15 10:30:00", ifd0_datetime="2024:01:01 00:00:00")

    metadata = MetadataExtractor().extract(data)

    assert metadata.timestamp == datetime(2023, 6, 15, 10, 30)
    assert metadata.coordinates is None


def test_extract_falls_back_to_container_datetime() -> None:
    metadata = MetadataExtractor().extract(jpeg_with_exif(ifd0_datetime="2022:08:01 06:45:10"))

    assert metadata.timestamp == datetime(2022, 8, 1, 6, 45, 10)


def test_extract_skips_unparseable_candidates() -> None:
    data = jpeg_with_exif(original="not a date", ifd0_datetime="2022:08:01 06:45:10")

    assert MetadataExtractor().extract(data).timestamp == datetime(2022, 8, 1, 6, 45, 10)


def test_extract_without_metadata_is_empty() -> None:
    metadata = MetadataExtractor().extract(png_bytes(Image.new("RGB", (8, 8), color="red")))

    assert metadata.timestamp is None
    assert metadata.latitude is None
    assert metadata.longitude is None


def test_extract_from_undecodable_bytes_is_empty() -> None:
    metadata = MetadataExtractor().extract(b"definitely not an image")

    assert metadata.timestamp is None
    assert metadata.coordinates is None


def test_extract_reads_gps_block_from_photo() -> None:
    data = jpeg_with_gps((40.0, 30.0, 0.0), "S", (74.0, 0.0, 0.0), "W")

    metadata = MetadataExtractor().extract(data)

    assert metadata.coordinates == pytest.approx((-40.5, -74.0))
    assert metadata.timestamp is None


def test_extract_reads_northern_eastern_coordinates() -> None:
    data = jpeg_with_gps((12.0, 15.0, 36.0), "N", (100.0, 30.0, 0.0), "E")

    assert MetadataExtractor().extract(data).coordinates == pytest.approx((12.26, 100.5))
