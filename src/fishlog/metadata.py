"""Capture timestamp and GPS extraction from embedded image metadata.

Timestamps are taken from the first parseable candidate in this order:

1. Exif sub-IFD ``DateTimeOriginal`` (capture time).
2. Exif sub-IFD ``DateTimeDigitized``.
3. Exif sub-IFD ``DateTime`` (generic modification time).
4. IFD0 / TIFF container ``DateTime``.

Coordinates come from the GPS IFD and accept either decimal degrees or a
degrees/minutes/seconds triple, each paired with a hemisphere reference.
Latitude and longitude are returned together or not at all.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from numbers import Real
from typing import Any

from PIL import Image
from PIL.ExifTags import GPS, IFD, Base as ExifBase

from fishlog.hasher import decode_image
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "metadata"})

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

_PRIMARY_DATETIME_TAGS = (
    ExifBase.DateTimeOriginal,
    ExifBase.DateTimeDigitized,
    ExifBase.DateTime,
)


@dataclass(frozen=True)
class CaptureMetadata:
    """Metadata fields recovered from a photo; any of them may be absent."""

    timestamp: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None

    @property
    def coordinates(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


def _clean_text(value: Any) -> str | None:
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    if not isinstance(value, str):
        return None
    text = value.strip().strip("\x00").strip()
    return text or None


def parse_exif_datetime(value: Any) -> datetime | None:
    """Parse an EXIF ``YYYY:MM:DD HH:MM:SS`` string; other shapes yield None."""

    text = _clean_text(value)
    if text is None:
        return None
    try:
        return datetime.strptime(text, EXIF_DATETIME_FORMAT)
    except ValueError:
        LOGGER.debug("exif_datetime_unparseable", extra={"value": text})
        return None


def dms_to_decimal(dms: Any, ref: str) -> float:
    """Convert a ``[degrees, minutes, seconds]`` triple to signed decimal degrees.

    Raises:
        ValueError: if ``dms`` does not hold three numeric components.
    """

    try:
        degrees, minutes, seconds = (float(part) for part in dms)
    except TypeError as exc:
        raise ValueError(f"DMS value must be a sequence of three numbers, got {dms!r}") from exc
    return apply_hemisphere(degrees + minutes / 60.0 + seconds / 3600.0, ref)


def apply_hemisphere(magnitude: float, ref: str) -> float:
    """Negate ``magnitude`` for southern and western references."""

    if ref.upper() in ("S", "W"):
        return -abs(magnitude)
    return magnitude


def parse_coordinate(value: Any, ref: Any) -> float | None:
    """Decode one GPS coordinate from decimal or DMS form, or return None."""

    hemisphere = _clean_text(ref)
    if hemisphere is None or hemisphere.upper() not in ("N", "S", "E", "W"):
        return None

    if isinstance(value, Real) and not isinstance(value, bool):
        return apply_hemisphere(float(value), hemisphere)

    if isinstance(value, (tuple, list)) and len(value) == 3:
        try:
            return dms_to_decimal(value, hemisphere)
        except ValueError:
            return None

    return None


def parse_gps_block(gps: Mapping[Any, Any]) -> tuple[float, float] | None:
    """Extract ``(latitude, longitude)`` from a GPS IFD mapping.

    Returns None when either coordinate is missing, malformed or out of range.
    """

    if not gps:
        return None

    latitude = parse_coordinate(gps.get(GPS.GPSLatitude), gps.get(GPS.GPSLatitudeRef))
    longitude = parse_coordinate(gps.get(GPS.GPSLongitude), gps.get(GPS.GPSLongitudeRef))
    if latitude is None or longitude is None:
        return None

    if not (-90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0):
        LOGGER.debug("gps_out_of_range", extra={"latitude": latitude, "longitude": longitude})
        return None

    return latitude, longitude


def _resolve_timestamp(exif: Image.Exif, exif_ifd: Mapping[Any, Any]) -> datetime | None:
    for tag in _PRIMARY_DATETIME_TAGS:
        parsed = parse_exif_datetime(exif_ifd.get(tag))
        if parsed is not None:
            return parsed

    return parse_exif_datetime(exif.get(ExifBase.DateTime))


class MetadataExtractor:
    """Pulls capture timestamp and coordinates out of embedded image metadata."""

    def extract(self, data: bytes) -> CaptureMetadata:
        """Extract metadata from raw bytes; undecodable input yields empty metadata."""

        image = decode_image(data)
        if image is None:
            return CaptureMetadata()
        return self.extract_from_image(image)

    def extract_from_image(self, image: Image.Image) -> CaptureMetadata:
        """Extract metadata from an already decoded image."""

        try:
            exif = image.getexif()
        except (OSError, ValueError, SyntaxError) as exc:
            LOGGER.debug("exif_read_failed", extra={"error": str(exc)})
            return CaptureMetadata()

        if not exif:
            return CaptureMetadata()

        try:
            exif_ifd = exif.get_ifd(IFD.Exif)
            gps_ifd = exif.get_ifd(IFD.GPSInfo)
        except (OSError, ValueError, KeyError, SyntaxError) as exc:
            LOGGER.debug("exif_ifd_read_failed", extra={"error": str(exc)})
            exif_ifd, gps_ifd = {}, {}

        timestamp = _resolve_timestamp(exif, exif_ifd)
        coords = parse_gps_block(gps_ifd)

        if coords is None:
            return CaptureMetadata(timestamp=timestamp)
        return CaptureMetadata(timestamp=timestamp, latitude=coords[0], longitude=coords[1])


__all__ = [
    "CaptureMetadata",
    "EXIF_DATETIME_FORMAT",
    "MetadataExtractor",
    "apply_hemisphere",
    "dms_to_decimal",
    "parse_coordinate",
    "parse_exif_datetime",
    "parse_gps_block",
]
