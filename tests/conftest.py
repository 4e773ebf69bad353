"""Shared fixtures: synthetic photos with controlled fingerprints and metadata."""

from __future__ import annotations

import io
import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path

import numpy as np
import pytest
from PIL import Image
from PIL.ExifTags import GPS, IFD, Base as ExifBase
from PIL.Image import Resampling

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))
os.environ.setdefault("FISHLOG_LOG_DIR", str(Path(tempfile.gettempdir()) / "fishlog-test-log"))

from fishlog.blob_store import FileBlobStore  # noqa: E402
from fishlog.catalog import Catalog, PhotoRecord  # noqa: E402

# 32 ones in a checkerboard; every cell is strictly above or below the mean.
CHECKER_BITS = "".join("1" if (i // 8 + i % 8) % 2 == 0 else "0" for i in range(64))
HALVES_BITS = "1" * 32 + "0" * 32


def flip_bits(bits: str, count: int) -> str:
    """Flip the first ``count`` positions of a bit pattern."""

    flipped = ["1" if bit == "0" else "0" for bit in bits[:count]]
    return "".join(flipped) + bits[count:]


def pattern_image(bits: str, size: int = 64) -> Image.Image:
    """Grayscale image whose 8x8 average hash is exactly ``bits``."""

    cells = np.array([255 if bit == "1" else 0 for bit in bits], dtype=np.uint8).reshape(8, 8)
    return Image.fromarray(cells).resize((size, size), resample=Resampling.NEAREST)


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def pattern_png(bits: str, size: int = 64) -> bytes:
    return png_bytes(pattern_image(bits, size))


def jpeg_with_exif(
    *,
    original: str | None = None,
    ifd0_datetime: str | None = None,
    color: str = "navy",
) -> bytes:
    """JPEG carrying the given EXIF timestamps."""

    exif = Image.Exif()
    if ifd0_datetime is not None:
        exif[ExifBase.DateTime] = ifd0_datetime
    if original is not None:
        exif[IFD.Exif] = {ExifBase.DateTimeOriginal: original}

    buffer = io.BytesIO()
    Image.new("RGB", (32, 32), color=color).save(buffer, format="JPEG", exif=exif)
    return buffer.getvalue()


def jpeg_with_gps(latitude: tuple, latitude_ref: str, longitude: tuple, longitude_ref: str) -> bytes:
    """JPEG carrying a GPS IFD with degrees/minutes/seconds coordinates."""

    exif = Image.Exif()
    exif[IFD.GPSInfo] = {
        GPS.GPSLatitudeRef: latitude_ref,
        GPS.GPSLatitude: latitude,
        GPS.GPSLongitudeRef: longitude_ref,
        GPS.GPSLongitude: longitude,
    }

    buffer = io.BytesIO()
    Image.new("RGB", (32, 32), color="teal").save(buffer, format="JPEG", exif=exif)
    return buffer.getvalue()


def make_record(record_id: str, *, exact_hash: str = "", perceptual_hash: str | None = None, **overrides) -> PhotoRecord:
    fields = {
        "id": record_id,
        "blob_ref": f"{record_id}.jpg",
        "location": "Lake Tahoe",
        "timestamp": datetime(2023, 6, 15, 10, 30),
        "exact_hash": exact_hash or f"hash-{record_id}",
        "perceptual_hash": perceptual_hash,
        "species": "Rainbow Trout",
    }
    fields.update(overrides)
    return PhotoRecord(**fields)


@pytest.fixture
def blob_store(tmp_path: Path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "blobs")


@pytest.fixture
def catalog(tmp_path: Path, blob_store: FileBlobStore) -> Catalog:
    return Catalog(tmp_path / "catalog.json", blob_store)
