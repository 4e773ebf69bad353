"""Content and perceptual hashing helpers for photos."""

from __future__ import annotations

import hashlib
import io
from typing import Final

import numpy as np
from PIL import Image, UnidentifiedImageError
from PIL.Image import Resampling

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "hasher"})

PHASH_GRID_SIZE: Final[int] = 8
PHASH_LENGTH: Final[int] = PHASH_GRID_SIZE * PHASH_GRID_SIZE
SIMILARITY_THRESHOLD: Final[int] = 10


def compute_content_hash(data: bytes) -> str:
    """Compute the exact-match fingerprint for raw photo bytes.

    Returns:
        SHA-256 digest as a 64-character lowercase hexadecimal string.
    """

    return hashlib.sha256(data).hexdigest()


def decode_image(data: bytes) -> Image.Image | None:
    """Decode raw bytes into a fully loaded PIL image.

    Returns ``None`` for corrupt, truncated or unsupported input instead of
    raising, so callers can treat the photo as non-comparable.
    """

    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        LOGGER.warning("image_decode_failed", extra={"size_bytes": len(data), "error": str(exc)})
        return None
    return image


def compute_perceptual_hash(image: Image.Image) -> str | None:
    """Compute the 64-bit average hash for an image.

    - Convert to 8-bit grayscale and box-resample to an 8×8 grid.
    - Compute the arithmetic mean of the 64 samples.
    - Emit ``1`` for each sample strictly above the mean, else ``0``, in
      row-major order.

    Returns:
        A 64-character string of ``0``/``1`` symbols, or ``None`` when the
        image cannot be resampled.
    """

    try:
        gray = image.convert("L").resize((PHASH_GRID_SIZE, PHASH_GRID_SIZE), resample=Resampling.BOX)
    except (OSError, ValueError) as exc:
        LOGGER.warning("phash_resample_failed", extra={"mode": image.mode, "error": str(exc)})
        return None

    pixels = np.asarray(gray, dtype=np.float64).reshape(-1)
    mean = pixels.mean()
    return "".join("1" if value > mean else "0" for value in pixels)


def perceptual_hash_from_bytes(data: bytes) -> str | None:
    """Decode ``data`` and return its perceptual hash, or ``None`` on failure."""

    image = decode_image(data)
    if image is None:
        return None
    return compute_perceptual_hash(image)


def hamming_distance(a: str, b: str) -> int | None:
    """Count differing positions between two perceptual hashes.

    Hashes of unequal length are not comparable and yield ``None``; they are
    never truncated to a common prefix.
    """

    if len(a) != len(b):
        LOGGER.debug("phash_length_mismatch", extra={"len_a": len(a), "len_b": len(b)})
        return None
    return sum(1 for lhs, rhs in zip(a, b) if lhs != rhs)


def is_valid_perceptual_hash(value: object) -> bool:
    """Return True for a well-formed 64-symbol ``0``/``1`` fingerprint."""

    return isinstance(value, str) and len(value) == PHASH_LENGTH and set(value) <= {"0", "1"}


__all__ = [
    "PHASH_LENGTH",
    "SIMILARITY_THRESHOLD",
    "compute_content_hash",
    "compute_perceptual_hash",
    "decode_image",
    "hamming_distance",
    "is_valid_perceptual_hash",
    "perceptual_hash_from_bytes",
]
