"""Exact and near-duplicate detection against existing photo records."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from PIL import Image

from fishlog.catalog import PhotoRecord
from fishlog.hasher import (
    SIMILARITY_THRESHOLD,
    compute_content_hash,
    compute_perceptual_hash,
    decode_image,
    hamming_distance,
)
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "dedup"})

T = TypeVar("T")


@dataclass(frozen=True)
class DuplicateVerdict:
    """Outcome of comparing a new photo against a record set.

    The fingerprints are always populated (``perceptual_hash`` is None only
    when the image could not be decoded) so an accepted photo can reuse them.
    """

    is_duplicate: bool
    exact_hash: str
    perceptual_hash: str | None
    matched_record: PhotoRecord | None = None
    distance: int | None = None


def find_nearest(phash: str, candidates: Iterable[tuple[str | None, T]]) -> tuple[T, int] | None:
    """Return the candidate with the smallest Hamming distance to ``phash``.

    Candidates without a comparable fingerprint (missing or of another length)
    are ignored. Ties keep the earliest candidate.
    """

    best: tuple[T, int] | None = None
    for candidate_hash, payload in candidates:
        if not candidate_hash:
            continue
        distance = hamming_distance(phash, candidate_hash)
        if distance is None:
            continue
        if best is None or distance < best[1]:
            best = (payload, distance)
            if distance == 0:
                break
    return best


class Deduplicator:
    """Classifies incoming photo bytes against existing catalog records."""

    def __init__(self, threshold: int = SIMILARITY_THRESHOLD) -> None:
        if not 0 <= threshold <= 64:
            raise ValueError(f"similarity threshold must be within 0..64, got {threshold}")
        self._threshold = threshold

    @property
    def threshold(self) -> int:
        return self._threshold

    def is_similar(self, distance: int) -> bool:
        """Whether a Hamming distance still counts as the same photo (inclusive)."""

        return distance <= self._threshold

    def check(
        self,
        data: bytes,
        existing: Sequence[PhotoRecord],
        *,
        image: Image.Image | None = None,
    ) -> DuplicateVerdict:
        """Compare ``data`` against ``existing`` records.

        An exact fingerprint match short-circuits before any decoding. When the
        image cannot be decoded the verdict is non-duplicate: only exact-match
        protection applies to it.

        Args:
            data: Raw photo bytes.
            existing: Records to compare against.
            image: Already decoded form of ``data``, when the caller has one.
        """

        exact_hash = compute_content_hash(data)
        for record in existing:
            if record.exact_hash == exact_hash:
                LOGGER.info("duplicate_exact_match", extra={"record_id": record.id})
                phash = record.perceptual_hash
                return DuplicateVerdict(
                    is_duplicate=True,
                    exact_hash=exact_hash,
                    perceptual_hash=phash if phash is not None else self._perceptual_hash(data, image),
                    matched_record=record,
                    distance=0,
                )

        phash = self._perceptual_hash(data, image)
        if phash is None:
            LOGGER.info("duplicate_similarity_skipped", extra={"exact_hash": exact_hash})
            return DuplicateVerdict(is_duplicate=False, exact_hash=exact_hash, perceptual_hash=None)

        nearest = find_nearest(phash, ((record.perceptual_hash, record) for record in existing))
        if nearest is None:
            return DuplicateVerdict(is_duplicate=False, exact_hash=exact_hash, perceptual_hash=phash)

        record, distance = nearest
        if self.is_similar(distance):
            LOGGER.info("duplicate_near_match", extra={"record_id": record.id, "distance": distance})
            return DuplicateVerdict(
                is_duplicate=True,
                exact_hash=exact_hash,
                perceptual_hash=phash,
                matched_record=record,
                distance=distance,
            )

        return DuplicateVerdict(
            is_duplicate=False,
            exact_hash=exact_hash,
            perceptual_hash=phash,
            distance=distance,
        )

    @staticmethod
    def _perceptual_hash(data: bytes, image: Image.Image | None) -> str | None:
        decoded = image if image is not None else decode_image(data)
        if decoded is None:
            return None
        return compute_perceptual_hash(decoded)


@dataclass
class SessionDuplicateIndex:
    """Fingerprints seen during one scan; never shared across scans.

    Holds the set of exact fingerprints and the ``(perceptual fingerprint,
    record id)`` pairs accepted so far.
    """

    threshold: int = SIMILARITY_THRESHOLD
    exact_hashes: set[str] = field(default_factory=set)
    perceptual_hashes: list[tuple[str, str]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.perceptual_hashes)

    def has_exact(self, exact_hash: str) -> bool:
        return exact_hash in self.exact_hashes

    def nearest(self, phash: str) -> tuple[str, int] | None:
        """Return ``(record_id, distance)`` of the closest accepted photo."""

        return find_nearest(phash, self.perceptual_hashes)

    def match(self, phash: str) -> tuple[str, int] | None:
        """Return the closest accepted photo when it is within ``threshold``."""

        nearest = self.nearest(phash)
        if nearest is None or nearest[1] > self.threshold:
            return None
        return nearest

    def is_near_duplicate(self, phash: str) -> bool:
        return self.match(phash) is not None

    def add(self, exact_hash: str, phash: str, record_id: str) -> None:
        self.exact_hashes.add(exact_hash)
        self.perceptual_hashes.append((phash, record_id))


__all__ = ["DuplicateVerdict", "Deduplicator", "SessionDuplicateIndex", "find_nearest"]
