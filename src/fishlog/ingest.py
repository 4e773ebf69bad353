"""Single-photo ingestion: dedup, metadata resolution and blob persistence."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from fishlog.blob_store import BlobStore
from fishlog.catalog import PhotoRecord
from fishlog.config import IngestConfig
from fishlog.dedup import Deduplicator, DuplicateVerdict
from fishlog.geocoding import CoordinateResolver
from fishlog.hasher import decode_image
from fishlog.metadata import CaptureMetadata, MetadataExtractor
from utils.logging import get_logger

REASON_DUPLICATE = "duplicate"
REASON_DECODE_FAILURE = "decode_failure"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of one ingestion attempt.

    ``record`` is set when the photo was accepted; otherwise ``reason`` names
    why it was not added (``duplicate`` or ``decode_failure``).
    """

    record: PhotoRecord | None
    verdict: DuplicateVerdict
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.record is not None


def _new_identifier() -> str:
    return str(uuid.uuid4()).upper()


class IngestPipeline:
    """Turns raw photo bytes into a new :class:`PhotoRecord`.

    The pipeline writes the blob but never touches the catalog: appending the
    returned record and saving the catalog is the caller's job.
    """

    def __init__(
        self,
        *,
        deduplicator: Deduplicator,
        extractor: MetadataExtractor,
        resolver: CoordinateResolver,
        blob_store: BlobStore,
        config: IngestConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = _new_identifier,
    ) -> None:
        self._deduplicator = deduplicator
        self._extractor = extractor
        self._resolver = resolver
        self._blob_store = blob_store
        self._config = config or IngestConfig()
        self._clock = clock
        self._id_factory = id_factory
        self._logger = get_logger(__name__, extra={"component": "ingest"})

    async def ingest(
        self,
        data: bytes,
        *,
        catalog_snapshot: Sequence[PhotoRecord],
        location: str | None = None,
        species: str | None = None,
        timestamp: datetime | None = None,
        force: bool = False,
    ) -> PhotoRecord | None:
        """Ingest one photo and return its record, or None when it was not added."""

        result = await self.run(
            data,
            catalog_snapshot=catalog_snapshot,
            location=location,
            species=species,
            timestamp=timestamp,
            force=force,
        )
        return result.record

    async def run(
        self,
        data: bytes,
        *,
        catalog_snapshot: Sequence[PhotoRecord],
        location: str | None = None,
        species: str | None = None,
        timestamp: datetime | None = None,
        coordinates: tuple[float, float] | None = None,
        force: bool = False,
    ) -> IngestResult:
        """Run every ingestion step and report the outcome.

        Args:
            data: Raw photo bytes exactly as they will be stored.
            catalog_snapshot: Records to deduplicate against.
            location: Free-text location; also the geocoding fallback.
            species: Species label; defaults to the unknown-species label.
            timestamp: Capture time overriding the embedded metadata.
            coordinates: Coordinates known from elsewhere (a bulk source), used
                when the embedded metadata carries none.
            force: Store the photo even when it duplicates a catalog record.

        Raises:
            PersistenceError: when the blob cannot be written. Nothing is
                committed in that case.
        """

        image = await asyncio.to_thread(decode_image, data)
        verdict = await asyncio.to_thread(self._deduplicator.check, data, catalog_snapshot, image=image)

        if verdict.is_duplicate:
            matched_id = verdict.matched_record.id if verdict.matched_record else None
            if not force:
                self._logger.info(
                    "ingest_duplicate",
                    extra={"matched_record": matched_id, "distance": verdict.distance},
                )
                return IngestResult(record=None, verdict=verdict, reason=REASON_DUPLICATE)
            self._logger.info("ingest_duplicate_forced", extra={"matched_record": matched_id})

        if image is None or verdict.perceptual_hash is None:
            self._logger.warning("ingest_decode_failure", extra={"size_bytes": len(data)})
            return IngestResult(record=None, verdict=verdict, reason=REASON_DECODE_FAILURE)

        metadata: CaptureMetadata = await asyncio.to_thread(self._extractor.extract_from_image, image)

        resolved_timestamp = timestamp or metadata.timestamp or self._clock()
        known = metadata.coordinates or coordinates
        query = "" if location == self._config.unknown_location else (location or "")
        latitude, longitude = await self._resolver.resolve(
            known[0] if known else None,
            known[1] if known else None,
            query,
        )

        record_id = self._id_factory()
        blob_ref = await asyncio.to_thread(self._blob_store.write, record_id, data)

        record = PhotoRecord(
            id=record_id,
            blob_ref=blob_ref,
            location=location or self._config.unknown_location,
            timestamp=resolved_timestamp,
            exact_hash=verdict.exact_hash,
            perceptual_hash=verdict.perceptual_hash,
            species=species or self._config.unknown_species,
            latitude=latitude,
            longitude=longitude,
        )
        self._logger.info(
            "ingest_accepted",
            extra={
                "record_id": record.id,
                "timestamp_source": "override" if timestamp else ("exif" if metadata.timestamp else "clock"),
                "has_coordinates": record.coordinates is not None,
            },
        )
        return IngestResult(record=record, verdict=verdict)


__all__ = ["IngestPipeline", "IngestResult", "REASON_DECODE_FAILURE", "REASON_DUPLICATE"]
