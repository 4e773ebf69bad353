"""Single-photo ingestion through dedup, metadata resolution and storage."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from conftest import CHECKER_BITS, HALVES_BITS, flip_bits, jpeg_with_exif, make_record, pattern_png
from fishlog.blob_store import FileBlobStore
from fishlog.config import IngestConfig
from fishlog.dedup import Deduplicator
from fishlog.errors import PersistenceError
from fishlog.geocoding import CoordinateResolver, NullGeocoder
from fishlog.hasher import compute_content_hash
from fishlog.ingest import REASON_DECODE_FAILURE, REASON_DUPLICATE, IngestPipeline
from fishlog.metadata import MetadataExtractor

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0)


class _FakeGeocoder:
    def __init__(self) -> None:
        self.queries: list[str] = []

    async def forward(self, text):
        self.queries.append(text)
        return 39.09, -120.03

    async def reverse(self, latitude, longitude):
        return None


class _FailingBlobStore:
    def write(self, blob_id, data):
        raise PersistenceError("disk full")


def _ids():
    counter = iter(range(1, 1000))
    return lambda: f"REC-{next(counter)}"


def _pipeline(blob_store, geocoder=None, **kwargs) -> IngestPipeline:
    return IngestPipeline(
        deduplicator=Deduplicator(10),
        extractor=MetadataExtractor(),
        resolver=CoordinateResolver(geocoder or NullGeocoder(), timeout=1.0),
        blob_store=blob_store,
        clock=lambda: FIXED_NOW,
        id_factory=_ids(),
        **kwargs,
    )


def test_accepts_new_photo(blob_store: FileBlobStore) -> None:
    data = pattern_png(CHECKER_BITS)

    record = asyncio.run(
        _pipeline(blob_store).ingest(data, catalog_snapshot=[], location="", species="Walleye")
    )

    assert record is not None
    assert record.id == "REC-1"
    assert record.blob_ref == "REC-1.jpg"
    assert blob_store.read(record.blob_ref) == data
    assert record.exact_hash == compute_content_hash(data)
    assert record.perceptual_hash == CHECKER_BITS
    assert record.species == "Walleye"
    assert record.location == "Unknown Location"
    assert record.timestamp == FIXED_NOW
    assert record.coordinates is None


def test_defaults_species_label(blob_store: FileBlobStore) -> None:
    config = IngestConfig(unknown_species="Mystery Fish")

    record = asyncio.run(
        _pipeline(blob_store, config=config).ingest(pattern_png(CHECKER_BITS), catalog_snapshot=[])
    )

    assert record.species == "Mystery Fish"


def test_near_duplicate_is_rejected_without_writing(blob_store: FileBlobStore) -> None:
    existing = make_record("R1", perceptual_hash=CHECKER_BITS)

    result = asyncio.run(
        _pipeline(blob_store).run(pattern_png(flip_bits(CHECKER_BITS, 5)), catalog_snapshot=[existing])
    )

    assert not result.accepted
    assert result.reason == REASON_DUPLICATE
    assert result.verdict.matched_record.id == "R1"
    assert result.verdict.distance == 5
    assert list(blob_store.iter_refs()) == []


def test_reingesting_same_bytes_matches_first_record(blob_store: FileBlobStore) -> None:
    data = pattern_png(HALVES_BITS)
    pipeline = _pipeline(blob_store)

    first = asyncio.run(pipeline.ingest(data, catalog_snapshot=[]))
    second = asyncio.run(pipeline.run(data, catalog_snapshot=[first]))

    assert first is not None
    assert second.record is None
    assert second.reason == REASON_DUPLICATE
    assert second.verdict.is_duplicate
    assert second.verdict.matched_record is first
    assert second.verdict.distance == 0
    assert list(blob_store.iter_refs()) == [first.blob_ref]


def test_force_stores_duplicate(blob_store: FileBlobStore) -> None:
    existing = make_record("R1", perceptual_hash=CHECKER_BITS)

    record = asyncio.run(
        _pipeline(blob_store).ingest(pattern_png(CHECKER_BITS), catalog_snapshot=[existing], force=True)
    )

    assert record is not None
    assert record.id != "R1"
    assert blob_store.exists(record.blob_ref)


def test_undecodable_bytes_are_not_added(blob_store: FileBlobStore) -> None:
    result = asyncio.run(_pipeline(blob_store).run(b"not an image at all", catalog_snapshot=[]))

    assert result.record is None
    assert result.reason == REASON_DECODE_FAILURE
    assert list(blob_store.iter_refs()) == []


def test_timestamp_comes_from_exif(blob_store: FileBlobStore) -> None:
    data = jpeg_with_exif(original="2023:06:15 10:30:00")

    record = asyncio.run(_pipeline(blob_store).ingest(data, catalog_snapshot=[]))

    assert record.timestamp == datetime(2023, 6, 15, 10, 30)


def test_timestamp_override_wins(blob_store: FileBlobStore) -> None:
    data = jpeg_with_exif(original="2023:06:15 10:30:00")
    override = datetime(2020, 1, 2, 3, 4, 5)

    record = asyncio.run(_pipeline(blob_store).ingest(data, catalog_snapshot=[], timestamp=override))

    assert record.timestamp == override


def test_location_text_is_geocoded(blob_store: FileBlobStore) -> None:
    geocoder = _FakeGeocoder()

    record = asyncio.run(
        _pipeline(blob_store, geocoder).ingest(pattern_png(CHECKER_BITS), catalog_snapshot=[], location="Lake Tahoe")
    )

    assert record.location == "Lake Tahoe"
    assert record.coordinates == (39.09, -120.03)
    assert geocoder.queries == ["Lake Tahoe"]


def test_known_coordinates_skip_geocoding(blob_store: FileBlobStore) -> None:
    geocoder = _FakeGeocoder()

    result = asyncio.run(
        _pipeline(blob_store, geocoder).run(
            pattern_png(CHECKER_BITS),
            catalog_snapshot=[],
            location="Lake Tahoe",
            coordinates=(45.5, -122.6),
        )
    )

    assert result.record.coordinates == (45.5, -122.6)
    assert geocoder.queries == []


def test_unknown_location_label_is_not_geocoded(blob_store: FileBlobStore) -> None:
    geocoder = _FakeGeocoder()

    record = asyncio.run(
        _pipeline(blob_store, geocoder).ingest(
            pattern_png(CHECKER_BITS), catalog_snapshot=[], location="Unknown Location"
        )
    )

    assert record.coordinates is None
    assert geocoder.queries == []


def test_blob_failure_propagates() -> None:
    with pytest.raises(PersistenceError):
        asyncio.run(_pipeline(_FailingBlobStore()).ingest(pattern_png(CHECKER_BITS), catalog_snapshot=[]))
