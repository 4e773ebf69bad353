"""Bulk scanning of photo sources into candidate catalog records."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Protocol

from PIL import Image

from fishlog.catalog import PhotoRecord
from fishlog.classifier import SpeciesClassifier
from fishlog.config import IngestConfig
from fishlog.dedup import SessionDuplicateIndex
from fishlog.geocoding import CoordinateResolver
from fishlog.hasher import SIMILARITY_THRESHOLD, compute_content_hash, compute_perceptual_hash, decode_image
from fishlog.metadata import MetadataExtractor
from utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".jpg",
        ".jpeg",
        ".png",
        ".heic",
        ".webp",
    }
)


@dataclass(frozen=True)
class SourceItem:
    """One photo from a bulk source with its best-effort native metadata."""

    data: bytes
    native_timestamp: datetime | None = None
    native_coordinates: tuple[float, float] | None = None
    source_name: str = ""


class PhotoSource(Protocol):
    """Finite, enumerable sequence of source items with a known size."""

    def __iter__(self) -> Iterator[SourceItem]: ...

    def __len__(self) -> int: ...


class InMemoryPhotoSource:
    """Photo source over an in-memory list of items."""

    def __init__(self, items: Iterable[SourceItem]) -> None:
        self._items = list(items)

    def __iter__(self) -> Iterator[SourceItem]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


class FolderPhotoSource:
    """Recursively read image files under album roots.

    Files are visited in sorted path order. The file modification time is the
    native timestamp; folders carry no native coordinates. Unreadable files
    are still yielded (with empty bytes) so progress accounting stays exact.
    """

    def __init__(self, roots: Sequence[Path], extensions: Iterable[str] | None = None) -> None:
        self._roots = list(roots)
        self._extensions = frozenset(ext.lower() for ext in extensions) if extensions else DEFAULT_IMAGE_EXTENSIONS
        self._paths: list[Path] | None = None

    def paths(self) -> list[Path]:
        if self._paths is None:
            found: list[Path] = []
            for root in self._roots:
                if not root.exists() or not root.is_dir():
                    LOGGER.warning("scan_root_missing", extra={"root": str(root)})
                    continue
                found.extend(
                    path for path in root.rglob("*") if path.is_file() and path.suffix.lower() in self._extensions
                )
            self._paths = sorted(found)
        return self._paths

    def __len__(self) -> int:
        return len(self.paths())

    def __iter__(self) -> Iterator[SourceItem]:
        for path in self.paths():
            try:
                data = path.read_bytes()
                mtime: datetime | None = datetime.fromtimestamp(path.stat().st_mtime)
            except OSError as exc:
                LOGGER.warning("scan_file_unreadable", extra={"path": str(path), "error": str(exc)})
                data, mtime = b"", None
            yield SourceItem(data=data, native_timestamp=mtime, source_name=str(path))


@dataclass
class ScanProgress:
    """Observable progress of a running scan."""

    total: int = 0
    processed: int = 0
    yielded: int = 0
    skipped: int = 0

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 1.0 if self.processed else 0.0
        return min(1.0, self.processed / self.total)


@dataclass(frozen=True)
class ScannedPhoto:
    """A record produced by a scan together with the bytes it describes.

    ``record.blob_ref`` stays empty until the photo is imported.
    """

    record: PhotoRecord
    data: bytes = field(repr=False)


class BatchScanner:
    """Finds new, distinct subject photos in a bulk source.

    Each call to :meth:`scan` builds a fresh :class:`SessionDuplicateIndex`;
    photos are only deduplicated against each other, never against the
    persisted catalog. The import pass handles the catalog.
    """

    def __init__(
        self,
        *,
        classifier: SpeciesClassifier,
        resolver: CoordinateResolver,
        extractor: MetadataExtractor | None = None,
        config: IngestConfig | None = None,
        threshold: int = SIMILARITY_THRESHOLD,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()).upper(),
    ) -> None:
        self._classifier = classifier
        self._resolver = resolver
        self._extractor = extractor or MetadataExtractor()
        self._config = config or IngestConfig()
        self._threshold = threshold
        self._clock = clock
        self._id_factory = id_factory
        self._logger = get_logger(__name__, extra={"component": "scanner"})
        self.progress = ScanProgress()

    async def scan(self, source: PhotoSource) -> AsyncIterator[ScannedPhoto]:
        """Yield distinct subject photos from ``source`` in source order.

        ``progress`` is reset at the start and advanced after every item,
        whether it was yielded or skipped. A failure on one item skips that
        item only.
        """

        index = SessionDuplicateIndex(threshold=self._threshold)
        progress = ScanProgress(total=len(source))
        self.progress = progress
        log_interval = max(1, progress.total // 20) if progress.total else 1

        self._logger.info("scan_start", extra={"total": progress.total})

        for item in source:
            try:
                scanned = await self._process_item(item, index)
            except Exception as exc:
                self._logger.error(
                    "scan_item_failed",
                    extra={"source_name": item.source_name, "error": str(exc)},
                    exc_info=True,
                )
                scanned = None

            progress.processed += 1
            if scanned is None:
                progress.skipped += 1
            else:
                progress.yielded += 1

            if progress.processed % log_interval == 0 or progress.processed == progress.total:
                self._logger.info(
                    "scan_progress %s/%s (%.1f%%)",
                    progress.processed,
                    progress.total,
                    progress.fraction * 100.0,
                    extra={"processed": progress.processed, "total": progress.total, "yielded": progress.yielded},
                )

            if scanned is not None:
                yield scanned

        self._logger.info(
            "scan_complete",
            extra={"total": progress.total, "yielded": progress.yielded, "skipped": progress.skipped},
        )

    async def _process_item(self, item: SourceItem, index: SessionDuplicateIndex) -> ScannedPhoto | None:
        image = await asyncio.to_thread(decode_image, item.data)
        if image is None:
            self._logger.info("scan_skip_undecodable", extra={"source_name": item.source_name})
            return None

        result = await asyncio.to_thread(self._classifier.classify, image)
        if not result.is_match:
            self._logger.debug("scan_skip_no_subject", extra={"source_name": item.source_name})
            return None

        exact_hash = compute_content_hash(item.data)
        if index.has_exact(exact_hash):
            self._logger.info("scan_skip_exact_duplicate", extra={"source_name": item.source_name})
            return None

        phash = await asyncio.to_thread(compute_perceptual_hash, image)
        if phash is None:
            self._logger.info("scan_skip_undecodable", extra={"source_name": item.source_name})
            return None

        nearest = index.match(phash)
        if nearest is not None:
            self._logger.info(
                "scan_skip_near_duplicate",
                extra={"source_name": item.source_name, "matched_record": nearest[0], "distance": nearest[1]},
            )
            return None

        record = await self._build_record(self._id_factory(), item, image, exact_hash, phash, result.label)
        index.add(exact_hash, phash, record.id)
        return ScannedPhoto(record=record, data=item.data)

    async def _build_record(
        self,
        record_id: str,
        item: SourceItem,
        image: Image.Image,
        exact_hash: str,
        phash: str,
        label: str,
    ) -> PhotoRecord:
        metadata = await asyncio.to_thread(self._extractor.extract_from_image, image)
        coordinates = item.native_coordinates or metadata.coordinates
        latitude, longitude = coordinates if coordinates else (None, None)

        location = await self._resolver.describe(latitude, longitude)

        return PhotoRecord(
            id=record_id,
            blob_ref="",
            location=location or self._config.unknown_location,
            timestamp=metadata.timestamp or item.native_timestamp or self._clock(),
            exact_hash=exact_hash,
            perceptual_hash=phash,
            species=label or self._config.unknown_species,
            latitude=latitude,
            longitude=longitude,
        )


__all__ = [
    "BatchScanner",
    "DEFAULT_IMAGE_EXTENSIONS",
    "FolderPhotoSource",
    "InMemoryPhotoSource",
    "PhotoSource",
    "ScanProgress",
    "ScannedPhoto",
    "SourceItem",
]
