"""Merge scan results into the persisted catalog."""

from __future__ import annotations

from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass, field

from fishlog.catalog import Catalog, PhotoRecord
from fishlog.ingest import IngestPipeline
from fishlog.scanner import ScannedPhoto
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "importer"})


@dataclass
class ImportSummary:
    """Counts reported after an import pass."""

    total: int = 0
    imported: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    records: list[PhotoRecord] = field(default_factory=list)


class ScanImporter:
    """Runs scanned photos through the ingest pipeline against the catalog.

    The scanner only deduplicates photos within one scan. This pass checks
    each of them against the persisted catalog (and against photos accepted
    earlier in the same pass) and saves the catalog once at the end.
    """

    def __init__(self, pipeline: IngestPipeline, catalog: Catalog) -> None:
        self._pipeline = pipeline
        self._catalog = catalog

    async def import_scan(self, scanned: Iterable[ScannedPhoto] | AsyncIterable[ScannedPhoto]) -> ImportSummary:
        """Ingest every scanned photo and persist the accepted records.

        Raises:
            PersistenceError: when a blob or the catalog cannot be written.
                Records accepted before the failure are not saved.
        """

        records = self._catalog.load()
        summary = ImportSummary()

        async for photo in _aiter(scanned):
            summary.total += 1
            result = await self._pipeline.run(
                photo.data,
                catalog_snapshot=records,
                location=photo.record.location,
                species=photo.record.species,
                timestamp=photo.record.timestamp,
                coordinates=photo.record.coordinates,
            )
            if result.record is None:
                summary.skipped += 1
                reason = result.reason or "unknown"
                summary.skip_reasons[reason] = summary.skip_reasons.get(reason, 0) + 1
                continue

            records.append(result.record)
            summary.records.append(result.record)
            summary.imported += 1

        if summary.imported:
            self._catalog.save(records)

        LOGGER.info(
            "import_summary",
            extra={
                "found": summary.total,
                "imported": summary.imported,
                "skipped": summary.skipped,
                "catalog_size": len(records),
            },
        )
        return summary


async def _aiter(items: Iterable[ScannedPhoto] | AsyncIterable[ScannedPhoto]):
    if isinstance(items, AsyncIterable):
        async for item in items:
            yield item
    else:
        for item in items:
            yield item


__all__ = ["ImportSummary", "ScanImporter"]
