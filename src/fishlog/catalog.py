"""Photo records and the JSON catalog document that holds them."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from fishlog.blob_store import BlobStore
from fishlog.errors import PersistenceError
from fishlog.hasher import is_valid_perceptual_hash
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "catalog"})


def naive_local(value: datetime) -> datetime:
    """Convert an offset-aware timestamp to naive local time; naive values pass through."""

    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


@dataclass(frozen=True)
class PhotoRecord:
    """Catalog entry for one stored photo."""

    id: str
    blob_ref: str
    location: str
    timestamp: datetime
    exact_hash: str
    perceptual_hash: str | None
    species: str
    latitude: float | None = None
    longitude: float | None = None

    def __post_init__(self) -> None:
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must both be set or both be absent")

    @property
    def coordinates(self) -> tuple[float, float] | None:
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "blobRef": self.blob_ref,
            "location": self.location,
            "timestamp": self.timestamp.isoformat(),
            "exactHash": self.exact_hash,
            "perceptualHash": self.perceptual_hash or "",
            "species": self.species,
        }
        if self.latitude is not None and self.longitude is not None:
            payload["latitude"] = self.latitude
            payload["longitude"] = self.longitude
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PhotoRecord":
        """Build a record from its document form.

        Raises:
            KeyError: if a required field is missing.
            ValueError: if the timestamp or coordinates are malformed.
        """

        phash = payload.get("perceptualHash")
        latitude = payload.get("latitude")
        longitude = payload.get("longitude")
        return cls(
            id=str(payload["id"]),
            blob_ref=str(payload["blobRef"]),
            location=str(payload.get("location") or ""),
            timestamp=naive_local(datetime.fromisoformat(str(payload["timestamp"]))),
            exact_hash=str(payload["exactHash"]),
            perceptual_hash=phash if is_valid_perceptual_hash(phash) else None,
            species=str(payload.get("species") or ""),
            latitude=float(latitude) if latitude is not None else None,
            longitude=float(longitude) if longitude is not None else None,
        )


@dataclass(frozen=True)
class CatalogStatus:
    """Read-only consistency report between the document and the blob store."""

    record_count: int
    missing_blobs: list[str] = field(default_factory=list)
    unreferenced_blobs: list[str] = field(default_factory=list)


class Catalog:
    """Owns the in-memory list of records and its on-disk JSON document.

    Every save rewrites the whole document. The catalog performs no locking:
    callers must make sure only one writer saves at a time, otherwise
    concurrent read-modify-write cycles lose updates.
    """

    def __init__(self, path: Path, blob_store: BlobStore) -> None:
        self._path = path
        self._blob_store = blob_store
        self._records: list[PhotoRecord] = []

    @property
    def path(self) -> Path:
        return self._path

    @property
    def blob_store(self) -> BlobStore:
        return self._blob_store

    @property
    def records(self) -> list[PhotoRecord]:
        """Records from the most recent successful load or save."""

        return list(self._records)

    def load(self) -> list[PhotoRecord]:
        """Read the whole document; a missing file is an empty catalog.

        Entries that cannot be decoded are skipped and logged.
        """

        if not self._path.exists():
            self._records = []
            return []

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.error("catalog_load_error", extra={"path": str(self._path), "error": str(exc)})
            raise PersistenceError(f"failed to read catalog {self._path}: {exc}") from exc

        if not isinstance(raw, list):
            raise PersistenceError(f"catalog {self._path} must contain a JSON list")

        records: list[PhotoRecord] = []
        for index, entry in enumerate(raw):
            if not isinstance(entry, dict):
                LOGGER.warning("catalog_entry_invalid", extra={"index": index, "error": "entry is not an object"})
                continue
            try:
                records.append(PhotoRecord.from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("catalog_entry_invalid", extra={"index": index, "error": str(exc)})

        self._records = records
        LOGGER.debug("catalog_loaded", extra={"path": str(self._path), "record_count": len(records)})
        return list(records)

    def save(self, records: Sequence[PhotoRecord]) -> None:
        """Replace the document with ``records``.

        The write goes through a temporary file in the same directory so a
        failed write leaves the previous document and in-memory list intact.

        Raises:
            PersistenceError: when the document cannot be written.
        """

        ids = [record.id for record in records]
        if len(set(ids)) != len(ids):
            raise ValueError("catalog records must have unique identifiers")

        payload = json.dumps([record.to_dict() for record in records], ensure_ascii=False, indent=2)
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self._path.parent, prefix=".catalog-", delete=False
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            LOGGER.error("catalog_save_error", extra={"path": str(self._path), "error": str(exc)})
            raise PersistenceError(f"failed to write catalog {self._path}: {exc}") from exc

        self._records = list(records)
        LOGGER.info("catalog_saved", extra={"path": str(self._path), "record_count": len(records)})

    def get(self, record_id: str) -> PhotoRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def delete(self, record_id: str) -> bool:
        """Remove a record and its blob.

        The blob is deleted first; failing to delete it is logged but does not
        keep the metadata entry alive. Returns False for an unknown id.
        """

        records = self.load()
        target = next((record for record in records if record.id == record_id), None)
        if target is None:
            LOGGER.warning("catalog_delete_unknown_id", extra={"record_id": record_id})
            return False

        try:
            self._blob_store.delete(target.blob_ref)
        except (OSError, ValueError) as exc:
            LOGGER.error(
                "catalog_delete_blob_failed",
                extra={"record_id": record_id, "blob_ref": target.blob_ref, "error": str(exc)},
            )

        self.save([record for record in records if record.id != record_id])
        LOGGER.info("catalog_record_deleted", extra={"record_id": record_id})
        return True

    def update_species(self, record_id: str, species: str) -> PhotoRecord | None:
        """Correct the species label of one record, keeping id and fingerprints."""

        records = self.load()
        updated: PhotoRecord | None = None
        for index, record in enumerate(records):
            if record.id == record_id:
                updated = replace(record, species=species)
                records[index] = updated
                break

        if updated is None:
            LOGGER.warning("catalog_update_unknown_id", extra={"record_id": record_id})
            return None

        self.save(records)
        return updated

    def status(self) -> CatalogStatus:
        """Compare the document against the blob store without changing either."""

        records = self.load()
        referenced = {record.blob_ref for record in records}
        missing = sorted(record.id for record in records if not self._blob_store.exists(record.blob_ref))
        unreferenced = [ref for ref in self._blob_store.iter_refs() if ref not in referenced]
        return CatalogStatus(record_count=len(records), missing_blobs=missing, unreferenced_blobs=unreferenced)


__all__ = ["Catalog", "CatalogStatus", "PhotoRecord", "naive_local"]
