"""Filesystem storage for raw photo bytes keyed by generated identifiers."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol

from fishlog.errors import PersistenceError
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "blob_store"})

BLOB_SUFFIX = ".jpg"


class BlobStore(Protocol):
    """Persists raw image bytes under a caller-chosen identifier."""

    def write(self, blob_id: str, data: bytes) -> str: ...

    def read(self, blob_ref: str) -> bytes: ...

    def delete(self, blob_ref: str) -> None: ...

    def exists(self, blob_ref: str) -> bool: ...

    def iter_refs(self) -> Iterator[str]: ...


class FileBlobStore:
    """Store each blob as ``<root>/<blob_id>.jpg``.

    The blob reference returned by :meth:`write` is the file name relative to
    the root, which is what the catalog document records.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, blob_ref: str) -> Path:
        name = Path(blob_ref).name
        if not name or name != blob_ref:
            raise ValueError(f"blob reference must be a bare file name, got {blob_ref!r}")
        return self._root / name

    def write(self, blob_id: str, data: bytes) -> str:
        """Write ``data`` atomically and return its blob reference.

        Raises:
            PersistenceError: when the bytes cannot be written.
        """

        blob_ref = f"{blob_id}{BLOB_SUFFIX}"
        target = self._path_for(blob_ref)
        tmp_name: str | None = None
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=self._root, prefix=".tmp-", delete=False) as handle:
                tmp_name = handle.name
                handle.write(data)
            os.replace(tmp_name, target)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            LOGGER.error("blob_write_failed", extra={"blob_ref": blob_ref, "error": str(exc)})
            raise PersistenceError(f"failed to write blob {blob_ref}: {exc}") from exc

        LOGGER.debug("blob_written", extra={"blob_ref": blob_ref, "size_bytes": len(data)})
        return blob_ref

    def read(self, blob_ref: str) -> bytes:
        return self._path_for(blob_ref).read_bytes()

    def delete(self, blob_ref: str) -> None:
        """Remove a blob; raises ``FileNotFoundError`` if it does not exist."""

        self._path_for(blob_ref).unlink()
        LOGGER.debug("blob_deleted", extra={"blob_ref": blob_ref})

    def exists(self, blob_ref: str) -> bool:
        try:
            return self._path_for(blob_ref).is_file()
        except ValueError:
            return False

    def iter_refs(self) -> Iterator[str]:
        """Yield the references of every stored blob."""

        if not self._root.is_dir():
            return
        for path in sorted(self._root.iterdir()):
            if path.is_file() and path.suffix == BLOB_SUFFIX and not path.name.startswith(".tmp-"):
                yield path.name


__all__ = ["BLOB_SUFFIX", "BlobStore", "FileBlobStore"]
