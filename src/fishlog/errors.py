"""Exception types surfaced to callers of the ingestion core."""

from __future__ import annotations


class PersistenceError(OSError):
    """A blob or catalog write failed; the current operation was not committed."""


__all__ = ["PersistenceError"]
