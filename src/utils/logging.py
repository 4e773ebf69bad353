"""Shared logging configuration and logger factory for fishlog."""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict


_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_LOG_FILE_NAME = "fishlog.log"
_LOG_DIR_ENV = "FISHLOG_LOG_DIR"

_STANDARD_KEYS = frozenset(logging.makeLogRecord({}).__dict__.keys()) | {"stack_info", "asctime", "message"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the attributes attached to ``record`` through ``extra=``."""

    return {key: value for key, value in record.__dict__.items() if key not in _STANDARD_KEYS}


def _log_root() -> Path:
    override = os.getenv(_LOG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return _PROJECT_ROOT / "log"


class _StructuredFormatter(logging.Formatter):
    """Formatter that renders records as single-line JSON objects (JSONL-friendly)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload.update(_extra_fields(record))

        try:
            return json.dumps(payload, ensure_ascii=False, sort_keys=True)
        except TypeError:
            # Datetimes, paths and other non-JSON extras are stringified.
            safe_payload = {
                key: (value if isinstance(value, (str, int, float, bool, type(None))) else str(value))
                for key, value in payload.items()
            }
            return json.dumps(safe_payload, ensure_ascii=False, sort_keys=True)


class _ConsoleFormatter(logging.Formatter):
    """Console formatter that appends ``extra`` fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extra_fields(record)
        if not extras:
            return base

        parts = [f"{key}={value!r}" for key, value in sorted(extras.items())]
        return f"{base} | " + " ".join(parts)


def _configure_root_logger() -> None:
    """Attach console and rotating file handlers to the root logger once."""

    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_ConsoleFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    root.addHandler(console_handler)

    log_root = _log_root()
    try:
        log_root.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_root / _LOG_FILE_NAME,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as exc:
        # Console logging keeps working on read-only checkouts.
        root.warning("file_logging_unavailable", extra={"log_root": str(log_root), "error": str(exc)})
        return

    file_handler.setFormatter(_StructuredFormatter())
    root.addHandler(file_handler)


class _MergingAdapter(logging.LoggerAdapter):
    """Adapter that merges its base ``extra`` with per-call ``extra`` fields."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str, extra: Dict[str, Any] | None = None) -> logging.LoggerAdapter:
    """Return a structured logger adapter for the given name.

    The first call configures the root handlers. Callers can pass a base
    ``extra`` mapping (for example ``{"component": "ingest"}``) that is attached
    to every record emitted through the returned adapter.
    """

    _configure_root_logger()
    logger = logging.getLogger(name)
    return _MergingAdapter(logger, extra or {})


__all__ = ["get_logger"]
