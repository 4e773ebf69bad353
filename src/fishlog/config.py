"""Configuration loader and typed settings for fishlog."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from utils.logging import get_logger

LOGGER = get_logger(__name__)

UNKNOWN_SPECIES = "Unknown Fish Species"
UNKNOWN_LOCATION = "Unknown Location"


@dataclass
class StorageConfig:
    """Locations of the catalog document and the blob directory."""

    catalog_path: str = "data/catalog.json"
    blob_dir: str = "data/blobs"

    def resolved_catalog_path(self) -> Path:
        return _resolve_storage_path(self.catalog_path)

    def resolved_blob_dir(self) -> Path:
        return _resolve_storage_path(self.blob_dir)


@dataclass
class DedupConfig:
    """Near-duplicate matching parameters."""

    # Maximum Hamming distance (of 64 bits) still treated as the same photo.
    similarity_threshold: int = 10


@dataclass
class GeocoderConfig:
    """Settings for the Nominatim-compatible geocoding service."""

    enabled: bool = True
    base_url: str = "https://nominatim.openstreetmap.org"
    user_agent: str = "fishlog/0.1"
    timeout_seconds: float = 5.0


@dataclass
class IngestConfig:
    """Labels used when a photo carries no species or location."""

    unknown_species: str = UNKNOWN_SPECIES
    unknown_location: str = UNKNOWN_LOCATION


@dataclass
class ScanConfig:
    """Bulk scan options."""

    extensions: list[str] = field(default_factory=lambda: [".jpg", ".jpeg", ".png", ".heic", ".webp"])
    classifier_top_k: int = 5


@dataclass
class ClassifierConfig:
    """Keyword tables for the two-layer species classifier."""

    subject_keywords: list[str] = field(
        default_factory=lambda: [
            "fish",
            "aquatic",
            "marine",
            "freshwater",
            "seafood",
            "swimmer",
            "scales",
            "fins",
            "gills",
            "underwater",
        ]
    )
    species_keywords: dict[str, list[str]] = field(
        default_factory=lambda: {
            "largemouth bass": ["largemouth bass", "black bass", "large mouth", "large-mouth"],
            "smallmouth bass": ["smallmouth bass", "small mouth", "small-mouth"],
            "striped bass": ["striped bass", "striper", "rockfish"],
            "crappie": ["crappie", "black crappie", "white crappie", "papermouth"],
            "yellow perch": ["yellow perch", "perch", "lake perch"],
            "walleye": ["walleye", "pike perch", "pike-perch"],
            "carp": ["carp", "common carp"],
            "rainbow trout": ["rainbow trout", "steelhead"],
            "brown trout": ["brown trout", "german brown"],
            "brook trout": ["brook trout", "speckled trout", "brookie"],
            "lake trout": ["lake trout", "mackinaw", "laker"],
            "salmon": [
                "salmon",
                "king salmon",
                "chinook",
                "coho",
                "silver salmon",
                "sockeye",
                "red salmon",
                "pink salmon",
                "chum",
                "atlantic salmon",
            ],
        }
    )


@dataclass
class Settings:
    """Top-level application settings."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    geocoder: GeocoderConfig = field(default_factory=GeocoderConfig)
    ingest: IngestConfig = field(default_factory=IngestConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)


def _project_root() -> Path:
    """Best-effort detection of the repository root for config discovery."""

    module_path = Path(__file__).resolve()
    try:
        return module_path.parents[2]
    except IndexError:  # pragma: no cover
        return module_path.parent


def _resolve_storage_path(path_str: str) -> Path:
    path = Path(path_str).expanduser()
    if not path.is_absolute():
        return _project_root() / path
    return path


def _default_settings_paths() -> list[Path]:
    """Return candidate settings paths ordered by preference."""

    candidates: list[Path] = []
    for candidate in (Path.cwd() / "config" / "settings.yaml", _project_root() / "config" / "settings.yaml"):
        resolved = candidate.resolve()
        if resolved not in candidates:
            candidates.append(resolved)
    return candidates


def _resolve_settings_path(settings_path: Path | str | None) -> Path:
    """Determine which settings file to load, honoring overrides."""

    if settings_path:
        return Path(settings_path).expanduser().resolve()

    env_override = os.getenv("FISHLOG_SETTINGS")
    if env_override:
        return Path(env_override).expanduser().resolve()

    defaults = _default_settings_paths()
    for candidate in defaults:
        if candidate.exists():
            return candidate
    return defaults[0]


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def load_settings(settings_path: Path | str | None = None) -> Settings:
    """Load application settings from a YAML file, falling back to defaults.

    Missing files, unreadable YAML and values of the wrong type are ignored so
    a partial or stale settings file never prevents the tools from starting.
    """

    path = _resolve_settings_path(settings_path)
    settings = Settings()

    if not path.exists() or not path.is_file():
        return settings

    try:
        with path.open("r", encoding="utf-8") as fp:
            raw = yaml.safe_load(fp) or {}
    except yaml.YAMLError as exc:
        LOGGER.error("settings_parse_error", extra={"path": str(path), "error": str(exc)})
        return settings

    if not isinstance(raw, dict):
        return settings

    storage_raw = _as_dict(raw.get("storage"))
    storage_cfg = settings.storage
    if isinstance(storage_raw.get("catalog_path"), str):
        storage_cfg.catalog_path = storage_raw["catalog_path"]
    if isinstance(storage_raw.get("blob_dir"), str):
        storage_cfg.blob_dir = storage_raw["blob_dir"]

    dedup_raw = _as_dict(raw.get("dedup"))
    threshold = dedup_raw.get("similarity_threshold")
    if isinstance(threshold, int) and not isinstance(threshold, bool) and 0 <= threshold <= 64:
        settings.dedup.similarity_threshold = threshold

    geocoder_raw = _as_dict(raw.get("geocoder"))
    geocoder_cfg = settings.geocoder
    if isinstance(geocoder_raw.get("enabled"), bool):
        geocoder_cfg.enabled = geocoder_raw["enabled"]
    if isinstance(geocoder_raw.get("base_url"), str):
        geocoder_cfg.base_url = geocoder_raw["base_url"].rstrip("/")
    if isinstance(geocoder_raw.get("user_agent"), str):
        geocoder_cfg.user_agent = geocoder_raw["user_agent"]
    if _is_number(geocoder_raw.get("timeout_seconds")) and geocoder_raw["timeout_seconds"] > 0:
        geocoder_cfg.timeout_seconds = float(geocoder_raw["timeout_seconds"])

    ingest_raw = _as_dict(raw.get("ingest"))
    if isinstance(ingest_raw.get("unknown_species"), str):
        settings.ingest.unknown_species = ingest_raw["unknown_species"]
    if isinstance(ingest_raw.get("unknown_location"), str):
        settings.ingest.unknown_location = ingest_raw["unknown_location"]

    scan_raw = _as_dict(raw.get("scan"))
    if isinstance(scan_raw.get("extensions"), list):
        extensions = [str(ext).lower() for ext in scan_raw["extensions"] if str(ext)]
        settings.scan.extensions = [ext if ext.startswith(".") else f".{ext}" for ext in extensions]
    if isinstance(scan_raw.get("classifier_top_k"), int) and scan_raw["classifier_top_k"] > 0:
        settings.scan.classifier_top_k = scan_raw["classifier_top_k"]

    classifier_raw = _as_dict(raw.get("classifier"))
    if isinstance(classifier_raw.get("subject_keywords"), list):
        settings.classifier.subject_keywords = [
            str(keyword).lower() for keyword in classifier_raw["subject_keywords"] if str(keyword)
        ]
    species_raw = _as_dict(classifier_raw.get("species_keywords"))
    if species_raw:
        parsed: dict[str, list[str]] = {}
        for species, aliases in species_raw.items():
            if isinstance(aliases, list):
                parsed[str(species)] = [str(alias).lower() for alias in aliases if str(alias)]
        if parsed:
            settings.classifier.species_keywords = parsed

    return settings


__all__ = [
    "ClassifierConfig",
    "DedupConfig",
    "GeocoderConfig",
    "IngestConfig",
    "ScanConfig",
    "Settings",
    "StorageConfig",
    "UNKNOWN_LOCATION",
    "UNKNOWN_SPECIES",
    "load_settings",
]
