"""Wiring helpers that build the catalog, pipeline and scanner from settings."""

from __future__ import annotations

from fishlog.blob_store import FileBlobStore
from fishlog.catalog import Catalog
from fishlog.classifier import KeywordSpeciesClassifier, LabelPredictor, PassthroughClassifier, SpeciesClassifier
from fishlog.config import Settings
from fishlog.dedup import Deduplicator
from fishlog.geocoding import CoordinateResolver, Geocoder, NominatimGeocoder, NullGeocoder
from fishlog.ingest import IngestPipeline
from fishlog.metadata import MetadataExtractor
from fishlog.scanner import BatchScanner


def open_catalog(settings: Settings) -> Catalog:
    """Return the catalog configured in ``settings`` (not yet loaded)."""

    blob_store = FileBlobStore(settings.storage.resolved_blob_dir())
    return Catalog(settings.storage.resolved_catalog_path(), blob_store)


def build_geocoder(settings: Settings) -> Geocoder:
    if not settings.geocoder.enabled:
        return NullGeocoder()
    return NominatimGeocoder.from_config(settings.geocoder)


def build_pipeline(settings: Settings, catalog: Catalog, geocoder: Geocoder) -> IngestPipeline:
    resolver = CoordinateResolver(geocoder, timeout=settings.geocoder.timeout_seconds)
    return IngestPipeline(
        deduplicator=Deduplicator(settings.dedup.similarity_threshold),
        extractor=MetadataExtractor(),
        resolver=resolver,
        blob_store=catalog.blob_store,
        config=settings.ingest,
    )


def build_classifier(settings: Settings, predictor: LabelPredictor | None = None) -> SpeciesClassifier:
    """Keyword classifier over ``predictor`` labels, or accept-all without a model."""

    if predictor is None:
        return PassthroughClassifier(settings.ingest.unknown_species)
    return KeywordSpeciesClassifier(
        predictor,
        settings.classifier,
        top_k=settings.scan.classifier_top_k,
        unknown_species=settings.ingest.unknown_species,
    )


def build_scanner(
    settings: Settings,
    geocoder: Geocoder,
    predictor: LabelPredictor | None = None,
) -> BatchScanner:
    resolver = CoordinateResolver(geocoder, timeout=settings.geocoder.timeout_seconds)
    return BatchScanner(
        classifier=build_classifier(settings, predictor),
        resolver=resolver,
        extractor=MetadataExtractor(),
        config=settings.ingest,
        threshold=settings.dedup.similarity_threshold,
    )


async def close_geocoder(geocoder: Geocoder) -> None:
    aclose = getattr(geocoder, "aclose", None)
    if aclose is not None:
        await aclose()


__all__ = ["build_classifier", "build_geocoder", "build_pipeline", "build_scanner", "close_geocoder", "open_catalog"]
