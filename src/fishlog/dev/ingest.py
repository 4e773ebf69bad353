"""CLI entrypoint for adding a single photo to the catalog."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import typer

from fishlog.catalog import naive_local
from fishlog.config import Settings, load_settings
from fishlog.ingest import IngestResult
from fishlog.services import build_geocoder, build_pipeline, close_geocoder, open_catalog
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return naive_local(datetime.fromisoformat(value))
    except ValueError as exc:
        raise typer.BadParameter(f"expected an ISO 8601 timestamp, got {value!r}") from exc


async def ingest_photo(
    photo: Path,
    settings: Settings,
    *,
    location: str | None = None,
    species: str | None = None,
    timestamp: datetime | None = None,
    force: bool = False,
) -> IngestResult:
    """Ingest ``photo`` against the persisted catalog and save it when accepted."""

    catalog = open_catalog(settings)
    records = catalog.load()
    geocoder = build_geocoder(settings)
    try:
        pipeline = build_pipeline(settings, catalog, geocoder)
        result = await pipeline.run(
            photo.read_bytes(),
            catalog_snapshot=records,
            location=location,
            species=species,
            timestamp=timestamp,
            force=force,
        )
    finally:
        await close_geocoder(geocoder)

    if result.record is not None:
        catalog.save([*records, result.record])
    return result


def main(
    photo: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        help="Photo file to add to the catalog.",
    ),
    location: str | None = typer.Option(
        None,
        "--location",
        help="Free-text location; geocoded when the photo carries no GPS data.",
    ),
    species: str | None = typer.Option(None, "--species", help="Species label for the catch."),
    timestamp: str | None = typer.Option(
        None,
        "--timestamp",
        help="Capture time (ISO 8601) overriding the photo metadata.",
    ),
    force: bool = typer.Option(False, "--force", help="Store the photo even when it duplicates a catalog entry."),
    settings_path: Path | None = typer.Option(
        None,
        "--settings",
        help="Settings YAML file. Defaults to config/settings.yaml.",
    ),
) -> None:
    """Add one photo to the catalog unless it duplicates an existing entry."""

    settings = load_settings(settings_path)
    result = asyncio.run(
        ingest_photo(
            photo,
            settings,
            location=location,
            species=species,
            timestamp=_parse_timestamp(timestamp),
            force=force,
        )
    )

    if result.record is None:
        matched = result.verdict.matched_record
        LOGGER.info(
            "ingest_cli_skipped",
            extra={"path": str(photo), "reason": result.reason, "matched_record": matched.id if matched else None},
        )
        typer.echo(f"skipped {photo}: {result.reason}" + (f" (matches {matched.id})" if matched else ""))
        raise typer.Exit(code=1)

    typer.echo(f"added {result.record.id} ({result.record.species}, {result.record.location})")


def run() -> None:
    typer.run(main)


if __name__ == "__main__":
    run()


__all__ = ["ingest_photo", "main", "run"]
