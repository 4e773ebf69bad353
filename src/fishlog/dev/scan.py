"""CLI entrypoint for bulk-importing album folders into the catalog."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from fishlog.config import Settings, load_settings
from fishlog.importer import ImportSummary, ScanImporter
from fishlog.scanner import FolderPhotoSource
from fishlog.services import build_geocoder, build_pipeline, build_scanner, close_geocoder, open_catalog
from utils.logging import get_logger

LOGGER = get_logger(__name__)


async def scan_and_import(roots: list[Path], settings: Settings) -> ImportSummary:
    """Scan ``roots`` for distinct photos and merge them into the catalog."""

    catalog = open_catalog(settings)
    geocoder = build_geocoder(settings)
    try:
        scanner = build_scanner(settings, geocoder)
        importer = ScanImporter(build_pipeline(settings, catalog, geocoder), catalog)
        source = FolderPhotoSource(roots, extensions=settings.scan.extensions)
        return await importer.import_scan(scanner.scan(source))
    finally:
        await close_geocoder(geocoder)


def main(
    root: list[Path] = typer.Option(
        ...,
        "--root",
        file_okay=False,
        dir_okay=True,
        exists=True,
        readable=True,
        help="Album root directory to scan. May be specified multiple times.",
    ),
    settings_path: Path | None = typer.Option(
        None,
        "--settings",
        help="Settings YAML file. Defaults to config/settings.yaml.",
    ),
) -> None:
    """Scan one or more album roots and import every new photo."""

    settings = load_settings(settings_path)
    summary = asyncio.run(scan_and_import(root, settings))

    reasons = ", ".join(f"{reason}={count}" for reason, count in sorted(summary.skip_reasons.items()))
    typer.echo(f"found {summary.total}, imported {summary.imported}, skipped {summary.skipped}")
    if reasons:
        typer.echo(f"skip reasons: {reasons}")


def run() -> None:
    typer.run(main)


if __name__ == "__main__":
    run()


__all__ = ["main", "run", "scan_and_import"]
