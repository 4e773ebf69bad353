"""CLI for inspecting and editing the photo catalog."""

from __future__ import annotations

from pathlib import Path

import typer

from fishlog.config import load_settings
from fishlog.services import open_catalog

app = typer.Typer(help="Inspect and edit the fishlog catalog.", no_args_is_help=True)

_SettingsOption = typer.Option(None, "--settings", help="Settings YAML file. Defaults to config/settings.yaml.")


@app.command("list")
def list_records(settings_path: Path | None = _SettingsOption) -> None:
    """Print one line per catalog record, oldest first."""

    catalog = open_catalog(load_settings(settings_path))
    for record in sorted(catalog.load(), key=lambda item: item.timestamp):
        coordinates = f" @ {record.latitude:.5f},{record.longitude:.5f}" if record.coordinates else ""
        typer.echo(f"{record.id}  {record.timestamp.isoformat()}  {record.species}  {record.location}{coordinates}")


@app.command()
def delete(record_id: str, settings_path: Path | None = _SettingsOption) -> None:
    """Remove a record and its stored photo."""

    catalog = open_catalog(load_settings(settings_path))
    if not catalog.delete(record_id):
        typer.echo(f"no record with id {record_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"deleted {record_id}")


@app.command("set-species")
def set_species(record_id: str, species: str, settings_path: Path | None = _SettingsOption) -> None:
    """Correct the species label of a record."""

    catalog = open_catalog(load_settings(settings_path))
    updated = catalog.update_species(record_id, species)
    if updated is None:
        typer.echo(f"no record with id {record_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{updated.id} is now {updated.species}")


@app.command()
def status(settings_path: Path | None = _SettingsOption) -> None:
    """Report records whose blob is missing and blobs no record references."""

    catalog = open_catalog(load_settings(settings_path))
    report = catalog.status()
    typer.echo(f"records: {report.record_count}")
    typer.echo(f"missing blobs: {len(report.missing_blobs)}")
    for record_id in report.missing_blobs:
        typer.echo(f"  {record_id}")
    typer.echo(f"unreferenced blobs: {len(report.unreferenced_blobs)}")
    for blob_ref in report.unreferenced_blobs:
        typer.echo(f"  {blob_ref}")
    if report.missing_blobs:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()


__all__ = ["app"]
