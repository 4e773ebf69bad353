"""Settings loading from YAML."""

from __future__ import annotations

from pathlib import Path

from fishlog.config import Settings, load_settings


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    settings = load_settings(tmp_path / "absent.yaml")

    assert settings == Settings()
    assert settings.dedup.similarity_threshold == 10
    assert settings.ingest.unknown_species == "Unknown Fish Species"
    assert settings.geocoder.timeout_seconds == 5.0


def test_values_override_defaults(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
storage:
  catalog_path: /srv/fishlog/catalog.json
  blob_dir: /srv/fishlog/blobs
dedup:
  similarity_threshold: 6
geocoder:
  enabled: false
  base_url: https://geo.example/
  timeout_seconds: 2
scan:
  extensions: [JPG, .png]
classifier:
  species_keywords:
    pike: [Northern Pike, jackfish]
""",
    )

    settings = load_settings(path)

    assert settings.storage.resolved_catalog_path() == Path("/srv/fishlog/catalog.json")
    assert settings.dedup.similarity_threshold == 6
    assert settings.geocoder.enabled is False
    assert settings.geocoder.base_url == "https://geo.example"
    assert settings.geocoder.timeout_seconds == 2.0
    assert settings.scan.extensions == [".jpg", ".png"]
    assert settings.classifier.species_keywords == {"pike": ["northern pike", "jackfish"]}


def test_wrong_types_are_ignored(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
dedup:
  similarity_threshold: "ten"
geocoder:
  enabled: "no"
  timeout_seconds: -1
""",
    )

    settings = load_settings(path)

    assert settings.dedup.similarity_threshold == 10
    assert settings.geocoder.enabled is True
    assert settings.geocoder.timeout_seconds == 5.0


def test_invalid_yaml_falls_back_to_defaults(tmp_path: Path) -> None:
    assert load_settings(_write(tmp_path, "dedup: [unclosed")) == Settings()


def test_environment_override(tmp_path: Path, monkeypatch) -> None:
    path = _write(tmp_path, "dedup:\n  similarity_threshold: 3\n")
    monkeypatch.setenv("FISHLOG_SETTINGS", str(path))

    assert load_settings().dedup.similarity_threshold == 3


def test_relative_storage_paths_resolve_under_project_root() -> None:
    resolved = Settings().storage.resolved_blob_dir()

    assert resolved.is_absolute()
    assert resolved.parts[-2:] == ("data", "blobs")
