"""Tests for georag build."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from georag.cli.main import app

runner = CliRunner()


def _invoke(project: Path, *args: str):
    return runner.invoke(app, [*args, "-C", str(project)])


def test_build_single_dataset(cli_project: Path) -> None:
    _invoke(cli_project, "add", str(cli_project / "places.geojson"))
    result = _invoke(cli_project, "build", "--dataset", "places")
    assert result.exit_code == 0, result.output
    assert "Published generation 1" in result.output
    assert "hashing-64" in result.output


def test_build_all_datasets(cli_project: Path) -> None:
    _invoke(cli_project, "add", str(cli_project / "places.geojson"))
    _invoke(cli_project, "add", str(cli_project / "places.geojson"), "--id", "copy")
    result = _invoke(cli_project, "build")
    assert result.exit_code == 0, result.output
    assert "places" in result.output
    assert "copy" in result.output
    assert "6 chunks" in result.output


def test_build_without_datasets(cli_project: Path) -> None:
    result = _invoke(cli_project, "build")
    assert result.exit_code == 0
    assert "No datasets registered" in result.output


def test_build_unknown_dataset(cli_project: Path) -> None:
    result = _invoke(cli_project, "build", "--dataset", "ghost")
    assert result.exit_code == 1
    assert "Dataset 'ghost' not found" in result.output


def test_build_reports_skipped_geometries(cli_project: Path) -> None:
    data = {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "id": "ok", "geometry": {"type": "Point", "coordinates": [1, 1]},
             "properties": {"name": "fine"}},
            {"type": "Feature", "id": "nowhere", "geometry": None, "properties": {"name": "lost"}},
        ],
    }
    source = cli_project / "mixed.geojson"
    source.write_text(json.dumps(data), encoding="utf-8")
    _invoke(cli_project, "add", str(source))

    result = _invoke(cli_project, "build", "--dataset", "mixed")
    assert result.exit_code == 0, result.output
    assert "mixed/nowhere" in result.output


def test_build_all_invalid_geometries_fails(cli_project: Path) -> None:
    source = cli_project / "void.geojson"
    source.write_text(
        json.dumps({"type": "Feature", "id": "v", "geometry": None, "properties": {"name": "void"}}),
        encoding="utf-8",
    )
    _invoke(cli_project, "add", str(source))
    result = _invoke(cli_project, "build", "--dataset", "void")
    assert result.exit_code == 1
    assert "geometry_validity" in result.output


def test_build_requires_api_key_for_remote_models(cli_project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("GEORAG_EMBEDDING_MODEL", "openai/text-embedding-3-small")
    _invoke(cli_project, "add", str(cli_project / "places.geojson"))
    result = _invoke(cli_project, "build")
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_build_without_database(tmp_path: Path) -> None:
    result = runner.invoke(app, ["build", "-C", str(tmp_path)])
    assert result.exit_code == 1
    assert "No database found" in result.output
