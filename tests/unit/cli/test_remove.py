"""Tests for georag remove."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from georag.cli.main import app

runner = CliRunner()


def _invoke(project: Path, *args: str, input: str | None = None):
    return runner.invoke(app, [*args, "-C", str(project)], input=input)


@pytest.fixture
def built_project(cli_project: Path) -> Path:
    _invoke(cli_project, "add", str(cli_project / "places.geojson"))
    _invoke(cli_project, "add", str(cli_project / "places.geojson"), "--id", "copy")
    result = _invoke(cli_project, "build")
    assert result.exit_code == 0, result.output
    return cli_project


def test_remove_with_yes(built_project: Path) -> None:
    result = _invoke(built_project, "remove", "copy", "--yes")
    assert result.exit_code == 0, result.output
    assert "Removed: copy" in result.output
    assert "Published generation 2 (3 chunks)" in result.output

    query = _invoke(built_project, "query", "harbour", "--json")
    ids = [f["id"] for f in json.loads(query.stdout)["features"]]
    assert ids and all(i.startswith("places/") for i in ids)

    assert _invoke(built_project, "verify").exit_code == 0


def test_remove_confirmation_declined(built_project: Path) -> None:
    result = _invoke(built_project, "remove", "copy", input="n\n")
    assert result.exit_code == 0
    assert "Cancelled" in result.output
    listing = _invoke(built_project, "datasets")
    assert "copy" in listing.output


def test_remove_confirmation_accepted(built_project: Path) -> None:
    result = _invoke(built_project, "remove", "copy", input="y\n")
    assert result.exit_code == 0, result.output
    assert "Removed: copy" in result.output


def test_remove_before_build(cli_project: Path) -> None:
    _invoke(cli_project, "add", str(cli_project / "places.geojson"))
    result = _invoke(cli_project, "remove", "places", "-y")
    assert result.exit_code == 0, result.output
    assert "Removed: places" in result.output
    assert "Published generation" not in result.output


def test_remove_unknown_dataset(cli_project: Path) -> None:
    result = _invoke(cli_project, "remove", "ghost", "--yes")
    assert result.exit_code == 1
    assert "Dataset 'ghost' not found" in result.output
    assert "georag datasets" in result.output
