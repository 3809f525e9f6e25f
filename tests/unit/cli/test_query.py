"""Tests for georag query."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from georag.cli.main import app

runner = CliRunner()


@pytest.fixture
def built_project(cli_project: Path) -> Path:
    for args in (["add", str(cli_project / "places.geojson")], ["build"]):
        result = runner.invoke(app, [*args, "-C", str(cli_project)])
        assert result.exit_code == 0, result.output
    return cli_project


def _query(project: Path, *args: str):
    return runner.invoke(app, ["query", *args, "-C", str(project)])


def _json_ids(result) -> list[str]:
    return [f["id"] for f in json.loads(result.stdout)["features"]]


def test_query_table_output(built_project: Path) -> None:
    result = _query(built_project, "harbour")
    assert result.exit_code == 0, result.output
    assert "Results for 'harbour'" in result.output
    assert "Generation 1" in result.output


def test_query_json_is_feature_collection(built_project: Path) -> None:
    result = _query(built_project, "harbour", "--json")
    assert result.exit_code == 0, result.output
    collection = json.loads(result.stdout)
    assert collection["type"] == "FeatureCollection"
    assert len(collection["features"]) == 3
    assert "explanation" not in collection


def test_query_bbox(built_project: Path) -> None:
    result = _query(built_project, "harbour", "--bbox", "4.5,52,5.5,53", "--json")
    assert result.exit_code == 0, result.output
    assert _json_ids(result) == ["places/ams#0"]


def test_query_near_distance(built_project: Path) -> None:
    result = _query(built_project, "harbour", "--near", "4.9,52.37", "--distance", "70km", "--json")
    assert result.exit_code == 0, result.output
    assert sorted(_json_ids(result)) == ["places/ams#0", "places/rtm#0"]


def test_query_top_k(built_project: Path) -> None:
    result = _query(built_project, "harbour", "-k", "1", "--json")
    assert len(_json_ids(result)) == 1


def test_query_explain(built_project: Path) -> None:
    result = _query(built_project, "harbour", "--bbox", "4.5,52,5.5,53", "--explain")
    assert result.exit_code == 0, result.output
    assert "Explanation" in result.output
    assert "1/3 features matched" in result.output

    as_json = _query(built_project, "harbour", "--explain", "--json")
    assert json.loads(as_json.stdout)["explanation"]["plan"]["predicate"] == "none"


def test_query_with_no_matches(built_project: Path) -> None:
    result = _query(built_project, "harbour", "--bbox", "-10,-10,-9,-9")
    assert result.exit_code == 0
    assert "No results" in result.output


@pytest.mark.parametrize(
    "args, message",
    [
        (["--bbox", "1,2,3"], "expected 4 values"),
        (["--bbox", "a,b,c,d"], "Invalid bounding box"),
        (["--bbox", "5,0,1,1"], "Invalid bounding box"),
        (["--near", "4.9,52.37"], "must be used together"),
        (["--near", "north", "--distance", "5km"], "--near must be"),
        (["--near", "4.9,52.37", "--distance", "5 parsecs"], "Invalid query"),
        (["-k", "0"], "top_k"),
    ],
)
def test_query_invalid_arguments(built_project: Path, args: list[str], message: str) -> None:
    result = _query(built_project, "harbour", *args)
    assert result.exit_code == 1
    assert message in result.output


def test_query_blank_text(built_project: Path) -> None:
    result = _query(built_project, "   ")
    assert result.exit_code == 1
    assert "Invalid query" in result.output


def test_query_before_build(cli_project: Path) -> None:
    result = _query(cli_project, "harbour")
    assert result.exit_code == 1
    assert "has no index yet" in result.output
    assert "'default'" in result.output
