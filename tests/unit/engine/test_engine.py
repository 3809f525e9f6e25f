"""Tests for workspace and dataset management on the GeoRAG engine."""

from __future__ import annotations

import pytest

from georag.engine import GeoRAG, slugify
from georag.errors import DatasetExists, DatasetNotFound, WorkspaceExists, WorkspaceNotFound
from georag.models import RawDocument


def _point(x: float, y: float) -> dict:
    return {"type": "Point", "coordinates": [x, y]}


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


def test_create_workspace_with_defaults(engine: GeoRAG) -> None:
    ws = engine.create_workspace("harbours")
    assert ws.name == "harbours"
    assert ws.config.crs == 4326
    assert ws.config.distance_unit == "meters"
    assert ws.config.geometry_validity == "lenient"
    assert ws.created_at


def test_create_workspace_with_config(engine: GeoRAG) -> None:
    ws = engine.create_workspace("rd", crs=28992, distance_unit="km", geometry_validity="STRICT")
    assert ws.config.crs == 28992
    assert ws.config.distance_unit == "kilometers"
    assert ws.config.geometry_validity == "strict"


def test_duplicate_workspace_name_raises(engine: GeoRAG) -> None:
    engine.create_workspace("dup")
    with pytest.raises(WorkspaceExists) as excinfo:
        engine.create_workspace("dup")
    assert excinfo.value.name == "dup"


@pytest.mark.parametrize(
    "kwargs",
    [{"name": ""}, {"name": "  "}, {"name": "x", "crs": 0}, {"name": "x", "distance_unit": "parsecs"},
     {"name": "x", "geometry_validity": "sloppy"}],
)
def test_invalid_workspace_arguments(engine: GeoRAG, kwargs) -> None:
    with pytest.raises(ValueError):
        engine.create_workspace(**kwargs)


def test_workspace_resolves_by_id_name_or_object(engine: GeoRAG) -> None:
    ws = engine.create_workspace("lookup")
    assert engine.workspace(ws.id) == ws
    assert engine.workspace("lookup") == ws
    assert engine.workspace(ws) == ws
    with pytest.raises(WorkspaceNotFound):
        engine.workspace("nope")


def test_list_workspaces_sorted_by_name(engine: GeoRAG) -> None:
    engine.create_workspace("b")
    engine.create_workspace("a")
    assert [w.name for w in engine.list_workspaces()] == ["a", "b"]


def test_workspaces_are_independent(engine: GeoRAG, places) -> None:
    one = engine.create_workspace("one")
    two = engine.create_workspace("two")
    engine.add_dataset(one, "places", places)
    engine.build(one, "places")
    engine.add_dataset(two, "other", [RawDocument(id="z", text="charlie", geometry=_point(0, 0))])
    engine.build(two, "other")

    assert engine.query(one, "charlie", top_k=10).chunk_keys.count("other/z#0") == 0
    assert engine.query(two, "alpha", top_k=10).chunk_keys == ["other/z#0"]


def test_migrate_workspace_config(engine: GeoRAG) -> None:
    ws = engine.create_workspace("migrate")
    migrated = engine.migrate_workspace_config(ws, crs=3857, geometry_validity="strict")
    assert migrated.config.crs == 3857
    assert migrated.config.geometry_validity == "strict"
    assert migrated.config.distance_unit == "meters"
    assert engine.workspace("migrate").config == migrated.config


# ---------------------------------------------------------------------------
# Datasets
# ---------------------------------------------------------------------------


def test_add_dataset_records_summary(engine: GeoRAG, workspace, places) -> None:
    dataset = engine.add_dataset(workspace, "Dutch Places", places, source="places.geojson")
    assert dataset.id == "dutch-places"
    assert dataset.document_count == 3
    assert dataset.bbox == (2.35, 48.85, 4.90, 52.37)
    assert dataset.added_at

    [listed] = engine.list_datasets(workspace)
    assert listed.id == "dutch-places"
    assert listed.source == "places.geojson"
    assert [d.id for d in engine.get_dataset(workspace, "dutch-places").documents] == ["a", "b", "c"]


def test_dataset_bbox_ignores_invalid_geometries(engine: GeoRAG, workspace) -> None:
    dataset = engine.add_dataset(
        workspace,
        "partial",
        [
            RawDocument(id="ok", text="alpha", geometry=_point(1, 2)),
            RawDocument(id="none", text="alpha", geometry=None),
        ],
    )
    assert dataset.bbox == (1.0, 2.0, 1.0, 2.0)


def test_duplicate_dataset_raises(engine: GeoRAG, workspace, places) -> None:
    engine.add_dataset(workspace, "places", places)
    with pytest.raises(DatasetExists):
        engine.add_dataset(workspace, "places", places)


def test_same_dataset_id_in_two_workspaces(engine: GeoRAG, places) -> None:
    one = engine.create_workspace("one")
    two = engine.create_workspace("two")
    engine.add_dataset(one, "places", places)
    engine.add_dataset(two, "places", places)
    assert len(engine.list_datasets(two)) == 1


def test_invalid_dataset_id_raises(engine: GeoRAG, workspace, places) -> None:
    with pytest.raises(ValueError, match="Invalid dataset id"):
        engine.add_dataset(workspace, "places", places, dataset_id="has/slash")


def test_duplicate_document_ids_raise(engine: GeoRAG, workspace) -> None:
    docs = [RawDocument(id="x", text="a", geometry=_point(0, 0)), RawDocument(id="x", text="b", geometry=_point(1, 1))]
    with pytest.raises(ValueError, match="Duplicate document id"):
        engine.add_dataset(workspace, "dupes", docs)


def test_get_unknown_dataset_raises(engine: GeoRAG, workspace) -> None:
    with pytest.raises(DatasetNotFound):
        engine.get_dataset(workspace, "missing")


@pytest.mark.parametrize(
    "name, expected",
    [("Dutch Places", "dutch-places"), ("harbours_2026.v1", "harbours_2026.v1"), ("!!!", "dataset")],
)
def test_slugify(name: str, expected: str) -> None:
    assert slugify(name) == expected
