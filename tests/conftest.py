"""Shared pytest fixtures."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence

import pytest
from typer.testing import CliRunner

from georag.cli.main import app
from georag.embedding import Embedder
from georag.engine import GeoRAG
from georag.models import RawDocument, Workspace


class StaticEmbedder(Embedder):
    """Deterministic 4-dim embedder: texts mentioning a keyword get its axis.

    "alpha" -> x, "bravo" -> y, "charlie" -> z, anything else -> w. Texts may
    mix keywords; the vector is the (unnormalized) sum of their axes.
    """

    AXES = ("alpha", "bravo", "charlie")

    def __init__(self, dimensions: int = 4, name: str = "static-4") -> None:
        self._dimensions = dimensions
        self._name = name
        self.calls: list[list[str]] = []

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self._dimensions
        lowered = text.lower()
        for axis, word in enumerate(self.AXES):
            if word in lowered:
                vector[axis] += 1.0
        if not any(vector):
            vector[min(3, self._dimensions - 1)] = 1.0
        return vector

    def dimensions(self) -> int:
        return self._dimensions

    def model_name(self) -> str:
        return self._name


def _point(x: float, y: float) -> dict:
    return {"type": "Point", "coordinates": [x, y]}


@pytest.fixture
def embedder() -> StaticEmbedder:
    return StaticEmbedder()


@pytest.fixture
def embedder_factory() -> type[StaticEmbedder]:
    """The StaticEmbedder class, for tests that need other dimensions or names."""
    return StaticEmbedder


@pytest.fixture
def engine(embedder: StaticEmbedder):
    """In-memory engine, closed after test."""
    eng = GeoRAG.in_memory(embedder)
    yield eng
    eng.close()


@pytest.fixture
def sqlite_engine(tmp_path: Path, embedder: StaticEmbedder):
    """SQLite-backed engine in tmp_path, closed after test."""
    eng = GeoRAG.open(tmp_path / ".georag.db", embedder)
    yield eng
    eng.close()


@pytest.fixture
def workspace(engine: GeoRAG) -> Workspace:
    return engine.create_workspace("test")


@pytest.fixture
def places() -> list[RawDocument]:
    """Three documents: A near Amsterdam, B near Rotterdam, C far away in Paris."""
    return [
        RawDocument(id="a", text="alpha harbour district", geometry=_point(4.90, 52.37)),
        RawDocument(id="b", text="bravo port area", geometry=_point(4.48, 51.92)),
        RawDocument(id="c", text="alpha river bank", geometry=_point(2.35, 48.85)),
    ]


@pytest.fixture(autouse=True)
def _isolated_global_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from ~/.georag/config.yaml and GEORAG_* overrides."""
    monkeypatch.setattr("georag.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    for var in ("GEORAG_CRS", "GEORAG_EMBEDDING_MODEL", "GEORAG_EMBEDDING_DIMENSIONS", "GEORAG_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _reset_georag_logger():
    """Undo configure_logging() so caplog sees georag records in every test."""
    yield
    logger = logging.getLogger("georag")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


PLACES_GEOJSON = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "id": "ams",
            "geometry": {"type": "Point", "coordinates": [4.90, 52.37]},
            "properties": {"name": "Amsterdam harbour", "description": "ferry terminal"},
        },
        {
            "type": "Feature",
            "id": "rtm",
            "geometry": {"type": "Point", "coordinates": [4.48, 51.92]},
            "properties": {"name": "Rotterdam harbour", "description": "container terminal"},
        },
        {
            "type": "Feature",
            "id": "par",
            "geometry": {"type": "Point", "coordinates": [2.35, 48.85]},
            "properties": {"name": "Paris museum", "description": "paintings"},
        },
    ],
}


@pytest.fixture
def cli_project(tmp_path: Path) -> Path:
    """An initialized project (offline hashing embedder) with places.geojson next to it."""
    project = tmp_path / "project"
    result = CliRunner().invoke(app, ["init", str(project), "--model", "hashing", "--dimensions", "64"])
    assert result.exit_code == 0, result.output
    (project / "places.geojson").write_text(json.dumps(PLACES_GEOJSON), encoding="utf-8")
    return project
