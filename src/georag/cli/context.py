"""Shared CLI plumbing: config loading, engine construction and error reporting."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console

from georag.cli.errors import describe, err_config, err_no_db
from georag.config import ConfigError, GeoragConfig, load_config
from georag.embedding import create_embedder
from georag.engine import GeoRAG
from georag.errors import GeoragError
from georag.ingest.chunker import FixedWindowChunker
from georag.logging_config import configure_logging
from georag.models import Workspace

logger = logging.getLogger(__name__)

console = Console()

DEFAULT_PROJECT_DIR = Path(".")


@dataclass
class Project:
    """A loaded georag project: merged config plus an open engine."""

    project_dir: Path
    cfg: GeoragConfig
    engine: GeoRAG
    workspace_name: str

    @property
    def db_path(self) -> Path:
        return db_path_for(self.project_dir, self.cfg)

    def workspace(self) -> Workspace:
        return self.engine.workspace(self.workspace_name)


def db_path_for(project_dir: Path, cfg: GeoragConfig) -> Path:
    path = Path(cfg.storage.path)
    return path if path.is_absolute() else project_dir / path


def load_project_config(project_dir: Path) -> GeoragConfig:
    """Load config for *project_dir* and set up logging, or exit with an error."""
    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    configure_logging(cfg.logging.level)
    return cfg


def build_engine(project_dir: Path, cfg: GeoragConfig) -> GeoRAG:
    embedder = create_embedder(cfg.embedding.model, cfg.embedding.dimensions)
    chunker = FixedWindowChunker(chunk_size=cfg.chunking.chunk_size, overlap=cfg.chunking.overlap)
    if cfg.storage.backend == "memory":
        logger.warning("storage.backend is 'memory': nothing persists between commands")
        return GeoRAG.in_memory(embedder, chunker=chunker, batch_size=cfg.embedding.batch_size)
    return GeoRAG.open(
        db_path_for(project_dir, cfg),
        embedder,
        chunker=chunker,
        batch_size=cfg.embedding.batch_size,
    )


@contextmanager
def open_project(project_dir: Path, workspace: str | None = None) -> Iterator[Project]:
    """Open the project in *project_dir*; the engine is closed on exit.

    GeoRAG errors raised inside the block are printed as actionable messages
    and turned into exit code 1.
    """
    project_dir = project_dir.resolve()
    cfg = load_project_config(project_dir)
    if cfg.storage.backend == "sqlite" and not db_path_for(project_dir, cfg).exists():
        console.print(err_no_db(str(db_path_for(project_dir, cfg))))
        raise typer.Exit(1)

    workspace_name = workspace or cfg.workspace.name
    with reported_errors(workspace_name):
        engine = build_engine(project_dir, cfg)
        try:
            yield Project(project_dir=project_dir, cfg=cfg, engine=engine, workspace_name=workspace_name)
        finally:
            engine.close()


@contextmanager
def reported_errors(workspace: str | None = None) -> Iterator[None]:
    try:
        yield
    except GeoragError as exc:
        logger.debug("Command failed", exc_info=True)
        console.print(describe(exc, workspace))
        raise typer.Exit(1)
