"""georag init: project scaffold.

Creates:
  georag.yaml              project config (workspace, embedding, chunking, storage)
  .georag.db               SQLite stores with schema, plus the configured workspace
  ~/.georag/config.yaml    global model defaults (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from georag.cli.context import (
    DEFAULT_PROJECT_DIR,
    build_engine,
    console,
    db_path_for,
    load_project_config,
    reported_errors,
)
from georag.config import PROJECT_CONFIG_NAME, ensure_global_config, write_project_config
from georag.models import VALIDITY_MODES, normalize_unit


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = DEFAULT_PROJECT_DIR,
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Workspace name (default from config: 'default')."),
    ] = None,
    crs: Annotated[
        int | None,
        typer.Option("--crs", help="EPSG code geometries are normalized to (default 4326)."),
    ] = None,
    distance_unit: Annotated[
        str | None,
        typer.Option("--distance-unit", help="Default distance unit: meters, kilometers, miles, feet."),
    ] = None,
    geometry_validity: Annotated[
        str | None,
        typer.Option("--geometry-validity", help="'lenient' (fix invalid geometries) or 'strict' (skip them)."),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option("--model", help="Embedding model (LiteLLM string, or 'hashing' for offline use)."),
    ] = None,
    dimensions: Annotated[
        int | None,
        typer.Option("--dimensions", help="Embedding dimensions."),
    ] = None,
) -> None:
    """Initialize a GeoRAG project: config file, database and workspace."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    cfg = load_project_config(project_dir)
    if workspace:
        cfg.workspace.name = workspace
    if crs is not None:
        cfg.workspace.crs = crs
    if distance_unit:
        try:
            cfg.workspace.distance_unit = normalize_unit(distance_unit)
        except ValueError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)
    if geometry_validity:
        if geometry_validity not in VALIDITY_MODES:
            console.print(
                f"[red]Error:[/] --geometry-validity must be one of: {', '.join(sorted(VALIDITY_MODES))}"
            )
            raise typer.Exit(1)
        cfg.workspace.geometry_validity = geometry_validity
    if model:
        cfg.embedding.model = model
    if dimensions is not None:
        cfg.embedding.dimensions = dimensions

    console.print(f"\n[bold]Creating GeoRAG project in {project_dir} …[/]\n")

    config_path = project_dir / PROJECT_CONFIG_NAME
    if config_path.exists() and not (workspace or crs or distance_unit or geometry_validity or model or dimensions):
        console.print(f"  [dim]-[/] {PROJECT_CONFIG_NAME} (kept)")
    else:
        write_project_config(project_dir, cfg)
        console.print(f"  [green]✓[/] {PROJECT_CONFIG_NAME}")

    with reported_errors(cfg.workspace.name):
        engine = build_engine(project_dir, cfg)
        try:
            existing = engine.stores.workspaces.find_workspace(cfg.workspace.name)
            if existing is None:
                engine.create_workspace(
                    cfg.workspace.name,
                    crs=cfg.workspace.crs,
                    distance_unit=cfg.workspace.distance_unit,
                    geometry_validity=cfg.workspace.geometry_validity,
                )
                console.print(f"  [green]✓[/] workspace '{cfg.workspace.name}' ({db_path_for(project_dir, cfg).name})")
            else:
                console.print(f"  [dim]-[/] workspace '{cfg.workspace.name}' already exists")
        finally:
            engine.close()

    cfg_path = ensure_global_config()
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\n[bold green]✓ Project initialized.[/]")
    console.print("\nNext steps:")
    console.print("  1. georag add places.geojson                     (register a dataset)")
    console.print("  2. georag build                                  (index all datasets)")
    console.print("  3. georag query \"flood defences\" --bbox 4,52,5,53  (search)")
