"""georag inspect: show datasets, index state, CRS alignment or the merged config.

Every target can be printed as JSON with --json for scripting.
"""

from __future__ import annotations

import dataclasses
import json
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import typer
import yaml
from rich.table import Table

from georag.cli.context import DEFAULT_PROJECT_DIR, Project, console, load_project_config, open_project
from georag.errors import IndexNotBuilt


class InspectTarget(str, Enum):
    datasets = "datasets"
    index = "index"
    crs = "crs"
    config = "config"


def inspect_cmd(
    target: Annotated[
        InspectTarget,
        typer.Argument(help="What to inspect: datasets, index, crs or config."),
    ],
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print JSON instead of a table."),
    ] = False,
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Workspace (default from georag.yaml)."),
    ] = None,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Project directory containing georag.yaml."),
    ] = DEFAULT_PROJECT_DIR,
) -> None:
    """Inspect datasets, the index, CRS alignment or the effective configuration."""
    if target is InspectTarget.config:
        # Needs no database.
        cfg = load_project_config(project_dir.resolve())
        data = dataclasses.asdict(cfg)
        if as_json:
            _echo_json(data)
        else:
            typer.echo(yaml.safe_dump(data, sort_keys=False).rstrip())
        return

    with open_project(project_dir, workspace) as project:
        if target is InspectTarget.datasets:
            _inspect_datasets(project, as_json)
        elif target is InspectTarget.index:
            _inspect_index(project, as_json)
        else:
            _inspect_crs(project, as_json)


def _inspect_datasets(project: Project, as_json: bool) -> None:
    datasets = project.engine.list_datasets(project.workspace_name)
    if as_json:
        _echo_json(
            [
                {
                    "id": d.id,
                    "name": d.name,
                    "documents": d.document_count,
                    "crs": d.crs,
                    "bbox": list(d.bbox) if d.bbox else None,
                    "source": d.source,
                    "added_at": d.added_at,
                }
                for d in datasets
            ]
        )
        return
    if not datasets:
        console.print("[dim]No datasets registered.[/]")
        return
    table = Table(title=f"Datasets in '{project.workspace_name}'")
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Docs", justify="right")
    table.add_column("CRS", style="dim")
    table.add_column("Source", style="dim")
    for d in datasets:
        table.add_row(d.id, d.name, str(d.document_count), f"EPSG:{d.crs}", d.source)
    console.print(table)


def _inspect_index(project: Project, as_json: bool) -> None:
    try:
        state = project.engine.get_index_state(project.workspace_name)
    except IndexNotBuilt:
        if as_json:
            _echo_json({"built": False})
        else:
            console.print("[yellow]Index not built.[/]\n  Run:  georag build")
        return

    data = {"built": True, **dataclasses.asdict(state)}
    if as_json:
        _echo_json(data)
        return
    table = Table(title="Index", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


def _inspect_crs(project: Project, as_json: bool) -> None:
    ws = project.workspace()
    datasets = [
        {"id": d.id, "crs": d.crs, "matches_workspace": d.crs == ws.config.crs}
        for d in project.engine.list_datasets(project.workspace_name)
    ]
    if as_json:
        _echo_json(
            {
                "workspace_crs": ws.config.crs,
                "distance_unit": ws.config.distance_unit,
                "datasets": datasets,
            }
        )
        return
    console.print(f"Workspace CRS:  EPSG:{ws.config.crs}")
    console.print(f"Distance unit:  {ws.config.distance_unit}")
    for d in datasets:
        mark = "[green]✓[/]" if d["matches_workspace"] else "[yellow]→ reprojected[/]"
        console.print(f"  {d['id']}: EPSG:{d['crs']} {mark}")


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))
