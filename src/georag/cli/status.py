"""georag status, verify and datasets commands.

status shows the project, the workspace configuration and the published
index generation; verify recomputes the index hash from the stores; datasets
lists registered datasets.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from georag.cli.context import (
    DEFAULT_PROJECT_DIR,
    Project,
    console,
    db_path_for,
    load_project_config,
    open_project,
)
from georag.errors import IndexNotBuilt


def status_cmd(
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Workspace (default from georag.yaml)."),
    ] = None,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Project directory containing georag.yaml."),
    ] = DEFAULT_PROJECT_DIR,
) -> None:
    """Show project status: workspace, datasets and index generation."""
    cfg = load_project_config(project_dir.resolve())
    db_path = db_path_for(project_dir.resolve(), cfg)

    if cfg.storage.backend == "sqlite" and not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  georag init",
                title="[bold]GeoRAG[/]",
                expand=False,
            )
        )
        return

    with open_project(project_dir, workspace) as project:
        _show_project_panel(project)
        _show_index_panel(project)


def verify_cmd(
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Workspace (default from georag.yaml)."),
    ] = None,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Project directory containing georag.yaml."),
    ] = DEFAULT_PROJECT_DIR,
) -> None:
    """Recompute the index hash and compare it with the published one."""
    with open_project(project_dir, workspace) as project:
        report = project.engine.verify(project.workspace_name)

    if report.matches:
        console.print(f"[green]✓[/] Index verified: {report.stored_hash}")
        return
    console.print(
        "[red]✗ Index hash mismatch.[/]\n"
        f"  Stored:    {report.stored_hash}\n"
        f"  Computed:  {report.computed_hash}\n"
        "  Run:  georag build   (rebuilds every dataset)"
    )
    raise typer.Exit(1)


def datasets_cmd(
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Workspace (default from georag.yaml)."),
    ] = None,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Project directory containing georag.yaml."),
    ] = DEFAULT_PROJECT_DIR,
) -> None:
    """List the datasets registered in the workspace."""
    with open_project(project_dir, workspace) as project:
        datasets = project.engine.list_datasets(project.workspace_name)

    if not datasets:
        console.print("[dim]No datasets registered.[/]\n  Run:  georag add FILE")
        return

    table = Table(title="Datasets")
    table.add_column("Id", style="bold")
    table.add_column("Name")
    table.add_column("Docs", justify="right")
    table.add_column("CRS", style="dim")
    table.add_column("BBox", style="dim")
    table.add_column("Added", style="dim")
    for dataset in datasets:
        bbox = ", ".join(f"{v:.4g}" for v in dataset.bbox) if dataset.bbox else "-"
        table.add_row(
            dataset.id,
            dataset.name,
            str(dataset.document_count),
            f"EPSG:{dataset.crs}",
            bbox,
            dataset.added_at or "",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_project_panel(project: Project) -> None:
    ws = project.workspace()
    db_info = str(project.db_path)
    if project.db_path.exists():
        size_mb = project.db_path.stat().st_size / (1024 * 1024)
        db_info = f"{project.db_path} ({size_mb:.1f} MB)"

    lines = [
        f"Workspace:  [bold]{ws.name}[/] [dim]({ws.id})[/]",
        f"Database:   {db_info}",
        f"CRS:        EPSG:{ws.config.crs}",
        f"Distance:   {ws.config.distance_unit}",
        f"Validity:   {ws.config.geometry_validity}",
        f"Embedding:  {project.cfg.embedding.model} (dim {project.cfg.embedding.dimensions})",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _show_index_panel(project: Project) -> None:
    datasets = project.engine.list_datasets(project.workspace_name)
    try:
        state = project.engine.get_index_state(project.workspace_name)
    except IndexNotBuilt:
        console.print(
            Panel(
                f"Datasets: [bold]{len(datasets)}[/]\n"
                "[yellow]Index not built.[/]\n"
                "  Run:  georag build",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    lines = [
        f"Datasets:    [bold]{len(datasets)}[/]  |  Chunks: [bold]{state.chunk_count:,}[/]",
        f"Generation:  {state.generation}",
        f"Embedder:    {state.embedder} (dim {state.embedding_dim})",
        f"Built:       [dim]{state.built_at}[/]",
        f"Hash:        [dim]{state.hash}[/]",
    ]
    if state.embedder != project.engine.embedder.model_name():
        lines.append("[yellow]⚠ Configured embedder differs from the index; run: georag build[/]")
    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
