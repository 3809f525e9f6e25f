"""georag build: index one dataset, or rebuild the whole workspace."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from georag.cli.context import DEFAULT_PROJECT_DIR, console, open_project
from georag.cli.errors import err_no_api_key
from georag.embedding import HashingEmbedder, validate_api_key
from georag.models import BuildReport


def build_cmd(
    dataset: Annotated[
        str | None,
        typer.Option("--dataset", "-d", help="Index only this dataset (default: rebuild all)."),
    ] = None,
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Workspace (default from georag.yaml)."),
    ] = None,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Project directory containing georag.yaml."),
    ] = DEFAULT_PROJECT_DIR,
) -> None:
    """Build the spatial + semantic index and publish a new generation."""
    with open_project(project_dir, workspace) as project:
        if not isinstance(project.engine.embedder, HashingEmbedder):
            try:
                validate_api_key(project.cfg.embedding.model)
            except EnvironmentError:
                console.print(err_no_api_key(project.cfg.embedding.model))
                raise typer.Exit(1)

        if dataset:
            reports = [project.engine.build(project.workspace_name, dataset)]
        else:
            datasets = project.engine.list_datasets(project.workspace_name)
            if not datasets:
                console.print("[yellow]No datasets registered.[/]\n  Run:  georag add FILE")
                raise typer.Exit(0)
            reports = project.engine.rebuild(project.workspace_name)

    _print_reports(reports)


def _print_reports(reports: list[BuildReport]) -> None:
    table = Table(title="Build", show_lines=False)
    table.add_column("Dataset", style="bold")
    table.add_column("Chunks", justify="right")
    table.add_column("Skipped", justify="right")

    for report in reports:
        skipped = f"[yellow]{report.skipped_count}[/]" if report.skipped_count else "0"
        table.add_row(report.dataset_id, str(report.chunk_count), skipped)
    console.print(table)

    for report in reports:
        for doc_id, reason in report.failures:
            console.print(f"  [yellow]⚠[/] {report.dataset_id}/{doc_id}: {reason}")

    state = reports[-1].state if reports else None
    if state is not None:
        console.print(
            f"\n[green]✓[/] Published generation {state.generation}  "
            f"({state.chunk_count} chunks, {state.embedder}, dim {state.embedding_dim})"
        )
        console.print(f"  Hash: [dim]{state.hash}[/]")
