"""georag remove: dataset lifecycle management.

Unregisters a dataset and, if the workspace has an index, publishes a new
generation without the dataset's chunks, embeddings and geometries.

Usage:
  georag remove parcels
  georag remove parcels --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from georag.cli.context import DEFAULT_PROJECT_DIR, console, open_project


def remove_cmd(
    dataset: Annotated[str, typer.Argument(help="Dataset id to remove.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
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
    """Remove a dataset and all its indexed data from the workspace."""
    with open_project(project_dir, workspace) as project:
        existing = project.engine.get_dataset(project.workspace_name, dataset)

        console.print(f"\nRemove dataset: [bold]{existing.id}[/] ({existing.name})")
        console.print(f"  Documents: {existing.document_count}  |  Source: {existing.source or '-'}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        state = project.engine.delete_dataset(project.workspace_name, existing.id)

    console.print(f"\n[green]✓[/] Removed: {existing.id}")
    if state is not None:
        console.print(f"  Published generation {state.generation} ({state.chunk_count} chunks)")
