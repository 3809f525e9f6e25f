"""georag query: hybrid spatial + semantic search.

Examples:
  georag query "flood defences" --bbox 4.7,52.2,5.1,52.5
  georag query "school" --near 4.9,52.37 --distance 2km --top-k 5 --explain
  georag query "harbour" --json > results.geojson
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from georag.cli.context import DEFAULT_PROJECT_DIR, console, open_project
from georag.cli.errors import err_invalid_bbox, err_invalid_query
from georag.models import parse_distance
from georag.retrieval.models import QueryExplanation, QueryResponse


def query_cmd(
    text: Annotated[str, typer.Argument(help="Query text.")],
    bbox: Annotated[
        str | None,
        typer.Option("--bbox", help="Bounding box 'MIN_X,MIN_Y,MAX_X,MAX_Y' in the workspace CRS."),
    ] = None,
    near: Annotated[
        str | None,
        typer.Option("--near", help="Point 'X,Y' for a distance filter (requires --distance)."),
    ] = None,
    distance: Annotated[
        str | None,
        typer.Option("--distance", help="Distance for --near, e.g. '500m', '5km' (default unit from config)."),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Maximum number of results (default from config)."),
    ] = None,
    explain: Annotated[
        bool,
        typer.Option("--explain", help="Show per-phase statistics and score explanations."),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the GeoJSON FeatureCollection instead of a table."),
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
    """Search the workspace index by text, optionally within an area."""
    bbox_values = _parse_bbox(bbox) if bbox else None

    with open_project(project_dir, workspace) as project:
        ws = project.workspace()
        near_spec = _parse_near(near, distance, ws.config.distance_unit)
        response = project.engine.query(
            ws,
            text,
            bbox=bbox_values,
            top_k=top_k if top_k is not None else project.cfg.retrieval.top_k,
            explain=explain,
            near=near_spec,
        )

    if as_json:
        typer.echo(json.dumps(response.to_geojson(), indent=2, ensure_ascii=False))
        return

    _print_results(text, response)
    if response.explanation is not None:
        _print_explanation(response.explanation)


def _parse_bbox(raw: str) -> list[float]:
    try:
        values = [float(v) for v in raw.split(",")]
    except ValueError:
        console.print(err_invalid_bbox(f"'{raw}' is not a list of numbers"))
        raise typer.Exit(1)
    if len(values) != 4:
        console.print(err_invalid_bbox(f"expected 4 values, got {len(values)}"))
        raise typer.Exit(1)
    return values


def _parse_near(near: str | None, distance: str | None, default_unit: str) -> tuple[float, float, float, str] | None:
    if near is None and distance is None:
        return None
    if near is None or distance is None:
        console.print(err_invalid_query("--near and --distance must be used together"))
        raise typer.Exit(1)
    try:
        x, y = (float(v) for v in near.split(","))
    except ValueError:
        console.print(err_invalid_query(f"--near must be 'X,Y', got '{near}'"))
        raise typer.Exit(1)
    try:
        value, unit = parse_distance(distance, default_unit)
    except ValueError as exc:
        console.print(err_invalid_query(str(exc)))
        raise typer.Exit(1)
    return (x, y, value, unit)


def _print_results(text: str, response: QueryResponse) -> None:
    if not response.features:
        console.print(f"[dim]No results for '{text}'.[/]")
        return

    table = Table(title=f"Results for '{text}'")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Chunk", style="bold")
    table.add_column("Excerpt")

    for feature in response.features:
        props = feature.properties
        table.add_row(
            str(props["rank"]),
            f"{props['score']:.3f}",
            props["chunk_id"],
            escape(props["excerpt"].replace("\n", " ")),
        )
    console.print(table)
    if response.state is not None:
        console.print(f"[dim]Generation {response.state.generation} · {response.state.embedder}[/]")


def _print_explanation(explanation: QueryExplanation) -> None:
    plan = explanation.plan
    lines = [f"Predicate:  [bold]{plan.predicate}[/]", f"Top-k:      {plan.top_k}"]
    if plan.bbox is not None:
        lines.append(f"BBox:       {plan.bbox}")
    if plan.near is not None:
        lines.append(f"Near:       ({plan.near['x']}, {plan.near['y']}) within {plan.near['meters']:.1f} m")

    if explanation.spatial is not None:
        sp = explanation.spatial
        lines.append(
            f"Spatial:    {sp.features_matched}/{sp.features_evaluated} features matched "
            f"[dim]({sp.crs}, {sp.elapsed_ms:.1f} ms)[/]"
        )
    if explanation.semantic is not None:
        se = explanation.semantic
        lines.append(
            f"Semantic:   {se.candidates_reranked} candidates reranked "
            f"[dim]({se.embedder_model}, dim {se.embedding_dim}, {se.elapsed_ms:.1f} ms)[/]"
        )
    console.print(Panel("\n".join(lines), title="[bold]Explanation[/]", expand=False))

    for detail in explanation.ranking:
        console.print(f"  [dim]{detail.rank}.[/] {detail.chunk_id}: {detail.score_explanation}")
