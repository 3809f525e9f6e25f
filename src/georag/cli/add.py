"""georag add: register a dataset in the workspace.

Source dispatch by extension:
  .geojson / .json        → GeoJSON FeatureCollection, Feature or bare geometry
  .gpx                    → GPX waypoints, track segments and routes (--gpx-type)
  .kml                    → KML Placemarks, with folder paths
  .txt .md .markdown .rst → one document located at --point / --geometry
  .pdf                    → one document per page, located at --point / --geometry

Nothing is indexed until ``georag build``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer

from georag.cli.context import DEFAULT_PROJECT_DIR, console, open_project
from georag.engine import slugify
from georag.ingest.documents import point_geometry, read_document
from georag.ingest.geojson import ParsedDataset, read_geojson
from georag.ingest.gpx import GPX_KINDS, read_gpx
from georag.ingest.kml import read_kml

GEOJSON_SUFFIXES = frozenset({".geojson", ".json"})
VECTOR_FORMATS = {".gpx": "GPX", ".kml": "KML"}


def add_cmd(
    path: Annotated[
        Path,
        typer.Argument(help="GeoJSON, GPX or KML file, or a text/Markdown/PDF document."),
    ],
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Dataset name (default: file name)."),
    ] = None,
    dataset_id: Annotated[
        str | None,
        typer.Option("--id", help="Dataset id (default: slug of the name)."),
    ] = None,
    crs: Annotated[
        int | None,
        typer.Option("--crs", help="EPSG code of the input coordinates (default: from file, else 4326)."),
    ] = None,
    point: Annotated[
        str | None,
        typer.Option("--point", help="Location of a text/PDF document as 'X,Y'."),
    ] = None,
    geometry: Annotated[
        str | None,
        typer.Option("--geometry", help="Location of a text/PDF document as a GeoJSON geometry."),
    ] = None,
    gpx_type: Annotated[
        str,
        typer.Option("--gpx-type", help="GPX features to read: all, waypoints, tracks or routes."),
    ] = "all",
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Workspace (default from georag.yaml)."),
    ] = None,
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Project directory containing georag.yaml."),
    ] = DEFAULT_PROJECT_DIR,
) -> None:
    """Register a GeoJSON, GPX or KML file, or a geocoded document, as a dataset."""
    if not path.exists():
        console.print(f"[red]Error:[/] File not found: '{path}'")
        raise typer.Exit(1)

    source = str(path)
    suffix = path.suffix.lower()
    if suffix in GEOJSON_SUFFIXES or suffix in VECTOR_FORMATS:
        fmt = VECTOR_FORMATS.get(suffix, "GeoJSON")
        if point or geometry:
            console.print(f"[yellow]⚠[/]  --point/--geometry are ignored for {fmt} input.")
        if gpx_type not in GPX_KINDS:
            console.print(f"[red]Error:[/] --gpx-type must be one of: {', '.join(GPX_KINDS)}")
            raise typer.Exit(1)
        try:
            parsed = _read_vector(path, suffix, gpx_type)
        except ValueError as exc:
            console.print(f"[red]Error:[/] Cannot read {fmt} '{path}': {exc}")
            raise typer.Exit(1)
        documents = parsed.documents
        input_crs = crs if crs is not None else parsed.crs
    else:
        location = _location(point, geometry)
        try:
            documents = read_document(path, location)
        except ValueError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)
        input_crs = crs if crs is not None else 4326

    if not documents:
        console.print(f"[yellow]No documents found in '{path}'.[/]")
        raise typer.Exit(0)

    dataset_name = name or path.stem
    with open_project(project_dir, workspace) as project:
        dataset = project.engine.add_dataset(
            project.workspace_name,
            dataset_name,
            documents,
            crs=input_crs,
            source=source,
            dataset_id=dataset_id or slugify(dataset_name),
        )

    console.print(f"[green]✓[/] Added dataset [bold]{dataset.id}[/] ({dataset.document_count} documents, EPSG:{dataset.crs})")
    console.print(f"  Run:  georag build --dataset {dataset.id}")


def _read_vector(path: Path, suffix: str, gpx_type: str) -> ParsedDataset:
    if suffix == ".gpx":
        return read_gpx(path, kind=gpx_type)
    if suffix == ".kml":
        return read_kml(path)
    return read_geojson(path)

def _location(point: str | None, geometry: str | None) -> dict[str, Any]:
    if point and geometry:
        console.print("[red]Error:[/] Use either --point or --geometry, not both.")
        raise typer.Exit(1)
    if point:
        try:
            x, y = (float(v) for v in point.split(","))
        except ValueError:
            console.print(f"[red]Error:[/] --point must be 'X,Y', got '{point}'")
            raise typer.Exit(1)
        return point_geometry(x, y)
    if geometry:
        try:
            data = json.loads(geometry)
        except json.JSONDecodeError as exc:
            console.print(f"[red]Error:[/] --geometry is not valid JSON: {exc}")
            raise typer.Exit(1)
        if not isinstance(data, dict) or "type" not in data:
            console.print("[red]Error:[/] --geometry must be a GeoJSON geometry object.")
            raise typer.Exit(1)
        return data
    console.print(
        "[red]Error:[/] Text and PDF documents need a location.\n"
        "  Use:  --point X,Y   or   --geometry '{\"type\": \"Polygon\", ...}'"
    )
    raise typer.Exit(1)
