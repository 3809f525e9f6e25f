"""GeoRAG CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from georag.cli.add import add_cmd
from georag.cli.build import build_cmd
from georag.cli.init import init_cmd
from georag.cli.inspect import inspect_cmd
from georag.cli.query import query_cmd
from georag.cli.remove import remove_cmd
from georag.cli.status import datasets_cmd, status_cmd, verify_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("georag")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"georag {_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="georag",
    help=(
        "GeoRAG: hybrid spatial + semantic retrieval over geocoded documents.\n\n"
        "  georag add     Register a GeoJSON file or a geocoded document.\n"
        "  georag build   Index datasets into a new generation.\n"
        "  georag query   Search by text within a bbox or distance."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """GeoRAG: hybrid spatial + semantic retrieval."""


app.command("init")(init_cmd)
app.command("add")(add_cmd)
app.command("build")(build_cmd)
app.command("query")(query_cmd)
app.command("status")(status_cmd)
app.command("verify")(verify_cmd)
app.command("datasets")(datasets_cmd)
app.command("remove")(remove_cmd)
app.command("inspect")(inspect_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed GeoRAG version."""
    typer.echo(f"georag {_version()}")


if __name__ == "__main__":
    app()
