"""docindex CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from docindex.cli.health import embedding_health_cmd
from docindex.cli.reindex import reindex_cmd
from docindex.cli.search import search_cmd
from docindex.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("docindex")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"docindex {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="docindex",
    help=(
        "docindex: local semantic search over generated Markdown docs.\n\n"
        "  docindex reindex  Chunk, embed, and store changed documents.\n"
        "  docindex search   Query the index."
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
    """docindex: local semantic search over generated Markdown docs."""


app.command("reindex")(reindex_cmd)
app.command("search")(search_cmd)
app.command("embedding-health")(embedding_health_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed docindex version."""
    typer.echo(f"docindex {_installed_version()}")


if __name__ == "__main__":
    app()
