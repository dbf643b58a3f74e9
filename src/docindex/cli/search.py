"""docindex search: semantic search over the indexed docs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from docindex.cli.errors import exit_with_error
from docindex.config import apply_cli_overrides, load_config
from docindex.errors import DocIndexError
from docindex.query import QueryEngine, SearchResult

console = Console()


def search_cmd(
    query: Annotated[str, typer.Argument(help="Natural-language search query.")],
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", help="Maximum number of matches (default: search.top_k)."),
    ] = None,
    doc_type: Annotated[
        list[str] | None,
        typer.Option("--type", "-t", help="Restrict to a document type (repeatable)."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print results as JSON."),
    ] = False,
    embedding_mode: Annotated[
        str | None,
        typer.Option("--embedding-mode", help="local-only, local-preferred or remote-only."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the search database."),
    ] = None,
) -> None:
    """Search the index; never falls back to a remote provider without confirmation."""
    try:
        cfg = apply_cli_overrides(load_config(), embedding_mode=embedding_mode, db_path=db)
        result = QueryEngine(cfg).search(
            query,
            top_k=top_k if top_k is not None else cfg.search.top_k,
            types=doc_type,
        )
    except DocIndexError as exc:
        exit_with_error(console, exc)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    _print_table(result)


def _print_table(result: SearchResult) -> None:
    if not result.matches:
        console.print(f"[yellow]No matches for:[/] {escape(result.query)}")
        return

    table = Table(title=f"Results for: {escape(result.query)}", show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Relevance", justify="right")
    table.add_column("Source")
    table.add_column("Section")
    table.add_column("Type", style="cyan")
    table.add_column("Preview", overflow="fold")

    for rank, match in enumerate(result.matches, start=1):
        preview = match.content_preview.replace("\n", " ")
        table.add_row(
            str(rank),
            f"{match.relevance:.2f}",
            escape(match.source_file),
            escape(match.section_path),
            match.doc_type,
            escape(preview[:120]),
        )

    console.print(table)
    if result.filters["types"]:
        console.print(f"[dim]Filtered by type: {', '.join(result.filters['types'])}[/]")
