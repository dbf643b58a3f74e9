"""docindex status command.

Shows the search index: schema metadata, chunk/document counts, and the
fingerprint recorded for every indexed document.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from docindex.cli.errors import err_no_index, exit_with_error
from docindex.config import DocIndexConfig, apply_cli_overrides, load_config
from docindex.db.models import DocumentFingerprint, SchemaMetadata
from docindex.db.schema import read_stored_metadata
from docindex.db.store import VectorStore
from docindex.errors import DocIndexError

console = Console()


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the search database."),
    ] = None,
) -> None:
    """Show index statistics and per-document fingerprints."""
    try:
        cfg = apply_cli_overrides(load_config(), db_path=db)
    except DocIndexError as exc:
        console.print(exc.format())
        console.print("[yellow]⚠[/]  Ignoring the configuration above; using default settings.\n")
        cfg = apply_cli_overrides(DocIndexConfig(), db_path=db)

    db_path = Path(cfg.index.db_path)
    if not db_path.is_file():
        console.print(Panel(err_no_index(str(db_path)), title="[bold]Search Index[/]", expand=False))
        return

    metadata = read_stored_metadata(db_path)
    if metadata is None:
        console.print(
            Panel(
                f"[yellow]'{db_path}' has no schema metadata.[/]\n"
                "  Delete it and run:  docindex reindex",
                title="[bold]Search Index[/]",
                expand=False,
            )
        )
        return

    try:
        with VectorStore(db_path, metadata.embedding_model, metadata.embedding_dimensions) as store:
            chunk_count = store.get_chunk_count()
            document_count = store.get_document_count()
            fingerprints = store.list_document_fingerprints()
    except DocIndexError as exc:
        exit_with_error(console, exc)

    _show_index_panel(db_path, metadata, chunk_count, document_count)
    _show_documents_table(fingerprints)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_index_panel(
    db_path: Path, metadata: SchemaMetadata, chunk_count: int, document_count: int
) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    lines = [
        f"Database:  {escape(str(db_path))} ({size_mb:.1f} MB)",
        f"Schema:    v{metadata.schema_version}  [dim]created {metadata.created_at}[/]",
        f"Model:     [bold]{escape(metadata.embedding_model)}[/] "
        f"({metadata.embedding_dimensions}D)",
        f"Documents: [bold]{document_count}[/]  |  Chunks: [bold]{chunk_count:,}[/]",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Search Index[/]", expand=False))


def _show_documents_table(fingerprints: list[DocumentFingerprint]) -> None:
    if not fingerprints:
        console.print("[dim]No documents indexed yet.[/]")
        return

    table = Table(title="Documents")
    table.add_column("Doc ID")
    table.add_column("Chunks", justify="right")
    table.add_column("Indexed", style="dim")
    table.add_column("Fingerprint", style="dim")
    for fp in fingerprints:
        table.add_row(escape(fp.doc_id), str(fp.chunk_count), fp.indexed_at, fp.fingerprint[:12])
    console.print(table)
