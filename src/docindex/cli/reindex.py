"""docindex reindex: build or update the search index from generated docs."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from docindex.cli.errors import exit_with_error, warn_remote_fallback
from docindex.config import apply_cli_overrides, load_config
from docindex.embedding.health import HealthReport
from docindex.embedding.types import Operation
from docindex.errors import DocIndexError
from docindex.logging import configure_logging
from docindex.reindex import ReindexOrchestrator, ReindexProgress, ReindexResult

console = Console()

_PHASE_LABELS = {
    "scanning": "Scanning documents",
    "chunking": "Chunking changed documents",
    "embedding": "Embedding chunks",
    "storing": "Storing chunks",
    "complete": "Complete",
}


def reindex_cmd(
    source_dir: Annotated[
        Path | None,
        typer.Option("--source-dir", help="Directory of generated Markdown documents."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the search database (created if missing)."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Re-embed every document, ignoring fingerprints."),
    ] = False,
    embedding_mode: Annotated[
        str | None,
        typer.Option(
            "--embedding-mode",
            help="local-only, local-preferred or remote-only (overrides config).",
        ),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Run non-interactively. Never approves a remote fallback.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """Chunk, embed, and store generated docs; unchanged documents are skipped."""
    configure_logging(verbose=verbose, quiet=not verbose)

    try:
        cfg = apply_cli_overrides(
            load_config(), embedding_mode=embedding_mode, source_dir=source_dir, db_path=db
        )
    except DocIndexError as exc:
        exit_with_error(console, exc)

    interactive = not yes and sys.stdin.isatty()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(_PHASE_LABELS["scanning"], total=None)

        def on_progress(event: ReindexProgress) -> None:
            total = event.chunks_total or None
            progress.update(
                task,
                description=_PHASE_LABELS[event.phase],
                total=total,
                completed=event.chunks_processed if total else 0,
            )

        def confirm(operation: Operation, diagnostics: HealthReport) -> bool:
            progress.stop()
            console.print(warn_remote_fallback(operation, diagnostics))
            approved = typer.confirm("Use the remote embedding provider for this run?")
            progress.start()
            return approved

        orchestrator = ReindexOrchestrator(cfg, on_progress=on_progress)
        try:
            result = orchestrator.run(
                force=force,
                interactive=interactive,
                confirm_remote_fallback=confirm,
            )
        except DocIndexError as exc:
            progress.stop()
            exit_with_error(console, exc)

    _print_summary(result)


def _print_summary(result: ReindexResult) -> None:
    route = result.embedding_route
    console.print("[green]✓[/] Reindex complete")
    console.print(
        f"  Documents: {result.documents_processed} processed, "
        f"{result.documents_skipped} skipped, {result.documents_failed} failed "
        f"(of {result.documents_total})"
    )
    console.print(f"  Chunks:    {result.chunks_created} created ({result.total_tokens} tokens)")
    console.print(
        f"  Model:     {result.embedding_model} ({result.embedding_dimensions}D) "
        f"via {route.provider} [dim]({route.reason})[/]"
    )
    for warning in result.warnings:
        console.print(f"  [yellow]⚠[/] {escape(warning)}")
