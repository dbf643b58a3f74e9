"""docindex rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Library errors (DocIndexError) render themselves via ``format()``; the
helpers here cover CLI-only situations.

Usage:
    from docindex.cli.errors import exit_with_error
    except DocIndexError as exc:
        exit_with_error(console, exc)
"""

from __future__ import annotations

from typing import NoReturn

import typer
from rich.console import Console

from docindex.embedding.health import HealthReport
from docindex.errors import DocIndexError


def exit_with_error(console: Console, exc: DocIndexError) -> NoReturn:
    """Print *exc* as a three-part message and exit with status 1."""
    console.print(exc.format())
    raise typer.Exit(1)


def err_no_index(db_path: str) -> str:
    """No search database at *db_path*."""
    return (
        f"[yellow]No search index found at '{db_path}'.[/]\n"
        "  Run:  docindex reindex"
    )


def err_local_model_missing(mode: str) -> str:
    """Health check requested without a configured local model."""
    return (
        "[red]Error:[/] Local embedding model is required for health checks.\n"
        f"  Embedding mode '{mode}' requires embedding.local.model.\n"
        "  Set embedding.local.model in docindex.yaml or use --embedding-mode remote-only"
    )


def warn_remote_fallback(operation: str, diagnostics: HealthReport) -> str:
    """Shown right before asking to fall back from local to remote embedding."""
    return (
        f"[yellow]⚠[/] Local embedding is unavailable for {operation}.\n"
        f"  {diagnostics.connectivity.detail}\n"
        f"  {diagnostics.model_ready.detail}\n"
        "  Falling back sends document text to the remote embedding API."
    )
