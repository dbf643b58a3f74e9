"""docindex embedding-health: check the local embedding server."""

from __future__ import annotations

import json
from typing import Annotated

import typer
from rich.console import Console

from docindex.cli.errors import err_local_model_missing, exit_with_error
from docindex.config import apply_cli_overrides, load_config
from docindex.embedding.health import HealthChecker
from docindex.errors import DocIndexError

console = Console()


def embedding_health_cmd(
    embedding_mode: Annotated[
        str | None,
        typer.Option("--embedding-mode", help="local-only, local-preferred or remote-only."),
    ] = None,
) -> None:
    """Probe the local embedding server; prints JSON diagnostics on failure."""
    try:
        cfg = apply_cli_overrides(load_config(), embedding_mode=embedding_mode)
    except DocIndexError as exc:
        exit_with_error(console, exc)

    mode = cfg.embedding.mode
    if mode == "remote-only":
        typer.echo("Embedding health: ready (mode: remote-only, provider: remote)")
        return

    local = cfg.embedding.local
    if not local.model:
        console.print(err_local_model_missing(mode))
        raise typer.Exit(1)

    report = HealthChecker().check_local_provider(
        base_url=local.base_url,
        model=local.model,
        timeout=min(local.timeout, 5.0),
        mode=mode,
    )
    if not report.ok:
        payload = report.to_dict()
        payload.pop("checkedAt", None)
        typer.echo(json.dumps(payload, indent=2))
        raise typer.Exit(1)

    typer.echo(f"Embedding health: ready (mode: {report.mode}, provider: {report.provider})")
    console.print(f"[green]✓[/] {report.summary}")
