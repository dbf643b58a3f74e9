"""Tests for `docindex embedding-health`."""

from __future__ import annotations

import io
import json
import urllib.error

import pytest
from typer.testing import CliRunner

from docindex.cli.main import app
from docindex.embedding.health import HealthChecker

runner = CliRunner()


def _healthy(request, timeout=None):
    if request.full_url.endswith("/api/version"):
        return io.BytesIO(b'{"version": "0.5.1"}')
    return io.BytesIO(b"{}")


def _refusing(request, timeout=None):
    raise urllib.error.URLError("Connection refused")


def _use_urlopen(monkeypatch: pytest.MonkeyPatch, urlopen) -> None:
    monkeypatch.setattr(
        "docindex.cli.health.HealthChecker", lambda: HealthChecker(urlopen=urlopen)
    )


def test_remote_only_is_ready_without_check(cli_env, monkeypatch) -> None:
    _use_urlopen(monkeypatch, _refusing)
    result = runner.invoke(app, ["embedding-health", "--embedding-mode", "remote-only"])
    assert result.exit_code == 0
    assert "Embedding health: ready (mode: remote-only, provider: remote)" in result.output


def test_local_model_required(cli_env) -> None:
    result = runner.invoke(app, ["embedding-health"])
    assert result.exit_code == 1
    assert "embedding.local.model" in result.output


def test_healthy_local_server(cli_env, monkeypatch) -> None:
    monkeypatch.setenv("DOCINDEX_LOCAL_MODEL", "nomic-embed-text")
    _use_urlopen(monkeypatch, _healthy)
    result = runner.invoke(app, ["embedding-health", "--embedding-mode", "local-only"])
    assert result.exit_code == 0, result.output
    assert "Embedding health: ready (mode: local-only, provider: local)" in result.output
    assert "Local embedding ready (nomic-embed-text @ http://localhost:11434)" in result.output


def test_unhealthy_local_server_prints_json(cli_env, monkeypatch) -> None:
    monkeypatch.setenv("DOCINDEX_LOCAL_MODEL", "nomic-embed-text")
    _use_urlopen(monkeypatch, _refusing)
    result = runner.invoke(app, ["embedding-health"])
    assert result.exit_code == 1
    data = json.loads(result.output)
    assert data["ok"] is False
    assert data["mode"] == "local-preferred"
    assert data["checks"]["connectivity"]["ok"] is False
    assert "Connection refused" in data["checks"]["connectivity"]["detail"]
    assert "ollama pull nomic-embed-text" in data["fix"]
    assert "checkedAt" not in data


def test_config_base_url_is_used(cli_env, monkeypatch) -> None:
    (cli_env / "docindex.yaml").write_text(
        "embedding:\n  local:\n    model: nomic-embed-text\n    base_url: http://gpu-box:11434/\n",
        encoding="utf-8",
    )
    seen = []

    def recording(request, timeout=None):
        seen.append(request.full_url)
        return _healthy(request, timeout)

    _use_urlopen(monkeypatch, recording)
    result = runner.invoke(app, ["embedding-health"])
    assert result.exit_code == 0, result.output
    assert seen[0] == "http://gpu-box:11434/api/version"
