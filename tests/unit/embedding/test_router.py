"""Tests for EmbeddingRouter mode semantics."""

from __future__ import annotations

import http.client

import pytest

from docindex.embedding.backends import LocalEmbedder, RemoteEmbedder
from docindex.embedding.health import HealthCheck, HealthChecker, HealthReport
from docindex.embedding.router import EmbeddingRouter
from docindex.errors import (
    ConfirmationHandlerMissingError,
    ConfirmationRequiredError,
    FallbackDeclinedError,
    LocalBackendMissingError,
    LocalUnavailableError,
)


def _report(ok: bool) -> HealthReport:
    return HealthReport(
        mode="local-preferred",
        base_url="http://localhost:11434",
        model="nomic-embed-text",
        ok=ok,
        connectivity=HealthCheck(ok=ok, detail="Connected" if ok else "Cannot reach"),
        model_ready=HealthCheck(ok=ok, detail="ready" if ok else "Skipped"),
        summary=(
            "Local embedding ready (nomic-embed-text @ http://localhost:11434)"
            if ok
            else "Local embedding health check failed"
        ),
        fix="" if ok else "Start Ollama",
    )


class StubHealthChecker:
    def __init__(self, ok: bool) -> None:
        self.ok = ok
        self.calls = []

    def check_local_provider(self, base_url, model, timeout=5.0, mode="local-preferred"):
        self.calls.append({"base_url": base_url, "model": model, "timeout": timeout, "mode": mode})
        return _report(self.ok)


@pytest.fixture
def remote():
    return RemoteEmbedder("text-embedding-3-small", api_key="sk-test")


@pytest.fixture
def local():
    return LocalEmbedder("nomic-embed-text", timeout=30.0)


def test_remote_only_skips_health_check(remote, local):
    checker = StubHealthChecker(ok=True)
    resolution = EmbeddingRouter(checker).resolve("remote-only", "indexing", remote, local)
    assert resolution.backend is remote
    assert resolution.metadata.provider == "remote"
    assert resolution.metadata.reason == "Mode is remote-only"
    assert resolution.diagnostics is None
    assert checker.calls == []


@pytest.mark.parametrize("mode", ["local-only", "local-preferred"])
def test_healthy_local_is_selected(mode, remote, local):
    checker = StubHealthChecker(ok=True)
    resolution = EmbeddingRouter(checker).resolve(mode, "retrieval", remote, local)
    assert resolution.backend is local
    assert resolution.metadata.mode == mode
    assert resolution.metadata.provider == "local"
    assert resolution.metadata.reason.startswith("Local embedding ready")
    assert resolution.diagnostics.ok


def test_health_check_timeout_is_capped(remote, local):
    checker = StubHealthChecker(ok=True)
    EmbeddingRouter(checker).resolve("local-only", "indexing", remote, local)
    assert checker.calls[0]["timeout"] == 5.0
    assert checker.calls[0]["model"] == "nomic-embed-text"


def test_short_local_timeout_is_kept(remote):
    checker = StubHealthChecker(ok=True)
    fast = LocalEmbedder("nomic-embed-text", timeout=2.0)
    EmbeddingRouter(checker).resolve("local-only", "indexing", remote, fast)
    assert checker.calls[0]["timeout"] == 2.0


@pytest.mark.parametrize("mode", ["local-only", "local-preferred"])
def test_local_modes_require_local_backend(mode, remote):
    with pytest.raises(LocalBackendMissingError):
        EmbeddingRouter(StubHealthChecker(ok=True)).resolve(mode, "indexing", remote, None)


def test_local_only_unhealthy_raises(remote, local):
    with pytest.raises(LocalUnavailableError) as exc_info:
        EmbeddingRouter(StubHealthChecker(ok=False)).resolve("local-only", "indexing", remote, local)
    assert exc_info.value.fix == "Start Ollama"


def test_local_only_never_asks_for_confirmation(remote, local):
    asked = []
    with pytest.raises(LocalUnavailableError):
        EmbeddingRouter(StubHealthChecker(ok=False)).resolve(
            "local-only",
            "indexing",
            remote,
            local,
            interactive=True,
            confirm_remote_fallback=lambda op, diag: asked.append(op) or True,
        )
    assert asked == []


def test_preferred_non_interactive_requires_confirmation(remote, local):
    with pytest.raises(ConfirmationRequiredError) as exc_info:
        EmbeddingRouter(StubHealthChecker(ok=False)).resolve(
            "local-preferred", "retrieval", remote, local, interactive=False
        )
    assert "explicit confirmation" in exc_info.value.message


def test_preferred_interactive_without_callback(remote, local):
    with pytest.raises(ConfirmationHandlerMissingError):
        EmbeddingRouter(StubHealthChecker(ok=False)).resolve(
            "local-preferred", "indexing", remote, local, interactive=True
        )


def test_preferred_declined(remote, local):
    with pytest.raises(FallbackDeclinedError):
        EmbeddingRouter(StubHealthChecker(ok=False)).resolve(
            "local-preferred",
            "indexing",
            remote,
            local,
            interactive=True,
            confirm_remote_fallback=lambda op, diag: False,
        )


def test_preferred_confirmed_uses_remote(remote, local):
    seen = []

    def confirm(operation, diagnostics):
        seen.append((operation, diagnostics.ok))
        return True

    resolution = EmbeddingRouter(StubHealthChecker(ok=False)).resolve(
        "local-preferred",
        "indexing",
        remote,
        local,
        interactive=True,
        confirm_remote_fallback=confirm,
    )
    assert seen == [("indexing", False)]
    assert resolution.backend is remote
    assert resolution.metadata.provider == "remote"
    assert resolution.metadata.reason == "User confirmed remote fallback from local-preferred mode"
    assert resolution.diagnostics is not None
    assert not resolution.diagnostics.ok


def test_preferred_with_non_http_server_still_requires_confirmation(remote, local):
    def ssh_server(request, timeout=None):
        raise http.client.BadStatusLine("SSH-2.0-OpenSSH_9.0")

    with pytest.raises(ConfirmationRequiredError) as exc_info:
        EmbeddingRouter(HealthChecker(urlopen=ssh_server)).resolve(
            "local-preferred", "indexing", remote, local, interactive=False
        )
    assert "Local embedding health check failed" in exc_info.value.reason
