"""Local embedding server health checks (Ollama HTTP API).

Two probes, each with its own timeout:
- connectivity:  GET  {base_url}/api/version
- model_ready:   POST {base_url}/api/show  {"model": ...}
                 falling back to GET {base_url}/api/tags membership

The model probe only runs when the server answered the connectivity probe.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from docindex.embedding.types import DEFAULT_LOCALITY_MODE, LocalityMode, ProviderRoute
from docindex.errors import HealthCheckFailedError

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_TIMEOUT = 5.0
_LATEST_SUFFIX = ":latest"

UrlOpener = Callable[..., Any]

# Anything urlopen or the JSON decode can raise for a bad or absent server.
_PROBE_ERRORS = (urllib.error.URLError, http.client.HTTPException, OSError, ValueError)


@dataclass(frozen=True)
class HealthCheck:
    ok: bool
    detail: str


@dataclass(frozen=True)
class HealthReport:
    mode: LocalityMode
    base_url: str
    model: str
    ok: bool
    connectivity: HealthCheck
    model_ready: HealthCheck
    summary: str
    fix: str
    checked_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    provider: ProviderRoute = "local"

    @property
    def details(self) -> str:
        return f"connectivity: {self.connectivity.detail}; model: {self.model_ready.detail}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "mode": self.mode,
            "baseUrl": self.base_url,
            "model": self.model,
            "ok": self.ok,
            "checkedAt": self.checked_at,
            "checks": {
                "connectivity": {"ok": self.connectivity.ok, "detail": self.connectivity.detail},
                "modelReady": {"ok": self.model_ready.ok, "detail": self.model_ready.detail},
            },
            "summary": self.summary,
            "fix": self.fix,
        }


class HealthChecker:
    """Probe a local Ollama server.

    Args:
        urlopen: Callable with the signature of ``urllib.request.urlopen``;
            replaced in tests.
    """

    def __init__(self, urlopen: UrlOpener | None = None) -> None:
        self._urlopen = urlopen or urllib.request.urlopen

    def check_local_provider(
        self,
        base_url: str,
        model: str,
        timeout: float = DEFAULT_HEALTH_TIMEOUT,
        mode: LocalityMode = DEFAULT_LOCALITY_MODE,
    ) -> HealthReport:
        base = base_url.rstrip("/")
        connectivity = self._check_connectivity(base, timeout)
        if connectivity.ok:
            model_ready = self._check_model(base, model, timeout)
        else:
            model_ready = HealthCheck(
                ok=False, detail=f"Skipped because connectivity check failed for {base}"
            )

        ok = connectivity.ok and model_ready.ok
        report = HealthReport(
            mode=mode,
            base_url=base,
            model=model,
            ok=ok,
            connectivity=connectivity,
            model_ready=model_ready,
            summary=(
                f"Local embedding ready ({model} @ {base})"
                if ok
                else "Local embedding health check failed"
            ),
            fix=(
                ""
                if ok
                else f"Start Ollama and verify endpoint {base}. "
                f"Install the model with 'ollama pull {model}' and retry."
            ),
        )
        logger.debug("Health check %s: %s", "passed" if ok else "failed", report.summary)
        return report

    def assert_ready(self, report: HealthReport) -> None:
        """Raise HealthCheckFailedError unless *report* is ok."""
        if report.ok:
            return
        raise HealthCheckFailedError(
            f"Local embedding provider is not ready ({report.model} @ {report.base_url})",
            report.details,
            report.fix,
        )

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    def _check_connectivity(self, base: str, timeout: float) -> HealthCheck:
        try:
            payload = self._request_json(f"{base}/api/version", timeout=timeout)
        except _PROBE_ERRORS as exc:
            return HealthCheck(ok=False, detail=f"Cannot reach {base}: {_describe(exc)}")
        version = payload.get("version") if isinstance(payload, dict) else None
        if version:
            return HealthCheck(ok=True, detail=f"Connected to Ollama {version}")
        return HealthCheck(ok=True, detail=f"Connected to {base}")

    def _check_model(self, base: str, model: str, timeout: float) -> HealthCheck:
        try:
            self._request_json(f"{base}/api/show", body={"model": model}, timeout=timeout)
        except _PROBE_ERRORS as show_exc:
            show_error = _describe(show_exc)
        else:
            return HealthCheck(ok=True, detail=f"Model '{model}' is available")

        try:
            installed = self._list_models(base, timeout)
        except _PROBE_ERRORS as exc:
            return HealthCheck(
                ok=False,
                detail=f"Model check failed: /api/show: {show_error}; /api/tags: {_describe(exc)}",
            )

        if _model_installed(model, installed):
            return HealthCheck(
                ok=False,
                detail=f"Model '{model}' is installed but /api/show failed: {show_error}",
            )
        return HealthCheck(ok=False, detail=f"Model '{model}' is not installed")

    def _list_models(self, base: str, timeout: float) -> list[str]:
        payload = self._request_json(f"{base}/api/tags", timeout=timeout)
        models = payload.get("models") if isinstance(payload, dict) else None
        if not isinstance(models, list):
            raise ValueError("/api/tags response has no 'models' list")
        names: list[str] = []
        for entry in models:
            if not isinstance(entry, dict):
                continue
            for key in ("name", "model"):
                value = entry.get(key)
                if isinstance(value, str) and value:
                    names.append(value)
        return names

    def _request_json(
        self, url: str, timeout: float, body: dict[str, Any] | None = None
    ) -> Any:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        request = urllib.request.Request(
            url,
            data=data,
            headers={"Content-Type": "application/json"} if data is not None else {},
            method="POST" if data is not None else "GET",
        )
        with self._urlopen(request, timeout=timeout) as response:
            raw = response.read()
        if not raw:
            return {}
        return json.loads(raw.decode("utf-8"))


def _model_installed(model: str, installed: list[str]) -> bool:
    candidates = {model}
    if model.endswith(_LATEST_SUFFIX):
        candidates.add(model[: -len(_LATEST_SUFFIX)])
    else:
        candidates.add(model + _LATEST_SUFFIX)
    return any(name in candidates for name in installed)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, urllib.error.HTTPError):
        return f"HTTP {exc.code}"
    if isinstance(exc, urllib.error.URLError):
        return str(exc.reason)
    if isinstance(exc, http.client.HTTPException):
        return f"{type(exc).__name__}: {exc}"
    return str(exc) or type(exc).__name__
