"""Embedding route resolution: pick the backend for one logical operation.

Modes:
- remote-only:     always remote, no health check.
- local-only:      local if healthy, otherwise an error. Never remote.
- local-preferred: local if healthy; otherwise remote only after an explicit
                   interactive confirmation. Never a silent fallback.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from docindex.embedding.backends import EmbeddingBackend, LocalEmbedder
from docindex.embedding.health import DEFAULT_HEALTH_TIMEOUT, HealthChecker, HealthReport
from docindex.embedding.types import EmbeddingRouteMetadata, LocalityMode, Operation
from docindex.errors import (
    ConfirmationHandlerMissingError,
    ConfirmationRequiredError,
    FallbackDeclinedError,
    LocalBackendMissingError,
    LocalUnavailableError,
)

logger = logging.getLogger(__name__)

# Called with (operation, diagnostics); returns True to approve remote fallback.
ConfirmFallback = Callable[[Operation, HealthReport], bool]


@dataclass(frozen=True)
class RouteResolution:
    backend: EmbeddingBackend
    metadata: EmbeddingRouteMetadata
    diagnostics: HealthReport | None = None


class EmbeddingRouter:
    def __init__(self, health_checker: HealthChecker | None = None) -> None:
        self.health_checker = health_checker or HealthChecker()

    def resolve(
        self,
        mode: LocalityMode,
        operation: Operation,
        remote_backend: EmbeddingBackend,
        local_backend: LocalEmbedder | None = None,
        interactive: bool = False,
        confirm_remote_fallback: ConfirmFallback | None = None,
    ) -> RouteResolution:
        """Return the backend to use for *operation* under *mode*.

        Raises:
            LocalBackendMissingError: A local mode without a local backend.
            LocalUnavailableError: local-only and the health check failed.
            ConfirmationRequiredError: local-preferred, unhealthy, non-interactive.
            ConfirmationHandlerMissingError: Interactive but no callback given.
            FallbackDeclinedError: The callback declined the fallback.
        """
        if mode == "remote-only":
            return RouteResolution(
                backend=remote_backend,
                metadata=EmbeddingRouteMetadata(
                    mode=mode, provider="remote", reason="Mode is remote-only"
                ),
            )

        if local_backend is None:
            raise LocalBackendMissingError(
                "Local embedding provider is not configured",
                f"Embedding mode '{mode}' requires a local provider",
                "Set embedding.local.model in docindex.yaml or use --embedding-mode remote-only",
            )

        diagnostics = self.health_checker.check_local_provider(
            base_url=local_backend.base_url,
            model=local_backend.model,
            timeout=min(local_backend.timeout, DEFAULT_HEALTH_TIMEOUT),
            mode=mode,
        )

        if diagnostics.ok:
            logger.info("Embedding route for %s: local (%s)", operation, diagnostics.summary)
            return RouteResolution(
                backend=local_backend,
                metadata=EmbeddingRouteMetadata(
                    mode=mode, provider="local", reason=diagnostics.summary
                ),
                diagnostics=diagnostics,
            )

        if mode == "local-only":
            raise LocalUnavailableError(
                "Local embedding provider is unavailable",
                f"{diagnostics.summary} ({diagnostics.details})",
                diagnostics.fix,
            )

        if not interactive:
            raise ConfirmationRequiredError(
                "Remote fallback requires explicit confirmation in local-preferred mode",
                f"{diagnostics.summary}. Non-interactive execution cannot prompt for confirmation",
                "Rerun interactively to confirm fallback, "
                "or set --embedding-mode remote-only for this run",
            )

        if confirm_remote_fallback is None:
            raise ConfirmationHandlerMissingError(
                "Remote fallback confirmation handler is missing",
                "The router cannot ask for explicit confirmation without a callback",
                "Pass confirm_remote_fallback when resolving in local-preferred mode",
            )

        if not confirm_remote_fallback(operation, diagnostics):
            raise FallbackDeclinedError(
                "Remote fallback was declined",
                "Fallback from local-preferred to the remote provider was denied",
                "Start the local embedding provider or rerun with --embedding-mode remote-only",
            )

        logger.warning("Local embedding unavailable; using remote fallback for %s", operation)
        return RouteResolution(
            backend=remote_backend,
            metadata=EmbeddingRouteMetadata(
                mode=mode,
                provider="remote",
                reason="User confirmed remote fallback from local-preferred mode",
            ),
            diagnostics=diagnostics,
        )
