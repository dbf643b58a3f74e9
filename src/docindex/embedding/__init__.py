"""docindex embedding layer: backends, local health checks, and route resolution."""

from docindex.embedding.backends import (
    EmbeddingBackend,
    EmbeddingBatchResult,
    LocalEmbedder,
    RemoteEmbedder,
)
from docindex.embedding.factory import build_local_backend, build_remote_backend
from docindex.embedding.health import HealthCheck, HealthChecker, HealthReport
from docindex.embedding.router import EmbeddingRouter, RouteResolution
from docindex.embedding.types import EmbeddingRouteMetadata, LocalityMode

__all__ = [
    "EmbeddingBackend",
    "EmbeddingBatchResult",
    "EmbeddingRouteMetadata",
    "EmbeddingRouter",
    "HealthCheck",
    "HealthChecker",
    "HealthReport",
    "LocalEmbedder",
    "LocalityMode",
    "RemoteEmbedder",
    "RouteResolution",
    "build_local_backend",
    "build_remote_backend",
]
