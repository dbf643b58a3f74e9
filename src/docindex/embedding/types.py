"""Embedding route vocabulary and known model dimensions."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Literal

LocalityMode = Literal["local-only", "local-preferred", "remote-only"]
ProviderRoute = Literal["local", "remote"]
Operation = Literal["indexing", "retrieval", "health-check"]

LOCALITY_MODES: tuple[str, ...] = ("local-only", "local-preferred", "remote-only")
DEFAULT_LOCALITY_MODE: LocalityMode = "local-preferred"

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_LOCAL_BASE_URL = "http://localhost:11434"

EMBEDDING_MODELS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


@dataclass(frozen=True)
class EmbeddingRouteMetadata:
    """Why one logical operation used a given backend. Never persisted."""

    mode: LocalityMode
    provider: ProviderRoute
    reason: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)
