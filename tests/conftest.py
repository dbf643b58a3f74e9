"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Sequence
from typing import Any

import pytest

from docindex.config import DocIndexConfig
from docindex.db.store import VectorStore
from docindex.embedding.backends import EmbeddingBackend, EmbeddingBatchResult, LocalEmbedder
from docindex.embedding.router import RouteResolution
from docindex.embedding.types import EmbeddingRouteMetadata

FAKE_MODEL = "fake-embed"
FAKE_DIMS = 8

_WORD_RE = re.compile(r"[a-z0-9]+")


def fake_vector(text: str, dimensions: int = FAKE_DIMS) -> list[float]:
    """Deterministic bag-of-words vector; identical texts map to identical vectors."""
    vector = [0.0] * dimensions
    for word in _WORD_RE.findall(text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dimensions
        vector[bucket] += 1.0
    vector[0] += 0.01  # never all-zero
    norm = math.sqrt(sum(v * v for v in vector))
    return [v / norm for v in vector]


class FakeBackend(EmbeddingBackend):
    """In-memory backend recording every embed_batch() call."""

    def __init__(
        self,
        model: str = FAKE_MODEL,
        dimensions: int = FAKE_DIMS,
        provider: str = "remote",
        report_dimensions: bool = True,
    ) -> None:
        super().__init__(model, batch_size=100, retry_base_delay=0.0)
        self.provider = provider  # type: ignore[assignment]
        self.dimensions = dimensions
        self.report_dimensions = report_dimensions
        self.calls: list[list[str]] = []

    def get_dimensions(self) -> int:
        return self.dimensions if self.report_dimensions else 0

    def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatchResult:
        self.calls.append(list(texts))
        vectors = [fake_vector(t, self.dimensions) for t in texts]
        return EmbeddingBatchResult(
            embeddings=vectors,
            total_tokens=sum(math.ceil(len(t) / 4) for t in texts),
            dimensions=self.dimensions,
        )

    @property
    def embedded_texts(self) -> list[str]:
        return [t for call in self.calls for t in call]

    def _request(self, texts: list[str]) -> Any:  # pragma: no cover - never called
        raise NotImplementedError

    def _request_failed(self, exc, attempts):  # pragma: no cover - never called
        raise NotImplementedError

    def _malformed(self, detail):  # pragma: no cover - never called
        raise NotImplementedError


class StubRouter:
    """Router double that always resolves to one backend and records calls."""

    def __init__(self, backend: EmbeddingBackend, reason: str = "stub route") -> None:
        self.backend = backend
        self.reason = reason
        self.calls: list[dict[str, Any]] = []

    def resolve(self, **kwargs: Any) -> RouteResolution:
        self.calls.append(kwargs)
        return RouteResolution(
            backend=self.backend,
            metadata=EmbeddingRouteMetadata(
                mode=kwargs["mode"], provider=self.backend.provider, reason=self.reason
            ),
        )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def stub_router(fake_backend: FakeBackend) -> StubRouter:
    return StubRouter(fake_backend)


@pytest.fixture
def store(tmp_path):
    """File-based VectorStore in tmp_path (8 dimensions), closed after test."""
    vs = VectorStore(tmp_path / ".docindex" / "search.db", FAKE_MODEL, FAKE_DIMS)
    vs.open()
    yield vs
    vs.close()


@pytest.fixture
def docindex_config(tmp_path) -> DocIndexConfig:
    """Default config pointing at tmp_path/docs and tmp_path/.docindex/search.db."""
    cfg = DocIndexConfig()
    cfg.index.source_dir = str(tmp_path / "docs")
    cfg.index.db_path = str(tmp_path / ".docindex" / "search.db")
    return cfg


@pytest.fixture
def docs_dir(tmp_path):
    """A generated-docs directory with three documents and an index file."""
    d = tmp_path / "docs"
    d.mkdir()
    (d / "00-INDEX.md").write_text("# Index\n\nTable of contents.\n", encoding="utf-8")
    (d / "01-PROJECT-OVERVIEW.md").write_text(
        "# Overview\n\nThis project indexes generated documentation for search.\n\n"
        "## Goals\n\nFast local semantic retrieval.\n",
        encoding="utf-8",
    )
    (d / "03-ARCHITECTURE.md").write_text(
        "# Architecture\n\nThe vector store uses sqlite and a vec0 table.\n\n"
        "## Storage\n\nChunks are stored with embeddings and metadata.\n",
        encoding="utf-8",
    )
    (d / "06-MODULES.md").write_text(
        "# Modules\n\nThe chunker splits markdown by headers.\n",
        encoding="utf-8",
    )
    return d


class FakeLocalEmbedder(LocalEmbedder):
    """LocalEmbedder that never touches the network; health checks still run."""

    def __init__(self, model: str = "nomic-embed-text", dimensions: int = FAKE_DIMS) -> None:
        super().__init__(model)
        self.dimensions = dimensions
        self.calls: list[list[str]] = []

    def get_dimensions(self) -> int:
        return self.dimensions

    def embed_batch(self, texts: Sequence[str]) -> EmbeddingBatchResult:
        self.calls.append(list(texts))
        return EmbeddingBatchResult(
            embeddings=[fake_vector(t, self.dimensions) for t in texts],
            total_tokens=len(texts),
            dimensions=self.dimensions,
        )


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run commands from tmp_path with no global config and no DOCINDEX_* overrides."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.setattr(
        "docindex.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml"
    )
    for name in (
        "DOCINDEX_EMBEDDING_MODE",
        "DOCINDEX_EMBEDDING_MODEL",
        "DOCINDEX_LOCAL_MODEL",
        "DOCINDEX_LOCAL_BASE_URL",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path
