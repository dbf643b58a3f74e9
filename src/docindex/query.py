"""Semantic search over the docindex vector store.

Validation happens before any network or database work: query text, top_k,
and --type filters. The embedding route is then resolved non-interactively
(retrieval never prompts), and the index metadata must agree with the active
route on both model and dimensions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from rapidfuzz.distance import Levenshtein

from docindex.config import DocIndexConfig
from docindex.db.models import SchemaMetadata, StoredChunk
from docindex.db.schema import read_stored_metadata
from docindex.db.store import VectorStore
from docindex.embedding.backends import LocalEmbedder
from docindex.embedding.factory import build_local_backend, build_remote_backend
from docindex.embedding.health import HealthChecker
from docindex.embedding.router import EmbeddingRouter
from docindex.embedding.types import LocalityMode
from docindex.errors import (
    EmptyQueryError,
    IndexEmptyError,
    IndexIncompatibleError,
    IndexMissingError,
    InvalidTopKError,
    InvalidTypeFilterError,
    UnknownDocTypeError,
)
from docindex.reindex import resolve_embedding_dimensions

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 10
MAX_SUGGESTION_DISTANCE = 4
MAX_SUGGESTIONS = 3

KNOWN_DOC_TYPES: tuple[str, ...] = (
    "project-overview",
    "getting-started",
    "architecture",
    "file-structure",
    "features",
    "modules",
    "dependencies",
    "environment",
    "edge-cases-and-gotchas",
    "tech-debt-and-todos",
    "conventions",
    "testing-strategy",
    "deployment",
)


@dataclass(frozen=True)
class SearchMatch:
    source_file: str
    section_path: str
    doc_type: str
    chunk_index: int
    content_preview: str
    content: str
    distance: float
    relevance: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceFile": self.source_file,
            "sectionPath": self.section_path,
            "docType": self.doc_type,
            "chunkIndex": self.chunk_index,
            "contentPreview": self.content_preview,
            "content": self.content,
            "distance": self.distance,
            "relevance": self.relevance,
        }


@dataclass
class SearchResult:
    query: str
    top_k: int
    total_matches: int
    matches: list[SearchMatch] = field(default_factory=list)
    filters: dict[str, list[str]] = field(default_factory=lambda: {"types": []})

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "topK": self.top_k,
            "totalMatches": self.total_matches,
            "matches": [m.to_dict() for m in self.matches],
            "filters": {"types": list(self.filters.get("types", []))},
        }


def to_relevance(distance: float) -> float:
    """Map a cosine distance in [0, 2] to a 0–100 relevance score (2 d.p.)."""
    normalized = 1 - distance / 2
    return round(max(0.0, min(1.0, normalized)) * 100, 2)


def suggest_doc_types(value: str) -> list[str]:
    """Up to three known types within edit distance 4, else substring matches."""
    fuzzy = [
        candidate
        for candidate in KNOWN_DOC_TYPES
        if Levenshtein.distance(candidate, value) <= MAX_SUGGESTION_DISTANCE
    ]
    if fuzzy:
        return fuzzy[:MAX_SUGGESTIONS]
    return [candidate for candidate in KNOWN_DOC_TYPES if value in candidate][:MAX_SUGGESTIONS]


def normalize_type_filters(raw_types: list[str] | tuple[str, ...] | None) -> list[str]:
    """Trim, lower-case, validate, and de-duplicate --type values (order kept)."""
    normalized = [value.strip().lower() for value in raw_types or ()]
    if any(not value for value in normalized):
        raise InvalidTypeFilterError(
            "Invalid --type filter value",
            "A --type value was empty after trimming whitespace",
            f"Use one or more known document types: {', '.join(KNOWN_DOC_TYPES)}",
        )

    for value in normalized:
        if value in KNOWN_DOC_TYPES:
            continue
        suggestions = suggest_doc_types(value)
        hint = (
            f"Did you mean: {', '.join(suggestions)}?"
            if suggestions
            else f"Known types: {', '.join(KNOWN_DOC_TYPES)}"
        )
        raise UnknownDocTypeError(
            f"Unknown document type: {value}",
            "The --type filter only accepts known document types",
            f"{hint}\n  Repeat the flag to filter multiple types "
            "(example: --type architecture --type modules).",
            suggestions=suggestions,
        )

    return list(dict.fromkeys(normalized))


class QueryEngine:
    """Answer semantic queries against the configured index.

    Args:
        config: Loaded configuration (CLI overrides already applied).
        router: Route resolver; defaults to one sharing *health_checker*.
        health_checker: Used to re-assert local health before embedding the query.
    """

    def __init__(
        self,
        config: DocIndexConfig,
        router: EmbeddingRouter | None = None,
        health_checker: HealthChecker | None = None,
    ) -> None:
        self.config = config
        self.health_checker = health_checker or HealthChecker()
        self.router = router or EmbeddingRouter(self.health_checker)

    def search(
        self,
        query: str,
        top_k: int = DEFAULT_TOP_K,
        types: list[str] | tuple[str, ...] | None = None,
        mode: LocalityMode | None = None,
        db_path: Path | str | None = None,
    ) -> SearchResult:
        """Embed *query* and return the nearest indexed chunks.

        Raises:
            QueryError: Invalid input, or the index is missing or empty.
            RouteError: No embedding backend could be selected.
            CompatibilityError: The index was built with another model or width.
        """
        text = (query or "").strip()
        if not text:
            raise EmptyQueryError(
                "Search query cannot be empty",
                "Semantic search requires a non-empty query string",
                'Try: docindex search "architecture overview"\n'
                '  Or: docindex search "test strategy" --type testing-strategy',
            )

        if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
            raise InvalidTopKError(
                f"Invalid --top-k value: {top_k}",
                "--top-k must be a positive integer",
                "Use a value like --top-k 10",
            )

        type_filters = normalize_type_filters(types)

        target_db = Path(db_path if db_path is not None else self.config.index.db_path)
        if not target_db.is_file():
            raise IndexMissingError(
                f"Search index not found at {target_db}",
                "No vector database exists yet for this project",
                "Run 'docindex reindex' to build the search index",
            )

        active_mode: LocalityMode = mode or self.config.embedding.mode
        route = self.router.resolve(
            mode=active_mode,
            operation="retrieval",
            remote_backend=build_remote_backend(self.config, active_mode),
            local_backend=build_local_backend(self.config, active_mode),
            interactive=False,
        )
        backend = route.backend
        if isinstance(backend, LocalEmbedder):
            self.health_checker.assert_ready(
                self.health_checker.check_local_provider(
                    base_url=backend.base_url, model=backend.model, mode=active_mode
                )
            )

        stored = read_stored_metadata(target_db)
        dimensions = resolve_embedding_dimensions(backend, stored, allow_probe=False)
        _assert_compatible(stored, backend.model, dimensions)

        with VectorStore(target_db, backend.model, dimensions) as store:
            if store.get_chunk_count() == 0:
                raise IndexEmptyError(
                    "Search index is empty",
                    "The vector database exists but contains no indexed chunks",
                    "Run 'docindex reindex' to populate the search index",
                )

            batch = backend.embed_batch([text])
            rows = store.search(batch.embeddings[0], top_k=top_k, doc_types=type_filters or None)

        logger.debug("Query %r returned %d matches", text, len(rows))
        return SearchResult(
            query=text,
            top_k=top_k,
            total_matches=len(rows),
            matches=[_to_match(row) for row in rows],
            filters={"types": type_filters},
        )


def _assert_compatible(stored: SchemaMetadata | None, model: str, dimensions: int) -> None:
    if stored is None:
        return
    if stored.embedding_model == model and stored.embedding_dimensions == dimensions:
        return
    raise IndexIncompatibleError(
        "Search index is incompatible with the active embedding configuration",
        f"Index metadata is {stored.embedding_model} ({stored.embedding_dimensions}D), "
        f"but retrieval resolved {model} ({dimensions}D)",
        "Reindex with the active model by running 'docindex reindex --force', "
        "then rerun the search query.",
    )


def _to_match(row: StoredChunk) -> SearchMatch:
    meta = row.chunk.metadata
    return SearchMatch(
        source_file=meta.source_file,
        section_path=meta.section_path,
        doc_type=meta.doc_type,
        chunk_index=meta.chunk_index,
        content_preview=meta.content_preview,
        content=row.chunk.content,
        distance=row.distance,
        relevance=to_relevance(row.distance),
    )
