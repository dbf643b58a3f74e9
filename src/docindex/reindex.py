"""Reindex pipeline: discover, chunk, embed, and store with change detection.

Phases (each emits a ReindexProgress event):
  scanning   discover *.md documents in the source directory
  chunking   skip unchanged fingerprints, chunk the rest
  embedding  one combined embed_batch() over every new chunk
  storing    replace each document's rows + fingerprint in one transaction
  complete

The embedding route is resolved once per run. Per-document chunk or store
failures become warnings in the result; the run continues and documents that
were already committed stay committed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from docindex.config import DocIndexConfig
from docindex.db.models import Chunk, DocumentFingerprint, SchemaMetadata
from docindex.db.schema import dimension_mismatch, read_stored_metadata
from docindex.db.store import VectorStore
from docindex.embedding.backends import EmbeddingBackend, LocalEmbedder
from docindex.embedding.factory import build_local_backend, build_remote_backend
from docindex.embedding.health import HealthChecker
from docindex.embedding.router import ConfirmFallback, EmbeddingRouter, RouteResolution
from docindex.embedding.types import EmbeddingRouteMetadata, LocalityMode
from docindex.errors import DimensionsUnknownError, NoDocumentsError
from docindex.ingest.chunker import MarkdownChunker
from docindex.ingest.discovery import SourceDocument, compute_fingerprint, discover_documents

logger = logging.getLogger(__name__)

ProgressPhase = Literal["scanning", "chunking", "embedding", "storing", "complete"]

_PROBE_TEXT = "dimension probe"


@dataclass(frozen=True)
class ReindexProgress:
    phase: ProgressPhase
    documents_total: int
    documents_processed: int
    documents_skipped: int
    documents_failed: int
    chunks_total: int
    chunks_processed: int


@dataclass
class ReindexResult:
    documents_processed: int
    documents_skipped: int
    documents_failed: int
    documents_total: int
    chunks_created: int
    total_tokens: int
    embedding_model: str
    embedding_dimensions: int
    embedding_route: EmbeddingRouteMetadata
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentsProcessed": self.documents_processed,
            "documentsSkipped": self.documents_skipped,
            "documentsFailed": self.documents_failed,
            "documentsTotal": self.documents_total,
            "chunksCreated": self.chunks_created,
            "totalTokens": self.total_tokens,
            "embeddingModel": self.embedding_model,
            "embeddingDimensions": self.embedding_dimensions,
            "embeddingRoute": self.embedding_route.to_dict(),
            "warnings": list(self.warnings),
        }


@dataclass
class _RunTally:
    """Counters for one run, threaded through every phase."""

    documents_total: int = 0
    documents_processed: int = 0
    documents_skipped: int = 0
    documents_failed: int = 0
    chunks_total: int = 0
    chunks_processed: int = 0
    total_tokens: int = 0
    warnings: list[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        logger.info(message)
        self.warnings.append(message)
        self.documents_failed += 1

    def snapshot(self, phase: ProgressPhase) -> ReindexProgress:
        return ReindexProgress(
            phase=phase,
            documents_total=self.documents_total,
            documents_processed=self.documents_processed,
            documents_skipped=self.documents_skipped,
            documents_failed=self.documents_failed,
            chunks_total=self.chunks_total,
            chunks_processed=self.chunks_processed,
        )


def resolve_embedding_dimensions(
    backend: EmbeddingBackend,
    stored: SchemaMetadata | None,
    allow_probe: bool = True,
) -> int:
    """Return the vector width for *backend*.

    Order: the backend's own report, then the stored width when the stored
    model is the backend's model, then (if allowed) a one-text probe embed.

    Raises:
        DimensionsUnknownError: No source produced a positive width.
    """
    dimensions = backend.get_dimensions()
    if dimensions > 0:
        return dimensions

    if stored is not None and stored.embedding_model == backend.model:
        return stored.embedding_dimensions

    if allow_probe:
        probe = backend.embed_batch([_PROBE_TEXT])
        dimensions = len(probe.embeddings[0]) if probe.embeddings else probe.dimensions
        if dimensions > 0:
            logger.debug("Probed %s: %d dimensions", backend.model, dimensions)
            return dimensions

    raise DimensionsUnknownError(
        f"Unable to determine embedding dimensions for model '{backend.model}'",
        "The backend does not report a width and no compatible index metadata exists",
        "Verify the configured embedding model supports vector embeddings and retry",
    )


class ReindexOrchestrator:
    """Run the reindex pipeline against one source directory and database.

    Args:
        config: Loaded configuration (CLI overrides already applied).
        router: Route resolver; defaults to one sharing *health_checker*.
        health_checker: Used to re-assert local health before embedding.
        on_progress: Called with a ReindexProgress at every phase change.
    """

    def __init__(
        self,
        config: DocIndexConfig,
        router: EmbeddingRouter | None = None,
        health_checker: HealthChecker | None = None,
        on_progress: Callable[[ReindexProgress], None] | None = None,
    ) -> None:
        self.config = config
        self.health_checker = health_checker or HealthChecker()
        self.router = router or EmbeddingRouter(self.health_checker)
        self.on_progress = on_progress

    def run(
        self,
        source_dir: Path | str | None = None,
        force: bool = False,
        mode: LocalityMode | None = None,
        interactive: bool = False,
        confirm_remote_fallback: ConfirmFallback | None = None,
        db_path: Path | str | None = None,
    ) -> ReindexResult:
        """Reindex every changed document in *source_dir*.

        Raises:
            SourceDirectoryError: The source directory is unreadable.
            NoDocumentsError: No eligible Markdown documents were found.
            RouteError: No embedding backend could be selected.
            CompatibilityError: The database was built with another width.
        """
        source = Path(source_dir if source_dir is not None else self.config.index.source_dir)
        target_db = Path(db_path if db_path is not None else self.config.index.db_path)
        active_mode: LocalityMode = mode or self.config.embedding.mode
        tally = _RunTally()

        logger.info("Scanning %s", source)
        documents = discover_documents(source)
        if not documents:
            raise NoDocumentsError(
                f"No documents found in {source}",
                "The directory exists but contains no eligible .md files",
                "Generate the documentation first, or point --source-dir at the right directory",
            )
        tally.documents_total = len(documents)
        self._emit(tally, "scanning")
        logger.info("Found %d documents", len(documents))

        route = self._resolve_route(active_mode, interactive, confirm_remote_fallback)
        backend = route.backend
        logger.info(
            "Embedding route: provider=%s, reason=%s",
            route.metadata.provider,
            route.metadata.reason,
        )

        stored = read_stored_metadata(target_db)
        dimensions = resolve_embedding_dimensions(backend, stored)
        if stored is not None and stored.embedding_dimensions != dimensions:
            raise dimension_mismatch(stored, backend.model, dimensions, target_db)

        with VectorStore(target_db, backend.model, dimensions) as store:
            changed = self._detect_changes(store, documents, force, tally)
            self._emit(tally, "chunking")

            prepared = self._chunk_documents(changed, tally)
            tally.chunks_total = sum(len(chunks) for _, chunks in prepared)

            if not changed:
                logger.info("No documents to process")
                self._emit(tally, "complete")
                return self._result(tally, backend, dimensions, route.metadata)

            if tally.chunks_total == 0:
                message = (
                    "No chunks were produced from changed documents. Check warnings and "
                    "rerun with --verbose after fixing malformed files."
                )
                logger.info(message)
                tally.warnings.append(message)
                self._emit(tally, "complete")
                return self._result(tally, backend, dimensions, route.metadata)

            self._emit(tally, "embedding")
            embeddings = self._embed(route, prepared, tally)
            self._emit(tally, "storing")

            self._store(store, prepared, embeddings, tally)

        self._emit(tally, "complete")
        logger.info(
            "Reindex complete: %d processed, %d skipped, %d failed",
            tally.documents_processed,
            tally.documents_skipped,
            tally.documents_failed,
        )
        return self._result(tally, backend, dimensions, route.metadata)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _resolve_route(
        self,
        mode: LocalityMode,
        interactive: bool,
        confirm_remote_fallback: ConfirmFallback | None,
    ) -> RouteResolution:
        remote = build_remote_backend(self.config, mode)
        local = build_local_backend(self.config, mode)
        return self.router.resolve(
            mode=mode,
            operation="indexing",
            remote_backend=remote,
            local_backend=local,
            interactive=interactive,
            confirm_remote_fallback=confirm_remote_fallback,
        )

    def _detect_changes(
        self,
        store: VectorStore,
        documents: list[SourceDocument],
        force: bool,
        tally: _RunTally,
    ) -> list[SourceDocument]:
        if force:
            logger.info("Force mode: re-embedding all documents")
            return list(documents)

        changed: list[SourceDocument] = []
        for doc in documents:
            stored = store.get_document_fingerprint(doc.doc_id)
            if stored is not None and stored.fingerprint == compute_fingerprint(
                doc.source_file, doc.content
            ):
                logger.debug("Unchanged: %s", doc.source_file)
                tally.documents_skipped += 1
            else:
                logger.debug("Changed: %s", doc.source_file)
                changed.append(doc)
        return changed

    def _chunk_documents(
        self, documents: list[SourceDocument], tally: _RunTally
    ) -> list[tuple[SourceDocument, list[Chunk]]]:
        chunker = MarkdownChunker(
            self.config.chunking.chunk_size, self.config.chunking.chunk_overlap
        )
        prepared: list[tuple[SourceDocument, list[Chunk]]] = []
        for doc in documents:
            try:
                chunks = chunker.chunk(doc.content, doc.source_file, doc.doc_id, doc.doc_type)
            except Exception as exc:
                tally.fail(f"Failed to chunk {doc.source_file}: {exc}")
                continue
            logger.debug("%s: %d chunks", doc.source_file, len(chunks))
            prepared.append((doc, chunks))
        return prepared

    def _embed(
        self,
        route: RouteResolution,
        prepared: list[tuple[SourceDocument, list[Chunk]]],
        tally: _RunTally,
    ) -> list[list[float]]:
        backend = route.backend
        if isinstance(backend, LocalEmbedder):
            report = self.health_checker.check_local_provider(
                base_url=backend.base_url,
                model=backend.model,
                mode=route.metadata.mode,
            )
            self.health_checker.assert_ready(report)

        texts = [chunk.content for _, chunks in prepared for chunk in chunks]
        logger.info("Embedding %d chunks", len(texts))
        batch = backend.embed_batch(texts)
        tally.total_tokens = batch.total_tokens
        tally.chunks_processed = len(batch.embeddings)
        return batch.embeddings

    def _store(
        self,
        store: VectorStore,
        prepared: list[tuple[SourceDocument, list[Chunk]]],
        embeddings: list[list[float]],
        tally: _RunTally,
    ) -> None:
        stored_chunks = 0
        offset = 0
        for doc, chunks in prepared:
            doc_embeddings = embeddings[offset : offset + len(chunks)]
            offset += len(chunks)
            fingerprint = DocumentFingerprint(
                doc_id=doc.doc_id,
                fingerprint=compute_fingerprint(doc.source_file, doc.content),
                indexed_at=datetime.now(timezone.utc).isoformat(),
                chunk_count=len(chunks),
            )
            try:
                store.replace_document(chunks, doc_embeddings, fingerprint)
            except Exception as exc:
                tally.fail(f"Failed to store {doc.source_file}: {exc}")
                continue
            tally.documents_processed += 1
            stored_chunks += len(chunks)
            logger.debug("Stored %s (%d chunks)", doc.source_file, len(chunks))
        tally.chunks_processed = stored_chunks

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(self, tally: _RunTally, phase: ProgressPhase) -> None:
        if self.on_progress is not None:
            self.on_progress(tally.snapshot(phase))

    @staticmethod
    def _result(
        tally: _RunTally,
        backend: EmbeddingBackend,
        dimensions: int,
        route: EmbeddingRouteMetadata,
    ) -> ReindexResult:
        return ReindexResult(
            documents_processed=tally.documents_processed,
            documents_skipped=tally.documents_skipped,
            documents_failed=tally.documents_failed,
            documents_total=tally.documents_total,
            chunks_created=tally.chunks_processed,
            total_tokens=tally.total_tokens,
            embedding_model=backend.model,
            embedding_dimensions=dimensions,
            embedding_route=route,
            warnings=list(tally.warnings),
        )
