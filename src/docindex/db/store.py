"""Vector store: owns the search database file.

Single interface for: schema setup + dimension validation, chunk rows in the
vec table, per-document fingerprints, and nearest-neighbour search.

Writes for one document (delete old rows, insert new rows, upsert the
fingerprint) happen in one transaction via replace_document(), so a crash
never leaves a document with chunk rows that disagree with its fingerprint.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path

from docindex.db.connection import Database
from docindex.db.models import (
    Chunk,
    ChunkMetadata,
    DocumentFingerprint,
    SchemaMetadata,
    StoredChunk,
)
from docindex.db.schema import (
    VEC_TABLE,
    get_schema_metadata,
    initialize,
    validate_dimensions,
)
from docindex.errors import DimensionMismatchError, StoreNotOpenError

logger = logging.getLogger(__name__)

_INSERT_CHUNK = f"""
INSERT INTO {VEC_TABLE} (
    embedding, doc_id, doc_type, source_file, chunk_index,
    section_path, h1, h2, h3, token_count, content_preview, content
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

# sqlite-vec rejects KNN queries with k above this.
MAX_KNN_K = 4096

_SEARCH_COLUMNS = (
    "rowid, distance, doc_id, doc_type, source_file, chunk_index, "
    "section_path, h1, h2, h3, token_count, content_preview, content"
)


class VectorStore:
    """SQLite + sqlite-vec storage for document chunks and their embeddings.

    Usage::

        with VectorStore(db_path, "text-embedding-3-small", 1536) as store:
            store.replace_document(chunks, embeddings, fingerprint)

    Args:
        db_path: Path to the database file (parent directories are created).
        embedding_model: Model name recorded in schema metadata.
        embedding_dimensions: Fixed vector width for this database.
    """

    def __init__(self, db_path: Path | str, embedding_model: str, embedding_dimensions: int) -> None:
        self.db_path = Path(db_path)
        self.embedding_model = embedding_model
        self.embedding_dimensions = embedding_dimensions
        self._conn: sqlite3.Connection | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Open the database, create the schema if absent, and validate dimensions.

        Raises:
            ExtensionLoadError: sqlite-vec could not be loaded.
            DimensionMismatchError: The database was built with another width.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = Database(self.db_path).connect()
        try:
            initialize(conn, self.embedding_model, self.embedding_dimensions)
            validate_dimensions(conn, self.embedding_model, self.embedding_dimensions, self.db_path)
        except Exception:
            conn.close()
            raise
        self._conn = conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> VectorStore:
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreNotOpenError.create()
        return self._conn

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def insert_chunks(self, chunks: Sequence[Chunk], embeddings: Sequence[Sequence[float]]) -> None:
        """Insert *chunks* with their *embeddings* in a single transaction."""
        conn = self.conn
        with conn:
            self._insert_rows(conn, chunks, embeddings)

    def delete_document_chunks(self, doc_id: str) -> int:
        """Delete every chunk row of *doc_id*. Returns the number of rows removed."""
        conn = self.conn
        with conn:
            return self._delete_rows(conn, doc_id)

    def replace_document(
        self,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float]],
        fingerprint: DocumentFingerprint,
    ) -> int:
        """Swap a document's chunk rows and fingerprint atomically.

        Returns the number of previous rows that were deleted. On any error the
        transaction is rolled back and the document keeps its previous state.
        """
        conn = self.conn
        with conn:
            removed = self._delete_rows(conn, fingerprint.doc_id)
            self._insert_rows(conn, chunks, embeddings)
            self._upsert_fingerprint(conn, fingerprint)
        return removed

    def search(
        self,
        query_embedding: Sequence[float],
        top_k: int = 10,
        doc_types: Sequence[str] | None = None,
    ) -> list[StoredChunk]:
        """Nearest-neighbour search, sorted by ascending distance.

        Args:
            query_embedding: Query vector (must match the store's width).
            top_k: Maximum number of rows to return.
            doc_types: Optional set of ``doc_type`` values to restrict to.
        """
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        self._check_width(query_embedding)
        conn = self.conn
        payload = json.dumps(list(query_embedding))
        k = min(top_k, MAX_KNN_K)

        if not doc_types:
            rows = conn.execute(
                f"SELECT {_SEARCH_COLUMNS} FROM {VEC_TABLE} "
                "WHERE embedding MATCH ? AND k = ? ORDER BY distance",
                (payload, k),
            ).fetchall()
        else:
            # One KNN query per type keeps the filter on an equality constraint;
            # the per-type results are merged and cut back to top_k.
            rows = []
            for doc_type in dict.fromkeys(doc_types):
                rows.extend(
                    conn.execute(
                        f"SELECT {_SEARCH_COLUMNS} FROM {VEC_TABLE} "
                        "WHERE embedding MATCH ? AND k = ? AND doc_type = ? ORDER BY distance",
                        (payload, k, doc_type),
                    ).fetchall()
                )
            rows.sort(key=lambda r: r["distance"])
            rows = rows[:top_k]

        return [_row_to_stored_chunk(r) for r in rows]

    # ------------------------------------------------------------------
    # Fingerprints
    # ------------------------------------------------------------------

    def get_document_fingerprint(self, doc_id: str) -> DocumentFingerprint | None:
        row = self.conn.execute(
            "SELECT doc_id, fingerprint, indexed_at, chunk_count "
            "FROM document_metadata WHERE doc_id = ?",
            (doc_id,),
        ).fetchone()
        return _row_to_fingerprint(row) if row else None

    def upsert_document_fingerprint(self, fingerprint: DocumentFingerprint) -> None:
        conn = self.conn
        with conn:
            self._upsert_fingerprint(conn, fingerprint)

    def list_document_fingerprints(self) -> list[DocumentFingerprint]:
        """Return all fingerprints ordered by doc_id."""
        rows = self.conn.execute(
            "SELECT doc_id, fingerprint, indexed_at, chunk_count "
            "FROM document_metadata ORDER BY doc_id"
        ).fetchall()
        return [_row_to_fingerprint(r) for r in rows]

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_chunk_count(self) -> int:
        return self.conn.execute(f"SELECT COUNT(*) FROM {VEC_TABLE}").fetchone()[0]

    def get_document_count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM document_metadata").fetchone()[0]

    def get_schema_metadata(self) -> SchemaMetadata | None:
        return get_schema_metadata(self.conn)

    # ------------------------------------------------------------------
    # Transaction-less helpers (callers own the transaction)
    # ------------------------------------------------------------------

    def _insert_rows(
        self,
        conn: sqlite3.Connection,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float]],
    ) -> None:
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"Chunk count ({len(chunks)}) does not match embedding count ({len(embeddings)})"
            )
        for embedding in embeddings:
            self._check_width(embedding)

        conn.executemany(
            _INSERT_CHUNK,
            [
                (
                    json.dumps(list(embedding)),
                    chunk.metadata.doc_id,
                    chunk.metadata.doc_type,
                    chunk.metadata.source_file,
                    chunk.metadata.chunk_index,
                    chunk.metadata.section_path,
                    chunk.metadata.h1,
                    chunk.metadata.h2,
                    chunk.metadata.h3,
                    chunk.metadata.token_count,
                    chunk.metadata.content_preview,
                    chunk.content,
                )
                for chunk, embedding in zip(chunks, embeddings)
            ],
        )

    @staticmethod
    def _delete_rows(conn: sqlite3.Connection, doc_id: str) -> int:
        rowids = [
            r[0]
            for r in conn.execute(
                f"SELECT rowid FROM {VEC_TABLE} WHERE doc_id = ?", (doc_id,)
            ).fetchall()
        ]
        if rowids:
            conn.executemany(f"DELETE FROM {VEC_TABLE} WHERE rowid = ?", [(r,) for r in rowids])
        return len(rowids)

    @staticmethod
    def _upsert_fingerprint(conn: sqlite3.Connection, fingerprint: DocumentFingerprint) -> None:
        conn.execute(
            """
            INSERT INTO document_metadata (doc_id, fingerprint, indexed_at, chunk_count)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(doc_id) DO UPDATE SET
                fingerprint = excluded.fingerprint,
                indexed_at  = excluded.indexed_at,
                chunk_count = excluded.chunk_count
            """,
            (
                fingerprint.doc_id,
                fingerprint.fingerprint,
                fingerprint.indexed_at,
                fingerprint.chunk_count,
            ),
        )

    def _check_width(self, embedding: Sequence[float]) -> None:
        if len(embedding) != self.embedding_dimensions:
            raise DimensionMismatchError(
                "Embedding width does not match the index",
                f"Got a {len(embedding)}-dimensional vector; {self.db_path} stores "
                f"{self.embedding_dimensions}-dimensional vectors",
                "Reindex with 'docindex reindex --force' using the model the index was built "
                "with, or delete the database and reindex.",
            )


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_fingerprint(row: sqlite3.Row) -> DocumentFingerprint:
    return DocumentFingerprint(
        doc_id=row["doc_id"],
        fingerprint=row["fingerprint"],
        indexed_at=row["indexed_at"],
        chunk_count=row["chunk_count"],
    )


def _row_to_stored_chunk(row: sqlite3.Row) -> StoredChunk:
    metadata = ChunkMetadata(
        source_file=row["source_file"],
        doc_id=row["doc_id"],
        doc_type=row["doc_type"],
        section_path=row["section_path"],
        chunk_index=row["chunk_index"],
        token_count=row["token_count"],
        content_preview=row["content_preview"],
        h1=row["h1"],
        h2=row["h2"],
        h3=row["h3"],
    )
    return StoredChunk(
        rowid=row["rowid"],
        chunk=Chunk(content=row["content"], metadata=metadata),
        distance=row["distance"],
    )
