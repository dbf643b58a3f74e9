"""Database schema DDL, schema metadata, and embedding-dimension validation.

The vec table width is fixed when the table is created. The stored
``embedding_dimensions`` value is the load-bearing invariant: a database can
only ever hold vectors of that width. A changed model name at equal width is
treated as an alias and updated in place.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from docindex.db.models import SchemaMetadata
from docindex.errors import DimensionMismatchError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
VEC_TABLE = "vec_chunks"

_CREATE_SCHEMA_METADATA = """
CREATE TABLE IF NOT EXISTS schema_metadata (
    key     TEXT PRIMARY KEY,
    value   TEXT NOT NULL
)
"""

_CREATE_DOCUMENT_METADATA = """
CREATE TABLE IF NOT EXISTS document_metadata (
    doc_id       TEXT PRIMARY KEY,
    fingerprint  TEXT NOT NULL,
    indexed_at   TEXT NOT NULL,
    chunk_count  INTEGER NOT NULL DEFAULT 0
)
"""

# Metadata columns (doc_id .. chunk_index) are filterable inside KNN queries.
# Columns prefixed with + are auxiliary: stored alongside the vector, not indexed.
_CREATE_VEC_CHUNKS = """
CREATE VIRTUAL TABLE {table} USING vec0(
    embedding float[{dimensions}] distance_metric=cosine,
    doc_id TEXT,
    doc_type TEXT,
    source_file TEXT,
    chunk_index INTEGER,
    +section_path TEXT,
    +h1 TEXT,
    +h2 TEXT,
    +h3 TEXT,
    +token_count INTEGER,
    +content_preview TEXT,
    +content TEXT
)
"""


def initialize(conn: sqlite3.Connection, embedding_model: str, embedding_dimensions: int) -> None:
    """Create all tables if absent and write schema metadata on first creation.

    Idempotent: an existing vec table keeps the width it was created with;
    use validate_dimensions() to detect a mismatch.
    """
    if embedding_dimensions < 1:
        raise ValueError(f"embedding_dimensions must be >= 1, got {embedding_dimensions}")

    conn.execute(_CREATE_SCHEMA_METADATA)
    conn.execute(_CREATE_DOCUMENT_METADATA)

    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (VEC_TABLE,)
    ).fetchone()
    if existing is None:
        conn.execute(_CREATE_VEC_CHUNKS.format(table=VEC_TABLE, dimensions=embedding_dimensions))
    conn.commit()

    if get_schema_metadata(conn) is None:
        now = datetime.now(timezone.utc).isoformat()
        with conn:
            conn.executemany(
                "INSERT INTO schema_metadata (key, value) VALUES (?, ?)",
                [
                    ("schema_version", str(SCHEMA_VERSION)),
                    ("embedding_model", embedding_model),
                    ("embedding_dimensions", str(embedding_dimensions)),
                    ("created_at", now),
                ],
            )
        logger.info(
            "Created index schema v%d (%s, %dD)", SCHEMA_VERSION, embedding_model, embedding_dimensions
        )


def get_schema_metadata(conn: sqlite3.Connection) -> SchemaMetadata | None:
    """Return stored schema metadata, or None if nothing has been written yet."""
    rows = conn.execute("SELECT key, value FROM schema_metadata").fetchall()
    return _rows_to_metadata(rows)


def validate_dimensions(
    conn: sqlite3.Connection,
    embedding_model: str,
    embedding_dimensions: int,
    db_path: Path | str | None = None,
) -> None:
    """Raise if the stored width differs; silently adopt a renamed model.

    Raises:
        DimensionMismatchError: Stored and configured dimensions differ.
    """
    stored = get_schema_metadata(conn)
    if stored is None:
        return

    if stored.embedding_dimensions != embedding_dimensions:
        raise dimension_mismatch(stored, embedding_model, embedding_dimensions, db_path)

    if stored.embedding_model != embedding_model:
        logger.debug(
            "Embedding model renamed %s -> %s at %dD; updating schema metadata",
            stored.embedding_model,
            embedding_model,
            embedding_dimensions,
        )
        with conn:
            conn.execute(
                "UPDATE schema_metadata SET value = ? WHERE key = 'embedding_model'",
                (embedding_model,),
            )


def dimension_mismatch(
    stored: SchemaMetadata,
    embedding_model: str,
    embedding_dimensions: int,
    db_path: Path | str | None = None,
) -> DimensionMismatchError:
    location = str(db_path) if db_path else "the search database"
    return DimensionMismatchError(
        "Embedding model mismatch detected",
        f"Database was created with {stored.embedding_model} "
        f"({stored.embedding_dimensions} dimensions); the active configuration uses "
        f"{embedding_model} ({embedding_dimensions} dimensions)",
        f"Delete {location} and run 'docindex reindex' to rebuild the index with the new "
        "model. This re-embeds every document and may incur API costs.",
    )


def read_stored_metadata(db_path: Path | str) -> SchemaMetadata | None:
    """Read schema metadata from an existing database file without loading sqlite-vec.

    Returns None when the file does not exist or holds no readable metadata.
    """
    path = Path(db_path)
    if not path.is_file():
        return None

    conn = sqlite3.connect(path)
    try:
        rows = conn.execute("SELECT key, value FROM schema_metadata").fetchall()
    except sqlite3.DatabaseError as exc:
        logger.debug("No schema metadata readable from %s: %s", path, exc)
        return None
    finally:
        conn.close()
    return _rows_to_metadata(rows)


def _rows_to_metadata(rows: list) -> SchemaMetadata | None:
    values = {row[0]: row[1] for row in rows}
    if "embedding_model" not in values or "embedding_dimensions" not in values:
        return None
    return SchemaMetadata(
        schema_version=int(values.get("schema_version", SCHEMA_VERSION)),
        embedding_model=values["embedding_model"],
        embedding_dimensions=int(values["embedding_dimensions"]),
        created_at=values.get("created_at", ""),
    )
