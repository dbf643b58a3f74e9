"""Tests for schema initialization, metadata, and dimension validation."""

from __future__ import annotations

import pytest

from docindex.db.connection import Database
from docindex.db.schema import (
    SCHEMA_VERSION,
    VEC_TABLE,
    get_schema_metadata,
    initialize,
    read_stored_metadata,
    validate_dimensions,
)
from docindex.errors import DimensionMismatchError


def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE name=?", (table,)
    ).fetchone()
    return row is not None


@pytest.fixture
def conn(tmp_path):
    c = Database(tmp_path / "search.db").connect()
    yield c
    c.close()


def test_initialize_creates_tables(conn):
    initialize(conn, "text-embedding-3-small", 8)
    assert _table_exists(conn, "schema_metadata")
    assert _table_exists(conn, "document_metadata")
    assert _table_exists(conn, VEC_TABLE)


def test_initialize_writes_metadata(conn):
    initialize(conn, "text-embedding-3-small", 8)
    meta = get_schema_metadata(conn)
    assert meta is not None
    assert meta.schema_version == SCHEMA_VERSION
    assert meta.embedding_model == "text-embedding-3-small"
    assert meta.embedding_dimensions == 8
    assert meta.created_at


def test_initialize_idempotent(conn):
    initialize(conn, "m", 8)
    first = get_schema_metadata(conn)
    initialize(conn, "m", 8)
    rows = conn.execute("SELECT COUNT(*) FROM schema_metadata").fetchone()[0]
    assert rows == 4
    assert get_schema_metadata(conn) == first


def test_initialize_rejects_zero_dimensions(conn):
    with pytest.raises(ValueError, match="embedding_dimensions"):
        initialize(conn, "m", 0)


def test_get_schema_metadata_none_before_initialize(conn):
    conn.execute("CREATE TABLE schema_metadata (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
    assert get_schema_metadata(conn) is None


def test_validate_dimensions_mismatch_raises(conn, tmp_path):
    initialize(conn, "m", 8)
    with pytest.raises(DimensionMismatchError) as exc_info:
        validate_dimensions(conn, "m", 16, tmp_path / "search.db")
    err = exc_info.value
    assert "8 dimensions" in err.reason
    assert "16 dimensions" in err.reason
    assert "Delete" in err.fix
    assert "docindex reindex" in err.fix


def test_validate_dimensions_model_alias_updates_name(conn):
    initialize(conn, "old-name", 8)
    validate_dimensions(conn, "new-name", 8)
    meta = get_schema_metadata(conn)
    assert meta.embedding_model == "new-name"
    assert meta.embedding_dimensions == 8


def test_validate_dimensions_no_metadata_is_noop(conn):
    conn.execute("CREATE TABLE schema_metadata (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
    validate_dimensions(conn, "m", 8)  # should not raise


def test_read_stored_metadata_missing_file(tmp_path):
    assert read_stored_metadata(tmp_path / "missing.db") is None


def test_read_stored_metadata_not_a_database(tmp_path):
    path = tmp_path / "garbage.db"
    path.write_bytes(b"this is not sqlite at all" * 100)
    assert read_stored_metadata(path) is None


def test_read_stored_metadata_without_table(tmp_path):
    path = tmp_path / "empty.db"
    Database(path).connect().close()
    assert read_stored_metadata(path) is None


def test_read_stored_metadata_roundtrip(tmp_path, conn):
    initialize(conn, "text-embedding-3-small", 8)
    meta = read_stored_metadata(tmp_path / "search.db")
    assert meta is not None
    assert meta.embedding_model == "text-embedding-3-small"
    assert meta.embedding_dimensions == 8
