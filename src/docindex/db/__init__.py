"""docindex storage layer."""

from docindex.db.connection import Database
from docindex.db.schema import (
    SCHEMA_VERSION,
    get_schema_metadata,
    initialize,
    read_stored_metadata,
    validate_dimensions,
)
from docindex.db.store import VectorStore

__all__ = [
    "Database",
    "SCHEMA_VERSION",
    "VectorStore",
    "get_schema_metadata",
    "initialize",
    "read_stored_metadata",
    "validate_dimensions",
]
