"""Domain models for the docindex storage layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChunkMetadata:
    source_file: str
    doc_id: str
    doc_type: str
    section_path: str
    chunk_index: int
    token_count: int
    content_preview: str
    h1: str | None = None
    h2: str | None = None
    h3: str | None = None


@dataclass(frozen=True)
class TextChunk:
    """Chunker output before document-level metadata is attached."""

    content: str
    section_path: str
    h1: str | None = None
    h2: str | None = None
    h3: str | None = None


@dataclass(frozen=True)
class Chunk:
    content: str
    metadata: ChunkMetadata


@dataclass(frozen=True)
class StoredChunk:
    """A chunk read back from the vec table by a nearest-neighbour query."""

    rowid: int
    chunk: Chunk
    distance: float


@dataclass
class DocumentFingerprint:
    doc_id: str
    fingerprint: str
    indexed_at: str
    chunk_count: int


@dataclass
class SchemaMetadata:
    schema_version: int
    embedding_model: str
    embedding_dimensions: int
    created_at: str
