"""docindex ingest pipeline: Markdown chunker and document discovery."""

from docindex.ingest.chunker import MarkdownChunker, chunk_document, chunk_markdown, estimate_tokens
from docindex.ingest.discovery import SourceDocument, compute_fingerprint, discover_documents

__all__ = [
    "MarkdownChunker",
    "SourceDocument",
    "chunk_document",
    "chunk_markdown",
    "compute_fingerprint",
    "discover_documents",
    "estimate_tokens",
]
