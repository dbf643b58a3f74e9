"""Markdown chunker: header-aware sections with an atomic-block sliding window.

Strategy:
- Strip a leading YAML front-matter block.
- Split on H1/H2/H3 header lines, carrying a header stack (``#`` resets h2/h3,
  ``##`` resets h3). Header-looking lines inside code fences are ignored.
- A document without headers is one section under ``"Root"``.
- Sections within ``chunk_size`` tokens are one chunk. Larger sections are cut
  with a sliding window of ``chunk_size * 4`` characters that prefers to end
  on a paragraph, line, or word boundary found in the back half of the window,
  and restarts ``chunk_overlap * 4`` characters before the previous end.
- Fenced code blocks and tables are atomic: a window that would end inside one
  grows to the block's end, and a window never starts inside one.

Token counting uses a 4-chars-per-token approximation; no tokenizer dependency.
"""

from __future__ import annotations

import math
import re

from docindex.db.models import Chunk, ChunkMetadata, TextChunk

DEFAULT_CHUNK_SIZE = 512
DEFAULT_CHUNK_OVERLAP = 75
PREVIEW_CHARS = 200
ROOT_SECTION = "Root"

_FRONTMATTER_RE = re.compile(r"\A---\n.*?\n---\n+", re.DOTALL)
_HEADER_RE = re.compile(r"^(#{1,3})\s+(.+?)\s*$")
_FENCE_RE = re.compile(r"^\s{0,3}(`{3,}|~{3,})")

# Boundaries tried in priority order when shortening a window.
_SEPARATORS = ("\n\n", "\n", " ")


def estimate_tokens(text: str) -> int:
    """Approximate token count: ceil(characters / 4)."""
    return math.ceil(len(text) / 4)


def strip_frontmatter(markdown: str) -> str:
    return _FRONTMATTER_RE.sub("", markdown, count=1)


class MarkdownChunker:
    """Split Markdown into retrieval-sized chunks.

    Args:
        chunk_size: Maximum chunk size in (estimated) tokens.
        chunk_overlap: Overlap between consecutive windows, in tokens.
    """

    def __init__(
        self, chunk_size: int = DEFAULT_CHUNK_SIZE, chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split(self, markdown: str) -> list[TextChunk]:
        """Return ordered text chunks with header metadata."""
        if not markdown or not markdown.strip():
            return []

        text = strip_frontmatter(markdown.replace("\r\n", "\n"))
        chunks: list[TextChunk] = []
        for body, headers in _parse_sections(text):
            section_path = _section_path(headers)
            for piece in self._split_section(body):
                chunks.append(
                    TextChunk(
                        content=piece,
                        section_path=section_path,
                        h1=headers.get("h1"),
                        h2=headers.get("h2"),
                        h3=headers.get("h3"),
                    )
                )
        return chunks

    def chunk(self, content: str, source_file: str, doc_id: str, doc_type: str) -> list[Chunk]:
        """Split *content* and attach document metadata with sequential ``chunk_index``."""
        return [
            Chunk(
                content=tc.content,
                metadata=ChunkMetadata(
                    source_file=source_file,
                    doc_id=doc_id,
                    doc_type=doc_type,
                    section_path=tc.section_path,
                    chunk_index=i,
                    token_count=estimate_tokens(tc.content),
                    content_preview=tc.content[:PREVIEW_CHARS].strip(),
                    h1=tc.h1,
                    h2=tc.h2,
                    h3=tc.h3,
                ),
            )
            for i, tc in enumerate(self.split(content))
        ]

    # ------------------------------------------------------------------
    # Sliding window
    # ------------------------------------------------------------------

    def _split_section(self, section: str) -> list[str]:
        content = section.strip()
        if not content:
            return []
        if estimate_tokens(content) <= self.chunk_size:
            return [content]

        blocks = _atomic_blocks(content)
        target = self.chunk_size * 4
        overlap = self.chunk_overlap * 4
        length = len(content)

        pieces: list[str] = []
        pos = 0
        while pos < length:
            end = min(pos + target, length)
            if end < length:
                window = content[pos:end]
                for sep in _SEPARATORS:
                    idx = window.rfind(sep)
                    if idx > len(window) * 0.5:
                        end = pos + idx + len(sep)
                        break
                block = _enclosing_block(blocks, end)
                if block is not None:
                    end = block[1]

            piece = content[pos:end].strip()
            if piece:
                pieces.append(piece)
            if end >= length:
                break

            next_pos = end - overlap
            block = _enclosing_block(blocks, next_pos)
            if block is not None:
                # The block was emitted whole; resume after it.
                next_pos = block[1]
            if next_pos <= pos:
                next_pos = end
            pos = next_pos

        return pieces


def chunk_markdown(
    markdown: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[TextChunk]:
    """Chunk *markdown* into text chunks with header metadata."""
    return MarkdownChunker(chunk_size, chunk_overlap).split(markdown)


def chunk_document(
    content: str,
    source_file: str,
    doc_id: str,
    doc_type: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> list[Chunk]:
    """Chunk a whole document into Chunks carrying full metadata."""
    return MarkdownChunker(chunk_size, chunk_overlap).chunk(content, source_file, doc_id, doc_type)


# ------------------------------------------------------------------
# Section parsing
# ------------------------------------------------------------------


def _parse_sections(text: str) -> list[tuple[str, dict[str, str]]]:
    """Split *text* at H1–H3 header lines outside code fences.

    Returns ``(section_text, header_stack)`` pairs in document order.
    """
    sections: list[tuple[str, dict[str, str]]] = []
    headers: dict[str, str] = {}
    current: list[str] = []
    fence: str | None = None

    for line in text.split("\n"):
        fence_match = _FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(1)
            if fence is None:
                fence = marker
            elif marker[0] == fence[0] and len(marker) >= len(fence):
                fence = None
            current.append(line)
            continue

        header_match = _HEADER_RE.match(line) if fence is None else None
        if header_match:
            if current:
                sections.append(("\n".join(current), dict(headers)))
                current = []
            level = len(header_match.group(1))
            title = header_match.group(2)
            if level == 1:
                headers = {"h1": title}
            elif level == 2:
                headers = {k: v for k, v in headers.items() if k == "h1"}
                headers["h2"] = title
            else:
                headers["h3"] = title

        current.append(line)

    if current:
        sections.append(("\n".join(current), dict(headers)))

    return [(body, hdrs) for body, hdrs in sections if body.strip()]


def _section_path(headers: dict[str, str]) -> str:
    parts = [headers[k] for k in ("h1", "h2", "h3") if headers.get(k)]
    return " > ".join(parts) or ROOT_SECTION


# ------------------------------------------------------------------
# Atomic blocks (code fences, tables)
# ------------------------------------------------------------------


def _atomic_blocks(content: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` character spans of fenced code blocks and tables.

    ``end`` is exclusive and includes the trailing newline of the block's last
    line when there is one. An unclosed fence runs to the end of *content*.
    """
    blocks: list[tuple[int, int]] = []
    fence: str | None = None
    fence_start = 0
    table_start: int | None = None
    offset = 0

    for line in content.split("\n"):
        line_end = min(offset + len(line) + 1, len(content))
        fence_match = _FENCE_RE.match(line)

        if fence is not None:
            if fence_match and fence_match.group(1)[0] == fence[0] and len(
                fence_match.group(1)
            ) >= len(fence):
                blocks.append((fence_start, line_end))
                fence = None
        elif fence_match:
            if table_start is not None:
                blocks.append((table_start, offset))
                table_start = None
            fence = fence_match.group(1)
            fence_start = offset
        elif line.lstrip().startswith("|"):
            if table_start is None:
                table_start = offset
        elif table_start is not None:
            blocks.append((table_start, offset))
            table_start = None

        offset += len(line) + 1

    if fence is not None:
        blocks.append((fence_start, len(content)))
    if table_start is not None:
        blocks.append((table_start, len(content)))
    return blocks


def _enclosing_block(blocks: list[tuple[int, int]], position: int) -> tuple[int, int] | None:
    """Return the block that *position* falls strictly inside, if any."""
    for start, end in blocks:
        if start < position < end:
            return start, end
    return None
