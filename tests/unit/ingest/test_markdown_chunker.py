"""Tests for the header-aware Markdown chunker."""

from __future__ import annotations

import math

import pytest

from docindex.ingest.chunker import (
    PREVIEW_CHARS,
    MarkdownChunker,
    chunk_document,
    chunk_markdown,
    estimate_tokens,
    strip_frontmatter,
)

_PROSE = (
    "The indexer reads generated documents and splits them into sections. "
    "Each section is embedded and stored so that later queries can find it. "
)


# ------------------------------------------------------------------
# Validation + helpers
# ------------------------------------------------------------------


def test_invalid_chunk_size():
    with pytest.raises(ValueError, match="chunk_size"):
        MarkdownChunker(chunk_size=0)


def test_invalid_overlap_negative():
    with pytest.raises(ValueError, match="chunk_overlap"):
        MarkdownChunker(chunk_size=10, chunk_overlap=-1)


def test_invalid_overlap_not_smaller_than_size():
    with pytest.raises(ValueError, match="chunk_overlap"):
        MarkdownChunker(chunk_size=10, chunk_overlap=10)


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_strip_frontmatter():
    text = "---\ntitle: Doc\ntags: [a]\n---\n\n# Title\n\nBody"
    assert strip_frontmatter(text) == "# Title\n\nBody"


def test_strip_frontmatter_only_at_start():
    text = "# Title\n\n---\nnot: frontmatter\n---\n"
    assert strip_frontmatter(text) == text


# ------------------------------------------------------------------
# Sections
# ------------------------------------------------------------------


def test_empty_input_returns_empty():
    assert chunk_markdown("") == []
    assert chunk_markdown("   \n\n  ") == []


def test_headerless_document_is_root_section():
    chunks = chunk_markdown("Just a paragraph of text.")
    assert len(chunks) == 1
    assert chunks[0].section_path == "Root"
    assert chunks[0].h1 is None
    assert chunks[0].content == "Just a paragraph of text."


def test_header_stack_and_section_paths():
    md = (
        "# Guide\n\nIntro text.\n\n"
        "## Install\n\nRun the installer.\n\n"
        "### Linux\n\nUse the package manager.\n\n"
        "## Usage\n\nCall the CLI.\n\n"
        "# Reference\n\nAPI details.\n"
    )
    chunks = chunk_markdown(md)
    assert [c.section_path for c in chunks] == [
        "Guide",
        "Guide > Install",
        "Guide > Install > Linux",
        "Guide > Usage",
        "Reference",
    ]
    usage = chunks[3]
    assert (usage.h1, usage.h2, usage.h3) == ("Guide", "Usage", None)
    reference = chunks[4]
    assert (reference.h1, reference.h2, reference.h3) == ("Reference", None, None)


def test_section_content_includes_header_line():
    chunks = chunk_markdown("# Title\n\nBody text.")
    assert chunks[0].content == "# Title\n\nBody text."


def test_text_before_first_header_is_root():
    chunks = chunk_markdown("Preamble.\n\n# First\n\nBody.")
    assert [c.section_path for c in chunks] == ["Root", "First"]


def test_frontmatter_is_not_indexed():
    chunks = chunk_markdown("---\ntitle: Doc\n---\n\n# Title\n\nBody")
    assert len(chunks) == 1
    assert "title: Doc" not in chunks[0].content


def test_header_inside_code_fence_is_ignored():
    md = "# Top\n\n```bash\n# not a header\necho hi\n```\n\nAfter fence.\n"
    chunks = chunk_markdown(md)
    assert len(chunks) == 1
    assert chunks[0].section_path == "Top"
    assert "# not a header" in chunks[0].content


def test_crlf_line_endings_normalized():
    chunks = chunk_markdown("# A\r\n\r\nalpha\r\n\r\n## B\r\n\r\nbeta\r\n")
    assert [c.section_path for c in chunks] == ["A", "A > B"]
    assert "\r" not in chunks[0].content


def test_header_only_section_kept():
    chunks = chunk_markdown("# Lonely\n")
    assert [c.content for c in chunks] == ["# Lonely"]


# ------------------------------------------------------------------
# Sliding window
# ------------------------------------------------------------------


def test_small_section_is_single_chunk():
    chunks = chunk_markdown("# S\n\n" + _PROSE, chunk_size=512, chunk_overlap=75)
    assert len(chunks) == 1


def test_large_section_is_split_within_size():
    md = "# Big\n\n" + _PROSE * 20
    chunks = chunk_markdown(md, chunk_size=40, chunk_overlap=5)
    assert len(chunks) > 1
    for chunk in chunks:
        assert len(chunk.content) <= 40 * 4
        assert chunk.section_path == "Big"


def test_windows_overlap():
    md = "\n\n".join(f"Paragraph number {i} has a few words in it." for i in range(40))
    chunks = chunk_markdown(md, chunk_size=30, chunk_overlap=10)
    assert len(chunks) > 2
    # Consecutive chunks share some text because the window restarts before the previous end.
    shared = sum(
        1 for first, second in zip(chunks, chunks[1:]) if second.content[:15] in first.content
    )
    assert shared >= 1


def test_all_text_is_covered():
    paragraphs = [f"Unique marker token{i} in paragraph." for i in range(60)]
    chunks = chunk_markdown("\n\n".join(paragraphs), chunk_size=25, chunk_overlap=5)
    joined = "\n".join(c.content for c in chunks)
    for i in range(60):
        assert f"token{i} " in joined


def test_code_fence_is_never_split():
    block = "```python\n" + "".join(f"value_{i} = compute({i})\n" for i in range(30)) + "```"
    md = "# Code\n\n" + _PROSE * 3 + "\n\n" + block + "\n\n" + _PROSE * 3
    chunks = chunk_markdown(md, chunk_size=40, chunk_overlap=10)
    assert len(chunks) > 1
    assert sum(1 for c in chunks if block in c.content) >= 1
    for chunk in chunks:
        assert chunk.content.count("```") % 2 == 0


def test_unclosed_fence_runs_to_end():
    md = "# Code\n\n" + _PROSE * 2 + "\n\n```\n" + "line of code here\n" * 40
    chunks = chunk_markdown(md, chunk_size=30, chunk_overlap=5)
    with_fence = [c for c in chunks if "```" in c.content]
    assert len(with_fence) == 1
    assert with_fence[0].content.endswith("line of code here")


def test_table_is_never_split():
    rows = "".join(f"| row {i} | value {i} | notes for row {i} |\n" for i in range(25))
    table = "| name | value | notes |\n|------|-------|-------|\n" + rows
    md = "# Data\n\n" + _PROSE * 3 + "\n\n" + table + "\n" + _PROSE * 3
    chunks = chunk_markdown(md, chunk_size=40, chunk_overlap=10)
    assert len(chunks) > 1
    containing = [c for c in chunks if "| row 0 |" in c.content]
    assert containing
    assert all("| row 24 |" in c.content for c in containing)
    for chunk in chunks:
        if "| row 24 |" in chunk.content:
            assert "| name | value | notes |" in chunk.content


def test_oversized_headerless_document_is_split():
    chunks = chunk_markdown(_PROSE * 30, chunk_size=50, chunk_overlap=5)
    assert len(chunks) > 1
    assert all(c.section_path == "Root" for c in chunks)


# ------------------------------------------------------------------
# chunk_document
# ------------------------------------------------------------------


def test_chunk_document_metadata():
    md = "# A\n\nalpha text\n\n## B\n\nbeta text\n\n# C\n\n" + _PROSE * 10
    chunks = chunk_document(
        md, "03-ARCHITECTURE.md", "03-architecture", "architecture", chunk_size=40, chunk_overlap=5
    )
    assert [c.metadata.chunk_index for c in chunks] == list(range(len(chunks)))
    for chunk in chunks:
        meta = chunk.metadata
        assert meta.source_file == "03-ARCHITECTURE.md"
        assert meta.doc_id == "03-architecture"
        assert meta.doc_type == "architecture"
        assert meta.token_count == math.ceil(len(chunk.content) / 4)
        assert len(meta.content_preview) <= PREVIEW_CHARS
        assert chunk.content.startswith(meta.content_preview[:10])
    assert chunks[1].metadata.section_path == "A > B"
    assert chunks[1].metadata.h2 == "B"


def test_chunk_document_empty():
    assert chunk_document("", "X.md", "x", "x") == []


def test_chunker_class_matches_function():
    chunker = MarkdownChunker(chunk_size=64, chunk_overlap=8)
    md = "# T\n\n" + _PROSE * 8
    assert chunker.split(md) == chunk_markdown(md, chunk_size=64, chunk_overlap=8)
