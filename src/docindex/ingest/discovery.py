"""Document discovery and content fingerprints for incremental reindexing.

Eligible documents are the ``*.md`` files directly inside the source
directory, except the generated index file. Identifiers are derived from the
filename::

    03-ARCHITECTURE.md  ->  doc_id "03-architecture", doc_type "architecture"
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from pathlib import Path

from docindex.errors import SourceDirectoryError

INDEX_FILENAME = "00-INDEX.md"
_MD_SUFFIX = ".md"
_ORDER_PREFIX_RE = re.compile(r"^\d+-")


@dataclass(frozen=True)
class SourceDocument:
    file_path: Path
    source_file: str
    doc_id: str
    doc_type: str
    content: str


def doc_id_for(filename: str) -> str:
    return Path(filename).stem.lower()


def doc_type_for(filename: str) -> str:
    return _ORDER_PREFIX_RE.sub("", Path(filename).stem).lower()


def discover_documents(source_dir: Path | str) -> list[SourceDocument]:
    """Return every eligible Markdown document in *source_dir*, sorted by filename.

    Raises:
        SourceDirectoryError: The directory is missing or unreadable.
    """
    directory = Path(source_dir)
    try:
        entries = sorted(directory.iterdir())
    except OSError as exc:
        raise SourceDirectoryError(
            f"Failed to read source directory: {directory}",
            str(exc),
            "Ensure the directory exists and is readable, or pass --source-dir.",
        ) from exc

    documents: list[SourceDocument] = []
    for entry in entries:
        if entry.suffix != _MD_SUFFIX or entry.name == INDEX_FILENAME or not entry.is_file():
            continue
        try:
            content = entry.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SourceDirectoryError(
                f"Failed to read document: {entry}",
                str(exc),
                "Check the file's permissions and that it is UTF-8 encoded.",
            ) from exc
        documents.append(
            SourceDocument(
                file_path=entry,
                source_file=entry.name,
                doc_id=doc_id_for(entry.name),
                doc_type=doc_type_for(entry.name),
                content=content,
            )
        )
    return documents


def compute_fingerprint(source_file: str, content: str) -> str:
    """SHA-256 over the filename and full content; a rename or any edit changes it."""
    payload = json.dumps({"sourceFile": source_file, "content": content}, ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
