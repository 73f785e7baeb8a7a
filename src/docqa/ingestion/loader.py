"""Document loaders — thin wrappers around LangChain document loaders."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from langchain_community.document_loaders import PyPDFLoader, TextLoader

from docqa.errors import IngestionError
from docqa.ingestion.models import SourceDocument

logger = logging.getLogger(__name__)

CONTENT_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".md": "text/markdown",
}

PAGE_SEPARATOR = "\n\n"


def discover_documents(path: str | Path) -> list[Path]:
    """Recursively list ingestible files under *path*, sorted for determinism.

    A missing directory yields an empty list; an empty ingestion is valid.
    """
    root = Path(path)
    if not root.exists():
        logger.warning("Document directory %s does not exist; nothing to ingest", root)
        return []
    if root.is_file():
        return [root] if root.suffix.lower() in CONTENT_TYPES else []
    return sorted(
        p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in CONTENT_TYPES
    )


def load_document(path: str | Path) -> SourceDocument:
    """Read a single PDF or text file.

    Raises
    ------
    IngestionError
        If the file cannot be read or parsed, or has an unsupported type.
    """
    path = Path(path)
    content_type = CONTENT_TYPES.get(path.suffix.lower())
    if content_type is None:
        raise IngestionError(f"Unsupported document type: {path.suffix!r}", source=str(path))

    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise IngestionError(f"Cannot read {path}: {exc}", source=str(path)) from exc

    try:
        if content_type == "application/pdf":
            text, page_offsets = _load_pdf_text(path)
        else:
            text, page_offsets = _load_plain_text(path), (0,)
    except IngestionError:
        raise
    except Exception as exc:
        raise IngestionError(f"Cannot parse {path}: {exc}", source=str(path)) from exc

    return SourceDocument(
        source=str(path),
        text=text,
        content_type=content_type,
        content_hash=hashlib.sha256(raw).hexdigest()[:16],
        size_bytes=len(raw),
        page_offsets=page_offsets,
    )


def _load_pdf_text(path: Path) -> tuple[str, tuple[int, ...]]:
    pages = PyPDFLoader(str(path)).load()
    offsets: list[int] = []
    parts: list[str] = []
    pos = 0
    for page in pages:
        offsets.append(pos)
        parts.append(page.page_content)
        pos += len(page.page_content) + len(PAGE_SEPARATOR)
    return PAGE_SEPARATOR.join(parts), tuple(offsets) or (0,)


def _load_plain_text(path: Path) -> str:
    docs = TextLoader(str(path), encoding="utf-8").load()
    return "".join(d.page_content for d in docs)
