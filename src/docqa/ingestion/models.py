"""Domain models produced by the ingestion side: documents and chunks."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def source_key(source: str) -> str:
    """Stable short key for a source path, used as the chunk-id prefix."""
    return hashlib.sha256(source.encode()).hexdigest()[:16]


class SourceDocument(BaseModel):
    """A document read from the document source.

    Attributes
    ----------
    source:
        File path the document was read from.
    text:
        Extracted plain text (pages of a PDF joined by blank lines).
    content_type:
        ``application/pdf``, ``text/plain`` or ``text/markdown``.
    content_hash:
        First 16 hex chars of the SHA-256 of the raw file bytes.
    size_bytes:
        Size of the raw file.
    ingested_at:
        UTC timestamp of when the document was read.
    page_offsets:
        Character offset in :attr:`text` where each page starts.
        Non-paged sources have a single page at offset ``0``.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    text: str
    content_type: str = "text/plain"
    content_hash: str = ""
    size_bytes: int = 0
    ingested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    page_offsets: tuple[int, ...] = (0,)

    @property
    def is_paged(self) -> bool:
        return self.content_type == "application/pdf"

    def page_at(self, offset: int) -> int | None:
        """Return the 1-based page containing character *offset* (paged sources only)."""
        if not self.is_paged:
            return None
        page = 1
        for i, start in enumerate(self.page_offsets, 1):
            if start > offset:
                break
            page = i
        return page


class Chunk(BaseModel):
    """A contiguous span of a :class:`SourceDocument`.

    ``text == document.text[start:end]`` always holds.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    source: str
    chunk_index: int
    text: str
    start: int
    end: int
    token_count: int
    page: int | None = None
    content_hash: str = ""

    def metadata(self) -> dict[str, str | int]:
        """Flat metadata suitable for any vector-store backend."""
        meta: dict[str, str | int] = {
            "source": self.source,
            "chunk_index": self.chunk_index,
            "start": self.start,
            "end": self.end,
            "token_count": self.token_count,
        }
        if self.page is not None:
            meta["page"] = self.page
        if self.content_hash:
            meta["content_hash"] = self.content_hash
        return meta
