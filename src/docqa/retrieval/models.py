"""Domain models for stored vectors, retrieval results and citations."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class VectorRecord(BaseModel):
    """Persisted tuple of chunk text, embedding and flat metadata.

    Records are never updated in place; re-ingesting a source replaces all of
    its records at once.
    """

    id: str
    text: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def source(self) -> str:
        return str(self.metadata.get("source", "unknown"))


class Citation(BaseModel):
    """Provenance record linking a retrieved chunk back to its source document.

    Attributes
    ----------
    document_id:
        The vector-store ID of the chunk.
    source:
        Human-readable source locator (file path).
    chunk_index:
        Ordinal position of the chunk within the source document.
    page:
        Page number (PDF sources only).
    score:
        Similarity score returned by the vector store.
    retrieved_at:
        UTC timestamp of when the retrieval happened.
    """

    document_id: str | None = None
    source: str = "unknown"
    chunk_index: int | None = None
    page: int | None = None
    score: float | None = None
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        chunk = self.chunk_index if self.chunk_index is not None else "?"
        return f"[{self.source}§{chunk}]"


class ScoredRecord(BaseModel):
    """A stored record together with its similarity to a query."""

    record: VectorRecord
    score: float
    seq: int = 0

    def citation(self) -> Citation:
        meta = self.record.metadata
        return Citation(
            document_id=self.record.id,
            source=meta.get("source", "unknown"),
            chunk_index=meta.get("chunk_index"),
            page=meta.get("page"),
            score=self.score,
        )

    def __str__(self) -> str:  # noqa: D105
        return f"{self.citation().short_ref()} {self.record.text[:120]}…"


class RetrievalResult(BaseModel):
    """Ranked hits for one query, best first, at most *k* long."""

    query: str
    hits: list[ScoredRecord] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.hits

    def citations(self) -> list[Citation]:
        return [hit.citation() for hit in self.hits]

    def __len__(self) -> int:
        return len(self.hits)
