"""
Retrieval — vector storage, similarity search and relevance filtering.

This module wraps the vector store behind a clean interface so that the
query path never needs to know which DB is backing retrieval.

Public surface
--------------
- :class:`Retriever` — embeds a question, searches, applies the threshold.
- :class:`VectorStoreBase` — abstract backend.
- :class:`InMemoryVectorStore` — numpy backend for local runs and tests.
- :class:`ChromaVectorStore` — Chroma backend.
- :class:`VectorRecord`, :class:`ScoredRecord`, :class:`RetrievalResult`,
  :class:`Citation` — data models.
"""

from docqa.retrieval.base import VectorStoreBase
from docqa.retrieval.memory_store import InMemoryVectorStore
from docqa.retrieval.models import Citation, RetrievalResult, ScoredRecord, VectorRecord
from docqa.retrieval.retriever import Retriever

__all__ = [
    "ChromaVectorStore",
    "Citation",
    "InMemoryVectorStore",
    "RetrievalResult",
    "Retriever",
    "ScoredRecord",
    "VectorRecord",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from docqa.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
