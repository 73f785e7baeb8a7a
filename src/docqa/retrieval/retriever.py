"""Semantic retriever — embeds the question, searches, applies the relevance
threshold.

Usage::

    retriever = Retriever(embedder, store, k=4, score_threshold=0.3)
    result = retriever.retrieve("What is the capital of France?")
    for hit in result.hits:
        print(hit.citation().short_ref(), hit.record.text[:80])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from docqa.errors import (
    EmbeddingError,
    EmbeddingValidationError,
    QueryValidationError,
    RetrievalError,
    VectorStoreError,
)
from docqa.resilience import build_retrying
from docqa.retrieval.models import RetrievalResult

if TYPE_CHECKING:
    from docqa.config import Settings
    from docqa.ingestion.embedder import EmbeddingClient
    from docqa.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class Retriever:
    """Orchestrates the embedding client and the vector store for one query.

    Parameters
    ----------
    embedder:
        Client used to embed the query text.
    store:
        Initialised vector-store backend.
    k:
        Maximum number of hits returned.
    score_threshold:
        Minimum similarity score; hits below it are discarded.
    max_retries:
        Attempts for the store search, including the first.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: VectorStoreBase,
        *,
        k: int = 4,
        score_threshold: float = 0.0,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self.k = k
        self.score_threshold = score_threshold
        self._retrying = build_retrying(
            max_retries, VectorStoreError, label="vector search", backoff_seconds=backoff_seconds
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, embedder: EmbeddingClient, store: VectorStoreBase
    ) -> Retriever:
        return cls(
            embedder,
            store,
            k=settings.retrieval_k,
            score_threshold=settings.score_threshold,
            max_retries=settings.max_retries,
        )

    def retrieve(self, query: str, *, k: int | None = None) -> RetrievalResult:
        """Return the relevant hits for *query*, best first.

        An empty result means nothing cleared the threshold; it is not an
        error.

        Raises
        ------
        QueryValidationError
            If *query* is blank.
        RetrievalError
            If the embedding service or the store fails.
        """
        if not query or not query.strip():
            raise QueryValidationError("Question must not be empty")
        k = k or self.k

        try:
            vector = self._embedder.embed_query(query)
        except EmbeddingValidationError as exc:
            raise QueryValidationError(str(exc)) from exc
        except EmbeddingError as exc:
            raise RetrievalError(f"Could not embed the question: {exc}") from exc

        try:
            hits = self._retrying.copy()(self._store.search, vector, k)
        except VectorStoreError as exc:
            raise RetrievalError(f"Vector search failed: {exc}") from exc

        relevant = [h for h in hits if h.score >= self.score_threshold]
        if len(relevant) < len(hits):
            logger.debug(
                "Dropped %d of %d hits below threshold %.3f",
                len(hits) - len(relevant),
                len(hits),
                self.score_threshold,
            )
        if not relevant:
            logger.info("No stored chunk cleared the relevance threshold")
        return RetrievalResult(query=query, hits=relevant)
