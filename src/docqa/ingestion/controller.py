"""Startup ingestion — a one-shot state machine.

::

    NOT_STARTED → READING → CHUNKING → EMBEDDING → PERSISTING → DONE
          └──────────┴──────────┴───────────┴────────────┴──→ FAILED

A failure in any stage is fatal unless the controller runs in best-effort
mode, where unreadable documents are skipped and a failed run is reported
instead of raised.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from docqa.errors import (
    ConfigurationError,
    IngestionError,
    IngestionStateError,
    VectorStoreError,
)
from docqa.ingestion.loader import discover_documents, load_document
from docqa.resilience import build_retrying
from docqa.retrieval.models import VectorRecord

if TYPE_CHECKING:
    from docqa.ingestion.chunker import TokenWindowSplitter
    from docqa.ingestion.embedder import EmbeddingClient
    from docqa.ingestion.models import Chunk, SourceDocument
    from docqa.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class IngestionState(str, Enum):
    NOT_STARTED = "not_started"
    READING = "reading"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IngestionState.DONE, IngestionState.FAILED)


_NEXT: dict[IngestionState, IngestionState] = {
    IngestionState.NOT_STARTED: IngestionState.READING,
    IngestionState.READING: IngestionState.CHUNKING,
    IngestionState.CHUNKING: IngestionState.EMBEDDING,
    IngestionState.EMBEDDING: IngestionState.PERSISTING,
    IngestionState.PERSISTING: IngestionState.DONE,
}


class SkippedDocument(BaseModel):
    source: str
    reason: str


class IngestionReport(BaseModel):
    """Outcome of one ingestion run."""

    state: IngestionState = IngestionState.NOT_STARTED
    documents_found: int = 0
    documents_read: int = 0
    skipped: list[SkippedDocument] = Field(default_factory=list)
    chunks: int = 0
    records_persisted: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None


class IngestionController:
    """Read, chunk, embed and persist every document under *documents_dir*.

    Parameters
    ----------
    documents_dir:
        Directory scanned (recursively) for PDF and text files.
    splitter:
        Chunker applied to every document.
    embedder:
        Embedding client for chunk texts.
    store:
        Vector store receiving the records; initialised here if needed.
    metric:
        Distance metric used when initialising the store.
    best_effort:
        Skip unreadable documents and report failures instead of raising.
    max_retries:
        Attempts per store write, including the first.
    """

    def __init__(
        self,
        documents_dir: str | Path,
        splitter: TokenWindowSplitter,
        embedder: EmbeddingClient,
        store: VectorStoreBase,
        *,
        metric: str = "cosine",
        best_effort: bool = False,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
    ) -> None:
        self.documents_dir = Path(documents_dir)
        self._splitter = splitter
        self._embedder = embedder
        self._store = store
        self._metric = metric
        self.best_effort = best_effort
        self._retrying = build_retrying(
            max_retries, VectorStoreError, label="vector upsert", backoff_seconds=backoff_seconds
        )
        self._state = IngestionState.NOT_STARTED
        self.report = IngestionReport()
        self.history: list[IngestionState] = [self._state]

    @property
    def state(self) -> IngestionState:
        return self._state

    # -- public API -----------------------------------------------------------

    def run(self) -> IngestionReport:
        """Run the pipeline once.

        Raises
        ------
        IngestionStateError
            If the controller has already run.
        IngestionError
            If a stage fails and best-effort mode is off.
        """
        if self._state is not IngestionState.NOT_STARTED:
            raise IngestionStateError(f"Ingestion already ran (state={self._state.value})")

        t0 = time.monotonic()
        try:
            self._advance()
            documents = self._read()

            self._advance()
            chunked = [(doc, self._splitter.chunk_document(doc)) for doc in documents]
            self.report.chunks = sum(len(chunks) for _, chunks in chunked)

            self._advance()
            embedded = self._embed(chunked)

            self._advance()
            self._persist(embedded)

            self._advance()
        except Exception as exc:
            self._fail(exc)
        finally:
            self.report.elapsed_seconds = round(time.monotonic() - t0, 3)

        logger.info(
            "Ingestion %s: %d/%d documents, %d chunks, %d records in %.1fs",
            self._state.value,
            self.report.documents_read,
            self.report.documents_found,
            self.report.chunks,
            self.report.records_persisted,
            self.report.elapsed_seconds,
        )
        return self.report

    # -- stages ---------------------------------------------------------------

    def _read(self) -> list[SourceDocument]:
        paths = discover_documents(self.documents_dir)
        self.report.documents_found = len(paths)
        logger.info("Found %d documents under %s", len(paths), self.documents_dir)

        documents: list[SourceDocument] = []
        for path in paths:
            try:
                doc = load_document(path)
            except IngestionError as exc:
                if not self.best_effort:
                    raise
                logger.warning("Skipping %s: %s", path, exc)
                self.report.skipped.append(SkippedDocument(source=str(path), reason=str(exc)))
                continue
            if not doc.text.strip():
                logger.warning("Skipping %s: no extractable text", path)
                self.report.skipped.append(SkippedDocument(source=str(path), reason="no extractable text"))
                continue
            documents.append(doc)
        self.report.documents_read = len(documents)
        return documents

    def _embed(
        self, chunked: list[tuple[SourceDocument, list[Chunk]]]
    ) -> list[tuple[SourceDocument, list[Chunk], list[list[float]]]]:
        embeddable = [
            (doc, [c for c in chunks if c.text.strip()]) for doc, chunks in chunked
        ]
        texts = [c.text for _, chunks in embeddable for c in chunks]
        if not texts:
            return []
        vectors = self._embedder.embed_documents(texts)

        result = []
        pos = 0
        for doc, chunks in embeddable:
            result.append((doc, chunks, vectors[pos : pos + len(chunks)]))
            pos += len(chunks)
        return result

    def _persist(self, embedded: list[tuple[SourceDocument, list[Chunk], list[list[float]]]]) -> None:
        if not embedded:
            return
        self._store.initialize(self._embedder.dimension, self._metric)
        for doc, chunks, vectors in embedded:
            if not chunks:
                continue
            records = [
                VectorRecord(id=c.chunk_id, text=c.text, embedding=v, metadata=c.metadata())
                for c, v in zip(chunks, vectors)
            ]
            try:
                written = self._retrying.copy()(self._store.upsert, records)
            except VectorStoreError as exc:
                raise IngestionError(f"Could not persist {doc.source}: {exc}", source=doc.source) from exc
            self.report.records_persisted += written
            logger.debug("Persisted %d records for %s", written, doc.source)

    # -- state machine --------------------------------------------------------

    def _advance(self) -> None:
        nxt = _NEXT.get(self._state)
        if nxt is None:
            raise IngestionStateError(f"No transition out of terminal state {self._state.value}")
        self._set(nxt)

    def _set(self, state: IngestionState) -> None:
        logger.info("Ingestion: %s → %s", self._state.value, state.value)
        self._state = state
        self.report.state = state
        self.history.append(state)

    def _fail(self, exc: Exception) -> None:
        failed_in = self._state
        self._set(IngestionState.FAILED)
        self.report.error = f"{failed_in.value}: {exc}"
        if isinstance(exc, ConfigurationError):
            raise exc
        if not self.best_effort:
            logger.error("Ingestion failed during %s: %s", failed_in.value, exc)
            if isinstance(exc, IngestionError):
                raise exc
            raise IngestionError(f"Ingestion failed during {failed_in.value}: {exc}") from exc
        logger.exception("Ingestion failed during %s; continuing (best-effort)", failed_in.value)
