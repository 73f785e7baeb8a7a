"""In-process vector store backed by a numpy matrix.

Exact (brute-force) search; suitable for local runs, tests and corpora of a
few hundred thousand chunks.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from docqa.errors import ConfigurationError, DimensionMismatchError
from docqa.retrieval.base import VectorStoreBase
from docqa.retrieval.models import ScoredRecord, VectorRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    """Immutable view of the store; replaced wholesale on every write."""

    records: tuple[VectorRecord, ...] = ()
    seqs: np.ndarray = field(default_factory=lambda: np.empty(0, dtype=np.int64))
    matrix: np.ndarray = field(default_factory=lambda: np.empty((0, 0), dtype=np.float32))


class InMemoryVectorStore(VectorStoreBase):
    """Copy-on-write numpy store.

    Writers build a new snapshot under a lock and publish it with a single
    reference assignment, so readers always see either the state before or
    after a batch and never wait on a writer.
    """

    def __init__(self, collection_name: str = "docqa") -> None:
        super().__init__(collection_name)
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._snapshot = _Snapshot()

    # -- VectorStoreBase overrides --------------------------------------------

    def initialize(self, dimension: int, metric: str = "cosine") -> None:
        with self._lock:
            if self._check_schema(dimension, metric):
                return
            if metric == "l2":
                raise ConfigurationError("InMemoryVectorStore supports 'cosine' and 'ip' only")
            self.dimension = dimension
            self.metric = metric
            self._snapshot = _Snapshot(matrix=np.empty((0, dimension), dtype=np.float32))
            logger.info(
                "Initialised in-memory collection %r (dimension=%d, metric=%s)",
                self.collection_name,
                dimension,
                metric,
            )

    def upsert(self, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0
        self._validate_batch(records)

        new_vectors = self._prepare(np.asarray([r.embedding for r in records], dtype=np.float32))
        with self._lock:
            old = self._snapshot
            sources = {r.source for r in records}
            ids = {r.id for r in records}
            keep = [
                i
                for i, rec in enumerate(old.records)
                if rec.source not in sources and rec.id not in ids
            ]
            new_seqs = np.fromiter(
                (next(self._seq) for _ in records), dtype=np.int64, count=len(records)
            )
            self._snapshot = _Snapshot(
                records=tuple(old.records[i] for i in keep) + tuple(records),
                seqs=np.concatenate([old.seqs[keep], new_seqs]),
                matrix=np.vstack([old.matrix[keep], new_vectors]),
            )
        replaced = len(old.records) - len(keep)
        if replaced:
            logger.debug("Replaced %d existing records for %s", replaced, sorted(sources))
        return len(records)

    def search(self, query_vector: Sequence[float], k: int = 5) -> list[ScoredRecord]:
        snap = self._snapshot
        if k <= 0 or not snap.records:
            return []
        if len(query_vector) != self.dimension:
            raise DimensionMismatchError(
                f"Query has dimension {len(query_vector)}, collection expects {self.dimension}"
            )
        query = self._prepare(np.asarray([query_vector], dtype=np.float32))[0]
        scores = snap.matrix @ query
        # lexsort: last key is primary → highest score first, then earliest seq.
        order = np.lexsort((snap.seqs, -scores))[:k]
        return [
            ScoredRecord(record=snap.records[i], score=float(scores[i]), seq=int(snap.seqs[i]))
            for i in order
        ]

    def count(self) -> int:
        return len(self._snapshot.records)

    def health_check(self) -> bool:
        return self.dimension is not None

    def delete(self, ids: list[str]) -> None:
        drop = set(ids)
        with self._lock:
            old = self._snapshot
            keep = [i for i, rec in enumerate(old.records) if rec.id not in drop]
            self._snapshot = _Snapshot(
                records=tuple(old.records[i] for i in keep),
                seqs=old.seqs[keep],
                matrix=old.matrix[keep],
            )

    # -- internals ------------------------------------------------------------

    def _prepare(self, vectors: np.ndarray) -> np.ndarray:
        if self.metric != "cosine":
            return vectors
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return vectors / norms
