"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

import chromadb

from docqa.errors import ConfigurationError, VectorStoreError
from docqa.resilience import build_retrying
from docqa.retrieval.base import VectorStoreBase
from docqa.retrieval.models import ScoredRecord, VectorRecord

logger = logging.getLogger(__name__)

_SEQ_KEY = "_seq"
_DIMENSION_KEY = "dimension"
_SPACE_KEY = "hnsw:space"


def distance_to_score(distance: float, metric: str) -> float:
    """Convert a Chroma distance into a similarity (higher = more similar)."""
    if metric in ("cosine", "ip"):
        # cosine: d = 1 - cos;  ip: d = 1 - <a, b>
        return 1.0 - distance
    # l2: squared euclidean; map to a 0-1 similarity.
    return 1.0 / (1.0 + distance)


def _flat_metadata(meta: dict[str, Any]) -> dict[str, str | int | float | bool]:
    """Chroma metadata values must be flat str/int/float/bool."""
    return {k: v for k, v in meta.items() if isinstance(v, (str, int, float, bool))}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    client:
        Pre-built Chroma client (e.g. ``chromadb.EphemeralClient()``); when
        given, *host* and *port* are ignored.
    cleanup_attempts:
        Attempts at deleting records superseded by a re-ingested source.
    """

    def __init__(
        self,
        collection_name: str = "docqa",
        *,
        host: str = "localhost",
        port: int = 8000,
        client: Any | None = None,
        cleanup_attempts: int = 3,
    ) -> None:
        super().__init__(collection_name)
        try:
            self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        except Exception as exc:
            raise ConfigurationError(f"Cannot reach Chroma at {host}:{port}: {exc}") from exc
        self._collection: Any = None
        self._last_seq = 0
        self._cleanup_retrying = build_retrying(
            cleanup_attempts, Exception, label="stale record cleanup", backoff_seconds=0.1
        )

    # -- VectorStoreBase overrides --------------------------------------------

    def initialize(self, dimension: int, metric: str = "cosine") -> None:
        if self._check_schema(dimension, metric):
            return
        try:
            collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={_SPACE_KEY: metric, _DIMENSION_KEY: dimension},
            )
        except Exception as exc:
            raise ConfigurationError(
                f"Cannot initialise Chroma collection {self.collection_name!r}: {exc}"
            ) from exc

        # An existing collection keeps the metadata it was created with.
        existing = collection.metadata or {}
        stored_dim = existing.get(_DIMENSION_KEY, dimension)
        stored_metric = existing.get(_SPACE_KEY, metric)
        if (stored_dim, stored_metric) != (dimension, metric):
            raise ConfigurationError(
                f"Chroma collection {self.collection_name!r} was created with "
                f"dimension={stored_dim}, metric={stored_metric!r}; configured "
                f"dimension={dimension}, metric={metric!r}"
            )
        self._collection = collection
        self.dimension = dimension
        self.metric = metric
        logger.info(
            "Initialised Chroma collection %r (dimension=%d, metric=%s)",
            self.collection_name,
            dimension,
            metric,
        )

    def upsert(self, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0
        self._validate_batch(records)
        max_batch = self._max_batch_size()
        if max_batch is not None and len(records) > max_batch:
            raise VectorStoreError(
                f"Batch of {len(records)} records exceeds Chroma's atomic write limit ({max_batch})"
            )

        ids = [r.id for r in records]
        sources = {r.source for r in records}
        # Resolved before writing: a failed lookup leaves the collection untouched.
        stale = self._stale_ids(sources, set(ids))

        base_seq = self._next_seq(len(records))
        metadatas = [
            {**_flat_metadata(r.metadata), _SEQ_KEY: base_seq + i} for i, r in enumerate(records)
        ]
        try:
            self._collection.upsert(
                ids=ids,
                embeddings=[list(r.embedding) for r in records],
                documents=[r.text for r in records],
                metadatas=metadatas,
            )
        except Exception as exc:
            raise VectorStoreError(f"Chroma upsert failed: {exc}") from exc

        if stale:
            self._drop_stale(stale, sources)
        return len(records)

    def search(self, query_vector: Sequence[float], k: int = 5) -> list[ScoredRecord]:
        if k <= 0:
            return []
        if self._collection is None:
            raise VectorStoreError(f"Collection {self.collection_name!r} used before initialize()")
        try:
            total = self._collection.count()
            if total == 0:
                return []
            # Over-fetch so ties at the k-th position can be ordered by seq.
            results = self._collection.query(
                query_embeddings=[list(query_vector)],
                n_results=min(total, k * 2),
                include=["documents", "metadatas", "embeddings", "distances"],
            )
        except Exception as exc:
            raise VectorStoreError(f"Chroma query failed: {exc}") from exc

        ids = results.get("ids", [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        embeddings = results.get("embeddings")
        embeddings = embeddings[0] if embeddings is not None else [None] * len(ids)
        distances = (results.get("distances") or [[]])[0]

        hits: list[ScoredRecord] = []
        for doc_id, content, meta, emb, dist in zip(ids, docs, metas, embeddings, distances):
            meta = dict(meta or {})
            seq = int(meta.pop(_SEQ_KEY, 0))
            record = VectorRecord(
                id=doc_id,
                text=content or "",
                embedding=[float(x) for x in emb] if emb is not None else [],
                metadata=meta,
            )
            hits.append(
                ScoredRecord(record=record, score=distance_to_score(dist, self.metric or "cosine"), seq=seq)
            )
        hits.sort(key=lambda h: (-h.score, h.seq))
        return hits[:k]

    def count(self) -> int:
        if self._collection is None:
            return 0
        try:
            return self._collection.count()
        except Exception as exc:
            raise VectorStoreError(f"Chroma count failed: {exc}") from exc

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    def delete(self, ids: list[str]) -> None:
        if self._collection is None or not ids:
            return
        self._collection.delete(ids=ids)

    # -- internals ------------------------------------------------------------

    def _max_batch_size(self) -> int | None:
        getter = getattr(self._client, "get_max_batch_size", None)
        if getter is None:
            return None
        try:
            return int(getter())
        except Exception:
            logger.debug("Chroma client did not report a max batch size", exc_info=True)
            return None

    def _next_seq(self, n: int) -> int:
        """Reserve *n* strictly increasing insertion sequence numbers."""
        base = max(time.time_ns(), self._last_seq + 1)
        self._last_seq = base + n - 1
        return base

    def _stale_ids(self, sources: set[str], keep_ids: set[str]) -> list[str]:
        """Ids of records of *sources* that the new batch will not overwrite."""
        where: dict[str, Any] = (
            {"source": next(iter(sources))} if len(sources) == 1 else {"source": {"$in": sorted(sources)}}
        )
        try:
            existing = self._collection.get(where=where, include=[])
        except Exception as exc:
            raise VectorStoreError(f"Chroma lookup of existing records failed: {exc}") from exc
        return [i for i in existing.get("ids", []) if i not in keep_ids]

    def _drop_stale(self, stale: list[str], sources: set[str]) -> None:
        """Delete records superseded by an applied upsert.

        The new records are already stored, so a failure here is logged and
        left for the next re-ingestion of the source; it never turns the
        write into a reported failure.
        """
        logger.info("Removing %d stale records for %s", len(stale), sorted(sources))
        try:
            self._cleanup_retrying.copy()(self.delete, stale)
        except Exception:
            logger.warning(
                "Could not remove %d stale records for %s", len(stale), sorted(sources), exc_info=True
            )
