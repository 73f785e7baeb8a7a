"""Abstract base class for vector-store backends.

Adding a new backend (pgvector, Qdrant …) only requires subclassing
:class:`VectorStoreBase` and implementing the abstract methods.  The rest
of the stack is backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from docqa.errors import ConfigurationError, DimensionMismatchError, VectorStoreError
from docqa.retrieval.models import ScoredRecord, VectorRecord

SUPPORTED_METRICS = ("cosine", "ip", "l2")


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Write contract: :meth:`upsert` is atomic per call and replaces every
    earlier record of each ``source`` present in the batch.

    Read contract: :meth:`search` never observes a partially applied batch
    and ranks ties by insertion order, earliest first.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name
        self.dimension: int | None = None
        self.metric: str | None = None

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def initialize(self, dimension: int, metric: str = "cosine") -> None:
        """Create the schema for *dimension*-sized vectors.  Idempotent."""
        ...

    @abstractmethod
    def upsert(self, records: Sequence[VectorRecord]) -> int:
        """Persist *records* atomically and return how many were written."""
        ...

    @abstractmethod
    def search(self, query_vector: Sequence[float], k: int = 5) -> list[ScoredRecord]:
        """Return the top-*k* records by similarity (higher = more similar)."""
        ...

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    def delete(self, ids: list[str]) -> None:
        """Delete records by their IDs.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")

    # -- shared helpers -------------------------------------------------------

    def _check_schema(self, dimension: int, metric: str) -> bool:
        """Return ``True`` if already initialised with the same schema."""
        if metric not in SUPPORTED_METRICS:
            raise ConfigurationError(f"Unsupported distance metric: {metric!r}")
        if dimension <= 0:
            raise ConfigurationError(f"Invalid embedding dimension: {dimension}")
        if self.dimension is None:
            return False
        if (self.dimension, self.metric) != (dimension, metric):
            raise ConfigurationError(
                f"Collection {self.collection_name!r} is initialised with "
                f"dimension={self.dimension}, metric={self.metric!r}; "
                f"cannot re-initialise with dimension={dimension}, metric={metric!r}"
            )
        return True

    def _validate_batch(self, records: Sequence[VectorRecord]) -> None:
        """Reject the whole batch before anything is written."""
        if self.dimension is None:
            raise VectorStoreError(
                f"Collection {self.collection_name!r} used before initialize()"
            )
        seen: set[str] = set()
        for rec in records:
            if len(rec.embedding) != self.dimension:
                raise DimensionMismatchError(
                    f"Record {rec.id!r} has dimension {len(rec.embedding)}, "
                    f"collection expects {self.dimension}"
                )
            if rec.id in seen:
                raise VectorStoreError(f"Duplicate record id {rec.id!r} in batch")
            seen.add(rec.id)
