"""Exception hierarchy shared by every layer.

The HTTP layer maps these onto status codes, so raise the most specific
subclass available.
"""

from __future__ import annotations


class DocQAError(Exception):
    """Base class for all errors raised by this package."""


# ── Startup ───────────────────────────────────────────────────────────


class ConfigurationError(DocQAError):
    """Missing credentials, unreachable store, or an incompatible schema."""


class IngestionError(DocQAError):
    """A document could not be read/parsed, or an ingestion stage failed."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class IngestionStateError(IngestionError):
    """Illegal transition of the ingestion state machine."""


# ── Request path ──────────────────────────────────────────────────────


class QueryValidationError(DocQAError, ValueError):
    """The question is malformed (blank, too long, …). Never retried."""


class PromptTooLargeError(QueryValidationError):
    """The question alone does not fit in the LLM context window."""


class RetrievalError(DocQAError):
    """Embedding or vector-store failure while answering a query."""


class GenerationError(DocQAError):
    """The LLM call failed or timed out."""


# ── Collaborators ─────────────────────────────────────────────────────


class VectorStoreError(DocQAError):
    """The vector store rejected or failed an operation."""


class DimensionMismatchError(VectorStoreError):
    """An embedding does not match the store's configured dimension."""


class EmbeddingError(DocQAError):
    """Base class for embedding-client failures."""


class EmbeddingValidationError(EmbeddingError, ValueError):
    """Malformed input to the embedding service (e.g. an empty string)."""


class EmbeddingRejectedError(EmbeddingError):
    """The embedding service refused the request (auth, bad input); not retried."""


class EmbeddingServiceError(EmbeddingError):
    """The embedding service failed; retryable."""


class EmbeddingTimeoutError(EmbeddingServiceError):
    """The embedding service did not answer within the configured timeout."""
