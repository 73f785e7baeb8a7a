"""Embedding client — validation, batching, timeouts and retries around a
LangChain ``Embeddings`` model."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from docqa.errors import (
    ConfigurationError,
    EmbeddingError,
    EmbeddingRejectedError,
    EmbeddingServiceError,
    EmbeddingTimeoutError,
    EmbeddingValidationError,
)
from docqa.resilience import CallTimeout, TimedCaller, build_retrying, is_permanent_error

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from docqa.config import Settings

logger = logging.getLogger(__name__)

_DIMENSION_PROBE = "dimension probe"


def get_embedding_model(settings: Settings) -> Embeddings:
    """Return the configured LangChain embedding model.

    Retries are disabled on the underlying client; :class:`EmbeddingClient`
    owns the retry policy.
    """
    if settings.embedding_provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(
            model_name=settings.embedding_model,
            encode_kwargs={"normalize_embeddings": True},
        )
    if settings.embedding_provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        kwargs: dict = {
            "model": settings.embedding_model,
            "api_key": settings.openai_api_key,
            "timeout": settings.embedding_timeout_seconds,
            "max_retries": 0,
        }
        if settings.embedding_dimension:
            kwargs["dimensions"] = settings.embedding_dimension
        return OpenAIEmbeddings(**kwargs)
    raise ConfigurationError(f"Unsupported embedding provider: {settings.embedding_provider!r}")


class EmbeddingClient:
    """Turn text into fixed-dimension vectors, one per input, in order.

    Parameters
    ----------
    model:
        Any LangChain ``Embeddings`` implementation.
    timeout_seconds:
        Deadline for a single call to the model.
    max_retries:
        Attempts per call, including the first, for service failures.
    batch_size:
        Number of texts sent per ``embed_documents`` call.
    dimension:
        Expected vector size. Probed from the model on first use when ``None``.
    backoff_seconds:
        Base of the exponential backoff between attempts.
    max_workers:
        Calls that may be in flight at once, stalled ones included.
    """

    def __init__(
        self,
        model: Embeddings,
        *,
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        batch_size: int = 64,
        dimension: int | None = None,
        backoff_seconds: float = 0.5,
        max_workers: int = 32,
    ) -> None:
        self._model = model
        self._call = TimedCaller(timeout_seconds, max_workers=max_workers, name="embedding")
        self._retrying = build_retrying(
            max_retries, EmbeddingServiceError, label="embedding", backoff_seconds=backoff_seconds
        )
        self.batch_size = batch_size
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self._invoke_query(_DIMENSION_PROBE))
            logger.info("Probed embedding dimension: %d", self._dimension)
        return self._dimension

    # -- public API -----------------------------------------------------------

    def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* in batches, preserving input order."""
        _validate(texts)
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            out = self._retrying.copy()(self._embed_batch, batch)
            vectors.extend(out)
            logger.debug("Embedded %d / %d texts", len(vectors), len(texts))
        return vectors

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query string."""
        _validate([text])
        return self._retrying.copy()(self._invoke_query, text)

    def close(self) -> None:
        self._call.shutdown()

    # -- internals ------------------------------------------------------------

    def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            out = self._call(self._model.embed_documents, batch)
        except CallTimeout as exc:
            raise EmbeddingTimeoutError(str(exc)) from exc
        except Exception as exc:
            raise _service_error(exc) from exc
        if len(out) != len(batch):
            raise EmbeddingServiceError(
                f"Embedding service returned {len(out)} vectors for {len(batch)} inputs"
            )
        for vec in out:
            self._check_dimension(vec)
        return [list(vec) for vec in out]

    def _invoke_query(self, text: str) -> list[float]:
        try:
            vec = self._call(self._model.embed_query, text)
        except CallTimeout as exc:
            raise EmbeddingTimeoutError(str(exc)) from exc
        except Exception as exc:
            raise _service_error(exc) from exc
        if self._dimension is not None:
            self._check_dimension(vec)
        return list(vec)

    def _check_dimension(self, vec: Sequence[float]) -> None:
        if self._dimension is None:
            self._dimension = len(vec)
        elif len(vec) != self._dimension:
            raise EmbeddingServiceError(
                f"Embedding dimension {len(vec)} does not match expected {self._dimension}"
            )


def _service_error(exc: Exception) -> EmbeddingError:
    """Classify a model failure; only :class:`EmbeddingServiceError` is retried."""
    if is_permanent_error(exc):
        return EmbeddingRejectedError(f"Embedding service rejected the request: {exc}")
    return EmbeddingServiceError(f"Embedding service failed: {exc}")


def _validate(texts: Sequence[str]) -> None:
    for i, text in enumerate(texts):
        if not isinstance(text, str) or not text.strip():
            raise EmbeddingValidationError(f"Input {i} is empty; cannot embed blank text")
