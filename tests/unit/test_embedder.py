"""Unit tests for the embedding client."""

from __future__ import annotations

import threading

import httpx
import openai
import pytest
from langchain_core.embeddings import Embeddings

from docqa.errors import (
    EmbeddingRejectedError,
    EmbeddingServiceError,
    EmbeddingTimeoutError,
    EmbeddingValidationError,
)
from docqa.ingestion.embedder import EmbeddingClient


class FlakyEmbeddings(Embeddings):
    """Fails the first *failures* calls, then returns constant vectors."""

    def __init__(self, failures: int, dim: int = 4) -> None:
        self.failures = failures
        self.dim = dim
        self.calls = 0

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("service unavailable")

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self._maybe_fail()
        return [[float(len(t))] + [0.0] * (self.dim - 1) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        self._maybe_fail()
        return [1.0] + [0.0] * (self.dim - 1)


class BlockingEmbeddings(Embeddings):
    def __init__(self) -> None:
        self.release = threading.Event()

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.release.wait(5)
        return [[0.0] for _ in texts]

    def embed_query(self, text: str) -> list[float]:
        self.release.wait(5)
        return [0.0]


def test_one_vector_per_input_in_order(embeddings) -> None:
    client = EmbeddingClient(embeddings, batch_size=2)
    texts = ["alpha", "beta gamma", "delta", "alpha"]
    vectors = client.embed_documents(texts)

    assert len(vectors) == 4
    assert vectors[0] == vectors[3]
    assert vectors[1] == embeddings.embed_query("beta gamma")
    # batch_size=2 → two calls to the model
    assert [len(call) for call in embeddings.calls] == [2, 2]


def test_dimension_is_probed_once(embeddings) -> None:
    client = EmbeddingClient(embeddings)
    assert client.dimension == embeddings.dim
    assert client.dimension == embeddings.dim


def test_empty_string_is_rejected_without_calling_service(embeddings) -> None:
    client = EmbeddingClient(embeddings)
    with pytest.raises(EmbeddingValidationError):
        client.embed_documents(["fine", "   "])
    with pytest.raises(EmbeddingValidationError):
        client.embed_query("")
    assert embeddings.calls == []


def test_transient_failures_are_retried() -> None:
    model = FlakyEmbeddings(failures=2)
    client = EmbeddingClient(model, max_retries=3, backoff_seconds=0)
    assert client.embed_query("hello") == [1.0, 0.0, 0.0, 0.0]
    assert model.calls == 3


def test_retries_are_bounded() -> None:
    model = FlakyEmbeddings(failures=10)
    client = EmbeddingClient(model, max_retries=2, backoff_seconds=0)
    with pytest.raises(EmbeddingServiceError, match="service unavailable"):
        client.embed_documents(["hello"])
    assert model.calls == 2


def test_timeout_surfaces_as_timeout_error() -> None:
    model = BlockingEmbeddings()
    client = EmbeddingClient(model, timeout_seconds=0.05, max_retries=1)
    try:
        with pytest.raises(EmbeddingTimeoutError):
            client.embed_query("will stall")
    finally:
        model.release.set()
        client.close()


def test_dimension_mismatch_is_a_service_error() -> None:
    client = EmbeddingClient(FlakyEmbeddings(failures=0, dim=4), dimension=8, max_retries=1)
    with pytest.raises(EmbeddingServiceError, match="dimension"):
        client.embed_documents(["hello"])


class RejectingEmbeddings(FlakyEmbeddings):
    """Answers every call with a 400 from the API."""

    def _maybe_fail(self) -> None:
        self.calls += 1
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        raise openai.BadRequestError(
            "input too long", response=httpx.Response(400, request=request), body=None
        )


def test_rejected_request_is_not_retried() -> None:
    model = RejectingEmbeddings(failures=0)
    client = EmbeddingClient(model, max_retries=3, backoff_seconds=0)
    with pytest.raises(EmbeddingRejectedError, match="input too long"):
        client.embed_documents(["hello"])
    assert model.calls == 1
    with pytest.raises(EmbeddingRejectedError):
        client.embed_query("hello")
    assert model.calls == 2
