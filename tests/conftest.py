"""Shared pytest configuration and fixtures.

Everything here runs offline: embeddings come from a deterministic
bag-of-words hasher and the chat model is a rule-based fake.
"""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatResult

from docqa.config import Settings
from docqa.retrieval.memory_store import InMemoryVectorStore
from docqa.serving.bootstrap import Services, build_services
from docqa.tokenizer import RegexTokenizer


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fakes ──────────────────────────────────────────────────────────────


class HashingEmbeddings(Embeddings):
    """Bag-of-words vectors: each lowercase word is hashed into a bucket.

    Texts sharing words get high cosine similarity; unrelated texts get
    (close to) zero.
    """

    def __init__(self, dim: int = 64) -> None:
        self.dim = dim
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dim
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dim
            vec[bucket] += 1.0
        norm = math.sqrt(sum(x * x for x in vec)) or 1.0
        return [x / norm for x in vec]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)


class RuleChatModel(BaseChatModel):
    """Chat model whose reply is computed from the prompt by *rule*."""

    rule: Callable[[list[BaseMessage]], str]
    prompts: list[list[BaseMessage]] = []

    @property
    def _llm_type(self) -> str:
        return "rule-fake"

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> ChatResult:
        self.prompts.append(list(messages))
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=self.rule(messages)))])


def answer_from_context(messages: list[BaseMessage]) -> str:
    """Reply with the first context line sharing a keyword with the question."""
    user = str(messages[-1].content)
    question = user.rsplit("Question:", 1)[-1].split("\n", 1)[0]
    keywords = {w for w in re.findall(r"[a-z]+", question.lower()) if len(w) > 3}
    for line in user.splitlines():
        if line.startswith(("Question:", "[")):
            continue
        if keywords & set(re.findall(r"[a-z]+", line.lower())):
            return line.strip()
    return "No supporting document context was found. I can only answer from general knowledge."


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture()
def embeddings() -> HashingEmbeddings:
    return HashingEmbeddings()


@pytest.fixture()
def chat_model() -> RuleChatModel:
    return RuleChatModel(rule=answer_from_context, prompts=[])


@pytest.fixture()
def make_chat_model() -> Callable[[Callable[[list[BaseMessage]], str]], RuleChatModel]:
    """Factory for chat models with a custom reply rule."""

    def _make(rule: Callable[[list[BaseMessage]], str]) -> RuleChatModel:
        return RuleChatModel(rule=rule, prompts=[])

    return _make


@pytest.fixture()
def tokenizer() -> RegexTokenizer:
    return RegexTokenizer()


@pytest.fixture()
def docs_dir(tmp_path: Path) -> Path:
    d = tmp_path / "documents"
    d.mkdir()
    return d


@pytest.fixture()
def settings(docs_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        vector_store="memory",
        documents_dir=docs_dir,
        tokenizer="regex",
        chunk_size_tokens=40,
        chunk_overlap_tokens=5,
        score_threshold=0.3,
        retrieval_k=3,
        max_retries=1,
        embedding_timeout_seconds=2.0,
        llm_timeout_seconds=2.0,
    )


@pytest.fixture()
def make_services(
    settings: Settings, embeddings: HashingEmbeddings, chat_model: RuleChatModel
) -> Iterator[Callable[..., Services]]:
    """Factory building offline services; keyword overrides go to Settings."""
    built: list[Services] = []

    def _make(**overrides: Any) -> Services:
        s = settings.model_copy(update=overrides) if overrides else settings
        services = build_services(
            s,
            embedding_model=embeddings,
            chat_model=chat_model,
            store=InMemoryVectorStore("test"),
            tokenizer=RegexTokenizer(),
        )
        built.append(services)
        return services

    yield _make
    for services in built:
        services.close()


def write_minimal_pdf(path: Path, pages: list[str]) -> Path:
    """Write a small valid PDF with one line of Helvetica text per page."""
    objects: list[bytes] = []
    n_pages = len(pages)
    font_id = 3 + 2 * n_pages
    kids = " ".join(f"{3 + 2 * i} 0 R" for i in range(n_pages))
    objects.append(b"<< /Type /Catalog /Pages 2 0 R >>")
    objects.append(f"<< /Type /Pages /Kids [{kids}] /Count {n_pages} >>".encode())
    for i, text in enumerate(pages):
        content_id = 4 + 2 * i
        objects.append(
            (
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Resources << /Font << /F1 {font_id} 0 R >> >> /Contents {content_id} 0 R >>"
            ).encode()
        )
        escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        stream = f"BT /F1 12 Tf 72 720 Td ({escaped}) Tj ET".encode()
        objects.append(b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream")
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for i, body in enumerate(objects, 1):
        offsets.append(len(out))
        out += f"{i} 0 obj\n".encode() + body + b"\nendobj\n"
    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode()
    for off in offsets:
        out += f"{off:010d} 00000 n \n".encode()
    out += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode()
    path.write_bytes(bytes(out))
    return path


@pytest.fixture()
def make_pdf() -> Callable[[Path, list[str]], Path]:
    return write_minimal_pdf
