"""Explicit construction of every collaborator at process startup.

Nothing here is a module-level singleton: :func:`build_services` returns a
:class:`Services` bundle that the HTTP app and the CLI pass around.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from docqa.errors import ConfigurationError, EmbeddingError
from docqa.generation.llm import LLMClient, get_llm
from docqa.generation.prompts import PromptBuilder
from docqa.ingestion.chunker import TokenWindowSplitter
from docqa.ingestion.controller import IngestionController, IngestionReport
from docqa.ingestion.embedder import EmbeddingClient, get_embedding_model
from docqa.retrieval.memory_store import InMemoryVectorStore
from docqa.retrieval.retriever import Retriever
from docqa.serving.service import QueryService
from docqa.tokenizer import get_tokenizer

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings
    from langchain_core.language_models import BaseChatModel

    from docqa.config import Settings
    from docqa.retrieval.base import VectorStoreBase
    from docqa.tokenizer import Tokenizer

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Every long-lived collaborator of the running service."""

    settings: Settings
    store: VectorStoreBase
    embedder: EmbeddingClient
    llm: LLMClient
    ingestion: IngestionController
    query_service: QueryService

    def initialize_store(self) -> None:
        """Create the store schema (idempotent); fatal if the store or the
        embedding service is unreachable."""
        try:
            dimension = self.embedder.dimension
        except EmbeddingError as exc:
            raise ConfigurationError(f"Cannot determine embedding dimension: {exc}") from exc
        self.store.initialize(dimension, self.settings.distance_metric)

    def start(self) -> IngestionReport:
        """Startup phase: initialise the store, then ingest once."""
        self.initialize_store()
        return self.ingestion.run()

    def close(self) -> None:
        self.embedder.close()
        self.llm.close()


def build_vector_store(settings: Settings) -> VectorStoreBase:
    """Return the configured vector-store backend (not yet initialised)."""
    if settings.vector_store == "memory":
        return InMemoryVectorStore(settings.chroma_collection)
    if settings.vector_store == "chroma":
        from docqa.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore(
            settings.chroma_collection, host=settings.chroma_host, port=settings.chroma_port
        )
    raise ConfigurationError(f"Unsupported vector store: {settings.vector_store!r}")


def build_services(
    settings: Settings,
    *,
    embedding_model: Embeddings | None = None,
    chat_model: BaseChatModel | None = None,
    store: VectorStoreBase | None = None,
    tokenizer: Tokenizer | None = None,
) -> Services:
    """Wire the pipeline from *settings*; any collaborator can be injected.

    Raises
    ------
    ConfigurationError
        Missing credentials or inconsistent settings.
    """
    settings.validate_runtime(require_credentials=embedding_model is None or chat_model is None)

    tokenizer = tokenizer or get_tokenizer(settings.tokenizer)
    store = store or build_vector_store(settings)
    embedder = EmbeddingClient(
        embedding_model or get_embedding_model(settings),
        timeout_seconds=settings.embedding_timeout_seconds,
        max_retries=settings.max_retries,
        batch_size=settings.embedding_batch_size,
        dimension=settings.embedding_dimension,
        max_workers=settings.call_concurrency,
    )
    llm = LLMClient(
        chat_model or get_llm(settings),
        timeout_seconds=settings.llm_timeout_seconds,
        max_retries=settings.max_retries,
        max_workers=settings.call_concurrency,
    )
    splitter = TokenWindowSplitter(
        tokenizer,
        chunk_size=settings.chunk_size_tokens,
        chunk_overlap=settings.chunk_overlap_tokens,
    )
    ingestion = IngestionController(
        settings.documents_dir,
        splitter,
        embedder,
        store,
        metric=settings.distance_metric,
        best_effort=settings.ingestion_best_effort,
        max_retries=settings.max_retries,
    )
    query_service = QueryService(
        Retriever.from_settings(settings, embedder, store),
        PromptBuilder.from_settings(settings, tokenizer),
        llm,
    )
    logger.info(
        "Built services (store=%s, embedding=%s/%s, llm=%s, tokenizer=%s)",
        settings.vector_store,
        settings.embedding_provider,
        settings.embedding_model,
        settings.llm_model_name,
        tokenizer.name,
    )
    return Services(
        settings=settings,
        store=store,
        embedder=embedder,
        llm=llm,
        ingestion=ingestion,
        query_service=query_service,
    )
