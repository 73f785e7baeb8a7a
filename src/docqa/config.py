"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings

from docqa.errors import ConfigurationError


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: SecretStr = Field(
        default=SecretStr(""), description="OpenAI API key (or dummy value for a local vLLM)"
    )
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL of an OpenAI-compatible API. Leave empty to use OpenAI cloud, "
            "e.g. 'http://vllm.internal:8000/v1' for a self-hosted model."
        ),
    )
    llm_temperature: float = 0.0
    llm_timeout_seconds: float = 30.0

    # Embedding
    embedding_provider: Literal["openai", "huggingface"] = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int | None = Field(
        default=None, description="Expected vector size; probed from the model when unset"
    )
    embedding_timeout_seconds: float = 10.0
    embedding_batch_size: int = 64

    # Vector store
    vector_store: Literal["chroma", "memory"] = "chroma"
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "docqa"
    distance_metric: Literal["cosine", "ip", "l2"] = "cosine"

    # Ingestion
    documents_dir: Path = Path("documents")
    chunk_size_tokens: int = 512
    chunk_overlap_tokens: int = 64
    tokenizer: Literal["tiktoken", "regex"] = "tiktoken"
    ingestion_best_effort: bool = False

    # Retrieval / prompting
    retrieval_k: int = 4
    score_threshold: float = 0.3
    context_window_tokens: int = 8192
    response_reserve_tokens: int = 1024

    # Resilience
    max_retries: int = Field(default=3, ge=1, description="Attempts per network call, including the first")
    call_concurrency: int = Field(
        default=32,
        ge=1,
        description="Worker threads per network client; a timed-out call holds one until it returns",
    )

    # Serving
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def uses_openai(self) -> bool:
        return self.embedding_provider == "openai" or not self.llm_base_url

    def validate_runtime(self, *, require_credentials: bool = True) -> None:
        """Raise :class:`ConfigurationError` for settings that can never work.

        Called once at startup, before any client is built.
        """
        if require_credentials and self.uses_openai and not self.openai_api_key.get_secret_value():
            raise ConfigurationError(
                "OPENAI_API_KEY is not set (required unless LLM_BASE_URL points at a "
                "self-hosted model and EMBEDDING_PROVIDER=huggingface)"
            )
        if self.chunk_overlap_tokens >= self.chunk_size_tokens:
            raise ConfigurationError(
                f"chunk_overlap_tokens ({self.chunk_overlap_tokens}) must be < "
                f"chunk_size_tokens ({self.chunk_size_tokens})"
            )
        if self.response_reserve_tokens >= self.context_window_tokens:
            raise ConfigurationError(
                "response_reserve_tokens must be smaller than context_window_tokens"
            )
        if self.vector_store == "memory" and self.distance_metric == "l2":
            raise ConfigurationError("the in-memory store supports 'cosine' and 'ip' only")
