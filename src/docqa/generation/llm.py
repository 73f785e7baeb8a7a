"""LLM initialisation and the generation client — single place to swap
providers.

Supports two modes:

1. **OpenAI cloud** (default) — set ``OPENAI_API_KEY``.
2. **OpenAI-compatible endpoint** — set ``LLM_BASE_URL`` to a self-hosted
   server (vLLM, llama.cpp, …) exposing ``/v1/chat/completions``;
   ``ChatOpenAI`` works unchanged.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langchain_openai import ChatOpenAI

from docqa.errors import GenerationError
from docqa.resilience import CallTimeout, TimedCaller, build_retrying, is_permanent_error

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from docqa.config import Settings
    from docqa.generation.prompts import Prompt

logger = logging.getLogger(__name__)


class _TransientGenerationError(GenerationError):
    """A failed attempt that may succeed on retry."""


def get_llm(settings: Settings) -> ChatOpenAI:
    """Return the configured chat model.

    When ``settings.llm_base_url`` is set the client is pointed at that
    endpoint instead of the OpenAI cloud API.  A dummy API key (``"EMPTY"``)
    is used there because self-hosted servers usually do not authenticate.
    """
    kwargs: dict = {
        "model": settings.llm_model_name,
        "temperature": settings.llm_temperature,
        "timeout": settings.llm_timeout_seconds,
        # Retries are owned by LLMClient.
        "max_retries": 0,
    }

    if settings.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.llm_base_url)
        kwargs["base_url"] = settings.llm_base_url
        kwargs["api_key"] = settings.openai_api_key.get_secret_value() or "EMPTY"
    else:
        kwargs["api_key"] = settings.openai_api_key

    return ChatOpenAI(**kwargs)


class LLMClient:
    """Send a :class:`Prompt` to the chat model and return the answer text.

    Parameters
    ----------
    chat_model:
        Any LangChain chat model.
    timeout_seconds:
        Deadline for a single model call.
    max_retries:
        Attempts per prompt, including the first.
    max_workers:
        Calls that may be in flight at once, stalled ones included.
    """

    def __init__(
        self,
        chat_model: BaseChatModel,
        *,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        max_workers: int = 32,
    ) -> None:
        self._model = chat_model
        self._call = TimedCaller(timeout_seconds, max_workers=max_workers, name="llm")
        self._retrying = build_retrying(
            max_retries, _TransientGenerationError, label="LLM call", backoff_seconds=backoff_seconds
        )

    def generate(self, prompt: Prompt) -> str:
        """Return the model's full answer to *prompt*.

        Raises
        ------
        GenerationError
            If every attempt fails or times out.  No partial answer is
            returned.
        """
        try:
            return self._retrying.copy()(self._invoke, prompt)
        except _TransientGenerationError as exc:
            raise GenerationError(str(exc)) from exc.__cause__

    def close(self) -> None:
        self._call.shutdown()

    def _invoke(self, prompt: Prompt) -> str:
        try:
            response = self._call(self._model.invoke, prompt.to_messages())
        except CallTimeout as exc:
            raise _TransientGenerationError(f"LLM timed out: {exc}") from exc
        except Exception as exc:
            if is_permanent_error(exc):
                raise GenerationError(f"LLM rejected the request: {exc}") from exc
            raise _TransientGenerationError(f"LLM call failed: {exc}") from exc

        content = response.content
        if isinstance(content, list):
            content = "".join(
                part if isinstance(part, str) else str(part.get("text", "")) for part in content
            )
        if not content:
            raise _TransientGenerationError("LLM returned an empty answer")
        return content
