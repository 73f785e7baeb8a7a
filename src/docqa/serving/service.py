"""Stateless question-answering over the ingested documents."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from docqa.errors import QueryValidationError
from docqa.retrieval.models import Citation

if TYPE_CHECKING:
    from docqa.generation.llm import LLMClient
    from docqa.generation.prompts import PromptBuilder
    from docqa.retrieval.retriever import Retriever

logger = logging.getLogger(__name__)

MAX_QUESTION_CHARS = 4000


class Answer(BaseModel):
    """Generated answer plus the provenance of the context it was grounded on."""

    answer: str
    context_found: bool
    citations: list[Citation] = Field(default_factory=list)

    @property
    def sources(self) -> list[str]:
        return [c.short_ref() for c in self.citations]


class QueryService:
    """Retrieve → build prompt → generate, with no state between requests."""

    def __init__(self, retriever: Retriever, prompt_builder: PromptBuilder, llm: LLMClient) -> None:
        self._retriever = retriever
        self._prompt_builder = prompt_builder
        self._llm = llm

    def answer(self, question: str) -> Answer:
        """Answer *question*.

        Raises
        ------
        QueryValidationError
            Blank or oversized question.
        RetrievalError
            Embedding or vector-store failure.
        GenerationError
            LLM failure or timeout.
        """
        question = (question or "").strip()
        if not question:
            raise QueryValidationError("Question must not be empty")
        if len(question) > MAX_QUESTION_CHARS:
            raise QueryValidationError(f"Question exceeds {MAX_QUESTION_CHARS} characters")

        result = self._retriever.retrieve(question)
        prompt = self._prompt_builder.build(question, result)
        logger.info(
            "Answering with %d context chunks (fallback=%s, tokens=%d)",
            len(prompt.context),
            prompt.fallback,
            prompt.token_count,
        )
        text = self._llm.generate(prompt)
        return Answer(
            answer=text,
            context_found=not prompt.fallback,
            citations=[hit.citation() for hit in prompt.context],
        )
