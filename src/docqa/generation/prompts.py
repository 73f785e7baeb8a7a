"""Prompt templates and the context-window–aware prompt builder.

Keeping prompts in one place makes them easy to audit, version, and A/B
test.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from docqa.errors import PromptTooLargeError
from docqa.retrieval.models import ScoredRecord

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from docqa.config import Settings
    from docqa.retrieval.models import RetrievalResult
    from docqa.tokenizer import Tokenizer

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"

# ── 1. Grounded answer ────────────────────────────────────────────────

GROUNDED_SYSTEM = """\
You are a precise, helpful assistant that answers questions using the
provided context excerpts from the user's documents.

Rules:
1. Base your answer on the context. Cite the excerpts you use with their
   bracketed number, e.g. [1].
2. If the context is insufficient to answer, say so explicitly and explain
   what is missing. Do NOT fabricate information.
3. Be concise but thorough.
"""

# ── 2. No-context fallback ────────────────────────────────────────────

FALLBACK_SYSTEM = """\
You are a helpful assistant. No supporting document context was found for
this question.

Rules:
1. Start your answer with: "No supporting document context was found."
2. Then answer from general knowledge, and make clear that the answer is
   not backed by the user's documents.
"""

NO_CONTEXT_NOTICE = "No supporting document context was found."


class Prompt(BaseModel):
    """An assembled prompt, passed to the LLM unmodified."""

    system: str
    user: str
    fallback: bool = False
    context: list[ScoredRecord] = Field(default_factory=list)
    dropped: int = 0
    token_count: int = 0

    def to_messages(self) -> list[BaseMessage]:
        return [SystemMessage(content=self.system), HumanMessage(content=self.user)]

    @property
    def text(self) -> str:
        return f"{self.system}\n{self.user}"


def format_context(hits: list[ScoredRecord]) -> str:
    """Numbered listing suitable for citation references [1], [2], …"""
    parts: list[str] = []
    for i, hit in enumerate(hits, 1):
        ref = hit.citation().short_ref()
        parts.append(f"[{i}] {ref} score={hit.score:.3f}\n{hit.record.text}")
    return CONTEXT_SEPARATOR.join(parts)


def build_grounded_user_message(question: str, hits: list[ScoredRecord]) -> str:
    return (
        f"Context:\n{format_context(hits)}\n\n"
        f"Question: {question}\n\n"
        "Answer using the context above. If it does not contain enough "
        "information, say that the context is insufficient."
    )


def build_fallback_user_message(question: str) -> str:
    return f"Question: {question}\n\n{NO_CONTEXT_NOTICE} Answer from general knowledge."


class PromptBuilder:
    """Builds prompts that fit the LLM context window.

    Parameters
    ----------
    tokenizer:
        Used to measure the assembled prompt.
    context_window_tokens:
        Maximum combined input + output length of the model.
    response_reserve_tokens:
        Tokens kept free for the model's answer.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        *,
        context_window_tokens: int = 8192,
        response_reserve_tokens: int = 1024,
    ) -> None:
        self._tokenizer = tokenizer
        self.budget = context_window_tokens - response_reserve_tokens

    @classmethod
    def from_settings(cls, settings: Settings, tokenizer: Tokenizer) -> PromptBuilder:
        return cls(
            tokenizer,
            context_window_tokens=settings.context_window_tokens,
            response_reserve_tokens=settings.response_reserve_tokens,
        )

    def build(self, question: str, result: RetrievalResult) -> Prompt:
        """Assemble the prompt for *question* from *result*.

        Context chunks keep their ranked order; the lowest-ranked ones are
        dropped first until the prompt fits :attr:`budget`.
        """
        included = list(result.hits)
        while True:
            prompt = self._assemble(question, included)
            if prompt.token_count <= self.budget:
                break
            if not included:
                raise PromptTooLargeError(
                    f"Question needs {prompt.token_count} tokens; budget is {self.budget}"
                )
            included.pop()

        prompt.dropped = len(result.hits) - len(included)
        if prompt.dropped:
            logger.warning(
                "Dropped %d of %d context chunks to fit the %d-token budget",
                prompt.dropped,
                len(result.hits),
                self.budget,
            )
        return prompt

    def _assemble(self, question: str, hits: list[ScoredRecord]) -> Prompt:
        if hits:
            system, user, fallback = GROUNDED_SYSTEM, build_grounded_user_message(question, hits), False
        else:
            system, user, fallback = FALLBACK_SYSTEM, build_fallback_user_message(question), True
        tokens = self._tokenizer.count(system) + self._tokenizer.count(user)
        return Prompt(
            system=system,
            user=user,
            fallback=fallback,
            context=list(hits),
            token_count=tokens,
        )
