"""Token counting shared by the chunker and the prompt budget.

Both implementations report token *offsets* (the character index where each
token starts) so callers can cut text on token boundaries while keeping
exact character slices of the original string.
"""

from __future__ import annotations

import re
from typing import Protocol


class Tokenizer(Protocol):
    name: str

    def count(self, text: str) -> int: ...

    def offsets(self, text: str) -> list[int]: ...


class RegexTokenizer:
    """Whitespace-delimited words, each token owning its leading whitespace.

    Deterministic and dependency-free; handy for tests and for models whose
    tokenizer is unknown.
    """

    name = "regex"
    _TOKEN = re.compile(r"\s*\S+")

    def count(self, text: str) -> int:
        return sum(1 for _ in self._TOKEN.finditer(text))

    def offsets(self, text: str) -> list[int]:
        return [m.start() for m in self._TOKEN.finditer(text)]


class TiktokenTokenizer:
    """BPE tokenizer used by OpenAI models."""

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        import tiktoken

        self.name = encoding_name
        self._encoding = tiktoken.get_encoding(encoding_name)

    def count(self, text: str) -> int:
        return len(self._encoding.encode(text, disallowed_special=()))

    def offsets(self, text: str) -> list[int]:
        tokens = self._encoding.encode(text, disallowed_special=())
        _, raw = self._encoding.decode_with_offsets(tokens)
        # Tokens splitting a multi-byte character share its offset; keep one.
        result: list[int] = []
        for off in raw:
            if not result or off > result[-1]:
                result.append(off)
        return result


def get_tokenizer(name: str = "tiktoken") -> Tokenizer:
    """Return the tokenizer registered under *name*."""
    if name == "regex":
        return RegexTokenizer()
    if name == "tiktoken":
        return TiktokenTokenizer()
    raise ValueError(f"Unsupported tokenizer: {name!r}")
