"""Token-bounded text chunking.

Chunks are exact character slices of the source text cut on token
boundaries, so stitching them back together (dropping the overlap) yields
the original text.
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_text_splitters import TextSplitter

from docqa.ingestion.models import Chunk, SourceDocument, source_key
from docqa.tokenizer import RegexTokenizer, Tokenizer

logger = logging.getLogger(__name__)


class TokenWindowSplitter(TextSplitter):
    """Sliding token window over the text.

    Parameters
    ----------
    tokenizer:
        Supplies token offsets and counts.
    chunk_size:
        Maximum number of tokens per chunk.
    chunk_overlap:
        Number of tokens shared by consecutive chunks.
    """

    def __init__(
        self,
        tokenizer: Tokenizer | None = None,
        chunk_size: int = 512,
        chunk_overlap: int = 64,
        **kwargs: Any,
    ) -> None:
        if chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})"
            )
        self._tokenizer = tokenizer or RegexTokenizer()
        kwargs.setdefault("strip_whitespace", False)
        super().__init__(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=self._tokenizer.count,
            **kwargs,
        )

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    def split_text(self, text: str) -> list[str]:
        return [text[start:end] for start, end, _ in self.windows(text)]

    def windows(self, text: str) -> list[tuple[int, int, int]]:
        """Return ``(start, end, token_count)`` for every chunk of *text*."""
        if not text.strip():
            return []

        offsets = self._tokenizer.offsets(text)
        n = len(offsets)
        if n == 0:
            return []

        def boundary(i: int) -> int:
            # First chunk absorbs leading text, last chunk absorbs the tail.
            if i <= 0:
                return 0
            if i >= n:
                return len(text)
            return offsets[i]

        result: list[tuple[int, int, int]] = []
        i = 0
        while i < n:
            j = min(i + self._chunk_size, n)
            start = boundary(i)
            count = self._tokenizer.count(text[start : boundary(j)])
            # Re-tokenising a slice can differ from the window size; shrink.
            while count > self._chunk_size and j > i + 1:
                j -= 1
                count = self._tokenizer.count(text[start : boundary(j)])
            result.append((start, boundary(j), count))
            if j >= n:
                break
            i = max(j - self._chunk_overlap, i + 1)
        return result

    def chunk_document(self, document: SourceDocument) -> list[Chunk]:
        """Split *document* into :class:`Chunk` objects with stable ids."""
        key = source_key(document.source)
        chunks = [
            Chunk(
                chunk_id=f"{key}:{idx}",
                source=document.source,
                chunk_index=idx,
                text=document.text[start:end],
                start=start,
                end=end,
                token_count=count,
                page=document.page_at(start),
                content_hash=document.content_hash,
            )
            for idx, (start, end, count) in enumerate(self.windows(document.text))
        ]
        logger.debug("Split %s into %d chunks", document.source, len(chunks))
        return chunks


def chunk_documents(documents: list[SourceDocument], splitter: TokenWindowSplitter) -> list[Chunk]:
    """Split every document in *documents*, preserving document order."""
    chunks: list[Chunk] = []
    for doc in documents:
        chunks.extend(splitter.chunk_document(doc))
    return chunks
