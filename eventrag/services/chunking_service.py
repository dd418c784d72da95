"""
Chunking Service
Splits plain text into overlapping word windows sized by a token budget.
"""
import math
from typing import List

import structlog

from eventrag.exceptions import ConfigurationError

logger = structlog.get_logger()

# One token is approximated as three quarters of a word.
WORDS_PER_TOKEN = 0.75


class ChunkingService:
    """Deterministic fixed-size word-window chunker with overlap."""

    def __init__(self, chunk_size_tokens: int = 400, chunk_overlap_tokens: int = 100):
        self.words_per_chunk = math.floor(chunk_size_tokens * WORDS_PER_TOKEN)
        self.words_overlap = math.floor(chunk_overlap_tokens * WORDS_PER_TOKEN)

        if self.words_per_chunk < 1:
            raise ConfigurationError(
                "Chunk size must cover at least one word",
                {"chunk_size_tokens": chunk_size_tokens},
            )
        if self.words_overlap < 0:
            raise ConfigurationError(
                "Chunk overlap cannot be negative",
                {"chunk_overlap_tokens": chunk_overlap_tokens},
            )
        if self.step < 1:
            raise ConfigurationError(
                "Chunk overlap must be smaller than the chunk size",
                {
                    "words_per_chunk": self.words_per_chunk,
                    "words_overlap": self.words_overlap,
                },
            )

    @property
    def step(self) -> int:
        return self.words_per_chunk - self.words_overlap

    def chunk(self, text: str) -> List[str]:
        """
        Split text into overlapping chunks in reading order.

        Args:
            text: Plain text

        Returns:
            Chunk strings; the index of each is its position
        """
        words = text.split()
        chunks = []

        for start in range(0, len(words), self.step):
            end = start + self.words_per_chunk
            chunk = " ".join(words[start:end]).strip()
            if chunk:
                chunks.append(chunk)
            if end >= len(words):
                break

        logger.debug(
            "Chunking complete",
            words=len(words),
            chunks=len(chunks),
            words_per_chunk=self.words_per_chunk,
            words_overlap=self.words_overlap,
        )
        return chunks
