"""
Embedding Service
Generates vector embeddings with OpenAI's embedding models.
"""
from typing import List

import openai
import structlog
from openai import AsyncOpenAI

from eventrag.config import Settings
from eventrag.exceptions import EmbeddingFailure, EmbeddingTimeout
from eventrag.services.llm_client import translate_openai_error

logger = structlog.get_logger()


class EmbeddingService:
    """Turns a piece of text into a fixed-length vector."""

    def __init__(self, client: AsyncOpenAI, settings: Settings):
        self.client = client
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for a single text.

        No retry here; callers decide whether to retry a transient failure.

        Args:
            text: Text to embed

        Returns:
            Embedding vector of ``embedding_dimensions`` floats

        Raises:
            EmbeddingFailure: request failed or the vector has the wrong size
        """
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text,
                dimensions=self.dimensions,
            )
        except openai.OpenAIError as e:
            failure = translate_openai_error(e, EmbeddingFailure, EmbeddingTimeout, "generate embedding")
            logger.error("Embedding generation failed", error=str(failure), transient=failure.transient)
            raise failure from e

        if not response.data:
            raise EmbeddingFailure("Failed to generate embedding: empty response")

        embedding = list(response.data[0].embedding)
        if len(embedding) != self.dimensions:
            raise EmbeddingFailure(
                "Failed to generate embedding: unexpected vector size",
                details={"expected": self.dimensions, "received": len(embedding)},
            )
        return embedding
