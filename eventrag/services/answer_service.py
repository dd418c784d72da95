"""
Answer Service
Retrieves the chunks of an event most similar to a question and asks the
generation model for an answer grounded in them. Also classifies
attendee messages that may need organizer attention.
"""
import json
import re
from typing import List, Optional

import numpy as np
import structlog
from pydantic import ValidationError

from eventrag.exceptions import (
    ClassificationFormatError,
    EmbeddingFailure,
    RetrievalFailure,
    StoreFailure,
)
from eventrag.models.schemas import ChunkRecord, ChunkResult, Classification
from eventrag.services.embedding_service import EmbeddingService
from eventrag.services.event_store import EventStore
from eventrag.services.generation_service import GenerationService
from eventrag.services.prompts import (
    NO_INFORMATION_ANSWER,
    build_answer_prompt,
    build_classification_prompt,
)

logger = structlog.get_logger()

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def cosine_scores(query: List[float], vectors: List[List[float]]) -> np.ndarray:
    """Cosine similarity of ``query`` against each row; zero vectors score 0."""
    matrix = np.asarray(vectors, dtype=np.float64)
    q = np.asarray(query, dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    return np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)


class AnswerService:
    """Retrieval-augmented question answering over an event's corpus."""

    def __init__(
        self,
        embedder: EmbeddingService,
        generator: GenerationService,
        store: EventStore,
        top_k: int = 5,
        min_score: float = 0.0,
        max_words: int = 200,
    ):
        self.embedder = embedder
        self.generator = generator
        self.store = store
        self.top_k = top_k
        self.min_score = min_score
        self.max_words = max_words

    async def retrieve(
        self,
        event_id: str,
        question: str,
        top_k: Optional[int] = None,
    ) -> List[ChunkResult]:
        """
        Rank the event's chunks against the question.

        Args:
            event_id: Event whose corpus is searched
            question: Natural-language question
            top_k: Number of chunks to return (defaults to ``self.top_k``)

        Returns:
            Highest-scoring chunks, best first

        Raises:
            RetrievalFailure: corpus could not be loaded, the question
                could not be embedded, or no stored chunk has the
                question embedding's size
        """
        k = self.top_k if top_k is None else top_k

        try:
            corpus = await self.store.list_chunks(event_id)
        except StoreFailure as e:
            raise RetrievalFailure(f"Failed to load corpus: {e.message}", {"event_id": event_id}) from e

        if not corpus:
            logger.info("Empty corpus", event_id=event_id)
            return []

        try:
            query = await self.embedder.embed(question)
        except EmbeddingFailure as e:
            raise RetrievalFailure(
                f"Failed to embed question: {e.message}",
                {"event_id": event_id, "transient": e.transient},
            ) from e

        usable = self._matching_dimensions(corpus, len(query), event_id)
        if not usable:
            raise RetrievalFailure(
                "No stored chunk matches the query embedding size",
                {"event_id": event_id, "expected": len(query), "skipped": len(corpus)},
            )

        scores = cosine_scores(query, [chunk.embedding for chunk in usable])
        order = np.argsort(-scores, kind="stable")

        results = []
        for idx in order[:k]:
            score = float(scores[idx])
            if score < self.min_score:
                break
            chunk = usable[idx]
            results.append(ChunkResult(
                content=chunk.text,
                score=score,
                document_id=chunk.document_id,
                position=chunk.position,
                type=chunk.type,
            ))

        logger.info("Retrieval complete", event_id=event_id, candidates=len(usable), results=len(results))
        return results

    async def answer(self, event_id: str, question: str) -> str:
        """
        Answer a question from the event's documents.

        Returns the fixed no-information answer when nothing relevant is
        stored; model or store failures raise instead.
        """
        chunks = await self.retrieve(event_id, question)
        if not chunks:
            return NO_INFORMATION_ANSWER

        prompt = build_answer_prompt(question, chunks, max_words=self.max_words)
        return await self.generator.generate(prompt)

    async def classify_message(self, message: str) -> Classification:
        """
        Decide whether an attendee message needs organizer attention.

        Raises:
            GenerationFailure: the model call failed
            ClassificationFormatError: the model's output is not the expected JSON
        """
        raw = await self.generator.generate(build_classification_prompt(message), temperature=0.0)
        classification = self._parse_classification(raw)
        logger.info(
            "Message classified",
            should_flag=classification.should_flag,
            confidence=classification.confidence,
        )
        return classification

    def _parse_classification(self, raw: str) -> Classification:
        cleaned = _CODE_FENCE.sub("", raw.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise ClassificationFormatError(f"Classifier output is not JSON: {e}", raw) from e
        if not isinstance(data, dict):
            raise ClassificationFormatError("Classifier output is not a JSON object", raw)

        try:
            return Classification.model_validate(data)
        except ValidationError as e:
            raise ClassificationFormatError(f"Classifier output has an invalid shape: {e}", raw) from e

    def _matching_dimensions(
        self,
        corpus: List[ChunkRecord],
        dimensions: int,
        event_id: str,
    ) -> List[ChunkRecord]:
        usable = [chunk for chunk in corpus if len(chunk.embedding) == dimensions]
        skipped = len(corpus) - len(usable)
        if skipped:
            logger.warning(
                "Skipping chunks with mismatched embedding size",
                event_id=event_id,
                skipped=skipped,
                expected=dimensions,
            )
        return usable
