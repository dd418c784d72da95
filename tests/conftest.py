"""
Shared Test Fixtures for the Event Knowledge Pipeline

This file contains:
- In-memory fakes for the event store and blob store
- Deterministic fakes for the embedding, vision and generation models
- Service and FastAPI TestClient fixtures wired with those fakes
"""
import asyncio
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest
from fastapi.testclient import TestClient
from tenacity import wait_none

from eventrag.config import Settings
from eventrag.exceptions import EmbeddingFailure, NotFound
from eventrag.main import Services, create_app
from eventrag.models.schemas import (
    INDOOR_MAP_TYPE,
    BlobInfo,
    ChunkBatch,
    ChunkRecord,
    Document,
    IndoorMap,
    SourceKind,
)
from eventrag.services.answer_service import AnswerService
from eventrag.services.blob_store import BlobStore
from eventrag.services.chunking_service import ChunkingService
from eventrag.services.document_parser import DocumentParser
from eventrag.services.event_store import EventStore
from eventrag.services.ingestion_service import IngestionService

EVENT_ID = "event-123"
FAKE_DIMENSIONS = 64


# ═══════════════════════════════════════════════════════════════
# STORE FAKES
# ═══════════════════════════════════════════════════════════════

class InMemoryEventStore(EventStore):
    """Event store with the same commit semantics as commit_chunk_batch."""

    def __init__(self):
        self.documents: Dict[Tuple[str, str], Document] = {}
        self.indoor_maps: Dict[str, IndoorMap] = {}
        self.chunks: List[ChunkRecord] = []
        self.commits: List[ChunkBatch] = []
        self._lock = asyncio.Lock()

    def add_document(self, event_id: str, document_id: str, filename: str, file_id: Optional[str] = None) -> Document:
        document = Document(
            id=document_id,
            event_id=event_id,
            filename=filename,
            file_id=file_id or f"{event_id}/{filename}",
        )
        self.documents[(event_id, document_id)] = document
        return document

    def chunks_for(self, event_id: str, document_id: str) -> List[ChunkRecord]:
        return [c for c in self.chunks if c.event_id == event_id and c.document_id == document_id]

    async def get_document(self, event_id: str, document_id: str) -> Optional[Document]:
        return self.documents.get((event_id, document_id))

    async def list_pending_documents(self, event_id: str) -> List[Document]:
        return [
            d for (eid, _), d in self.documents.items()
            if eid == event_id and d.processed_at is None
        ]

    async def get_indoor_map(self, event_id: str) -> Optional[IndoorMap]:
        return self.indoor_maps.get(event_id)

    async def list_chunks(self, event_id: str) -> List[ChunkRecord]:
        corpus = [c for c in self.chunks if c.event_id == event_id]
        return sorted(corpus, key=lambda c: (c.document_id, c.position))

    async def commit_batch(self, batch: ChunkBatch) -> int:
        async with self._lock:
            if batch.kind == SourceKind.DOCUMENT:
                key = (batch.event_id, batch.source_id)
                if key not in self.documents:
                    raise NotFound("Document not found", {"source_id": batch.source_id})
                self.chunks = [
                    c for c in self.chunks
                    if not (c.event_id == batch.event_id and c.document_id == batch.source_id and c.type is None)
                ]
                self.chunks.extend(batch.chunks)
                self.documents[key] = self.documents[key].model_copy(update={
                    "processed_at": batch.committed_at,
                    "chunk_count": len(batch.chunks),
                })
            else:
                self.chunks = [
                    c for c in self.chunks
                    if not (c.event_id == batch.event_id and c.type == INDOOR_MAP_TYPE)
                ]
                self.chunks.extend(batch.chunks)
                self.indoor_maps[batch.event_id] = IndoorMap(
                    event_id=batch.event_id,
                    file_id=batch.source_id,
                    content_type=batch.content_type,
                    indexed_at=batch.committed_at,
                )
            self.commits.append(batch)
            return len(batch.chunks)


class InMemoryBlobStore(BlobStore):
    def __init__(self):
        self.files: Dict[str, Tuple[bytes, str]] = {}

    def put(self, file_id: str, data: bytes, content_type: str) -> None:
        self.files[file_id] = (data, content_type)

    async def read(self, file_id: str) -> bytes:
        if file_id not in self.files:
            raise NotFound("File not found", {"file_id": file_id})
        return self.files[file_id][0]

    async def stat(self, file_id: str) -> BlobInfo:
        if file_id not in self.files:
            raise NotFound("File not found", {"file_id": file_id})
        data, content_type = self.files[file_id]
        return BlobInfo(
            file_id=file_id,
            content_type=content_type,
            size=len(data),
            uploaded_at=datetime(2026, 1, 28, tzinfo=timezone.utc),
        )


# ═══════════════════════════════════════════════════════════════
# MODEL FAKES
# ═══════════════════════════════════════════════════════════════

def bag_of_words_vector(text: str, dimensions: int = FAKE_DIMENSIONS) -> List[float]:
    """Deterministic embedding: word counts hashed into a fixed number of buckets."""
    vector = [0.0] * dimensions
    for word, count in Counter(text.lower().split()).items():
        bucket = sum(ord(ch) for ch in word.strip(".,?!:;\"'")) % dimensions
        vector[bucket] += count
    return vector


class FakeEmbeddingService:
    """Returns bag-of-words vectors; can be told to fail on specific calls."""

    def __init__(self, failures: Optional[Dict[int, Exception]] = None):
        self.failures = failures or {}
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        failure = self.failures.get(len(self.calls))
        if failure is not None:
            raise failure
        return bag_of_words_vector(text)


class FakeVisionService:
    def __init__(self, description: str = "The main hall is next to the registration desk."):
        self.description = description
        self.calls: List[Tuple[bytes, str]] = []

    async def describe_image(self, image_bytes: bytes, mime_type: str) -> str:
        self.calls.append((image_bytes, mime_type))
        return self.description


class FakeGenerationService:
    """Returns a canned reply, or the result of a callable applied to the prompt."""

    def __init__(self, reply: Union[str, Callable[[str], str], Exception] = "Generated answer"):
        self.reply = reply
        self.prompts: List[str] = []

    async def generate(self, prompt: str, temperature: float = 0.2) -> str:
        self.prompts.append(prompt)
        if isinstance(self.reply, Exception):
            raise self.reply
        if callable(self.reply):
            return self.reply(prompt)
        return self.reply


# ═══════════════════════════════════════════════════════════════
# SERVICE FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key="test-key",
        supabase_url="https://test.supabase.co",
        supabase_service_key="test-service-key",
        embedding_dimensions=FAKE_DIMENSIONS,
    )


@pytest.fixture
def event_id() -> str:
    return EVENT_ID


@pytest.fixture
def store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def embedder() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def vision() -> FakeVisionService:
    return FakeVisionService()


@pytest.fixture
def generator() -> FakeGenerationService:
    return FakeGenerationService()


@pytest.fixture
def small_chunker() -> ChunkingService:
    """8/4 tokens -> 6-word windows advancing by 3 words."""
    return ChunkingService(chunk_size_tokens=8, chunk_overlap_tokens=4)


@pytest.fixture
def ingestion_service(store, embedder, vision, small_chunker) -> IngestionService:
    return IngestionService(
        parser=DocumentParser(),
        chunker=small_chunker,
        embedder=embedder,
        vision=vision,
        store=store,
        embed_max_attempts=3,
        retry_wait=wait_none(),
    )


@pytest.fixture
def answer_service(store, embedder, generator) -> AnswerService:
    return AnswerService(embedder=embedder, generator=generator, store=store, top_k=3)


@pytest.fixture
def services(ingestion_service, answer_service, store, blobs) -> Services:
    return Services(
        ingestion=ingestion_service,
        answers=answer_service,
        store=store,
        documents=blobs,
        indoor_maps=blobs,
    )


@pytest.fixture
def client(services) -> TestClient:
    """FastAPI test client wired with in-memory fakes."""
    with TestClient(create_app(services)) as c:
        yield c


# ═══════════════════════════════════════════════════════════════
# TEST DATA FIXTURES
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def schedule_text() -> str:
    return (
        "Registration opens at eight in the morning at the north entrance. "
        "The keynote starts at nine in the main hall. "
        "Lunch is served at noon on the second floor terrace. "
        "Workshops run all afternoon in rooms A through D."
    )


@pytest.fixture
def make_failure() -> Callable[..., EmbeddingFailure]:
    def _make(transient: bool = False) -> EmbeddingFailure:
        return EmbeddingFailure("Failed to generate embedding: upstream error", transient=transient)
    return _make
