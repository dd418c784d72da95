"""
FastAPI Application
Ingestion, question answering and message classification for events.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from supabase import acreate_client

from eventrag.config import Settings, get_settings
from eventrag.exceptions import (
    ClassificationFormatError,
    EventRAGError,
    ModelCallError,
    ModelTimeout,
    NotFound,
    ParseFailure,
    RetrievalFailure,
    StoreFailure,
    UnsupportedFormat,
)
from eventrag.models.schemas import Classification, ReprocessReport
from eventrag.services.answer_service import AnswerService
from eventrag.services.blob_store import BlobStore, SupabaseBlobStore
from eventrag.services.chunking_service import ChunkingService
from eventrag.services.document_parser import DocumentParser
from eventrag.services.embedding_service import EmbeddingService
from eventrag.services.event_store import EventStore, SupabaseEventStore
from eventrag.services.generation_service import GenerationService
from eventrag.services.ingestion_service import IngestionService
from eventrag.services.llm_client import build_openai_client
from eventrag.services.vision_service import VisionService

logger = structlog.get_logger()


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for terminal readability."""
    logging.basicConfig(format="%(message)s", level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


@dataclass
class Services:
    """Explicitly constructed collaborators shared by all requests."""
    ingestion: IngestionService
    answers: AnswerService
    store: EventStore
    documents: BlobStore
    indoor_maps: BlobStore


# ─────────────────────────────────────────────────────────────
# Request/Response Models
# ─────────────────────────────────────────────────────────────

class IngestDocumentResponse(BaseModel):
    document_id: str
    chunk_count: int


class IngestMapRequest(BaseModel):
    file_id: str


class IngestMapResponse(BaseModel):
    file_id: str
    chunk_count: int


class AskRequest(BaseModel):
    question: str


class AskResponse(BaseModel):
    answer: str


class ClassifyRequest(BaseModel):
    message: str


# ─────────────────────────────────────────────────────────────
# Wiring
# ─────────────────────────────────────────────────────────────

def build_chunker(settings: Settings) -> ChunkingService:
    return ChunkingService(settings.chunk_size_tokens, settings.chunk_overlap_tokens)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    if getattr(app.state, "services", None) is not None:
        yield
        return

    settings = get_settings()
    configure_logging(settings.log_level)

    # Invalid chunking parameters must stop the process here
    chunker = build_chunker(settings)

    openai_client = build_openai_client(settings)
    supabase = await acreate_client(settings.supabase_url, settings.supabase_service_key)

    store = SupabaseEventStore(supabase)
    embedder = EmbeddingService(openai_client, settings)
    app.state.services = Services(
        ingestion=IngestionService(
            parser=DocumentParser(),
            chunker=chunker,
            embedder=embedder,
            vision=VisionService(openai_client, settings),
            store=store,
            embed_max_attempts=settings.embed_max_attempts,
        ),
        answers=AnswerService(
            embedder=embedder,
            generator=GenerationService(openai_client, settings),
            store=store,
            top_k=settings.retrieval_top_k,
            min_score=settings.retrieval_min_score,
            max_words=settings.answer_max_words,
        ),
        store=store,
        documents=SupabaseBlobStore(supabase, settings.documents_bucket),
        indoor_maps=SupabaseBlobStore(supabase, settings.indoor_maps_bucket),
    )
    logger.info("Services initialized", environment=settings.environment)

    try:
        yield
    finally:
        await openai_client.close()
        app.state.services = None
        logger.info("Services closed")


def get_services(request: Request) -> Services:
    return request.app.state.services


# ─────────────────────────────────────────────────────────────
# Error Mapping
# ─────────────────────────────────────────────────────────────

def _status_for(error: EventRAGError) -> int:
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, UnsupportedFormat):
        return 415
    if isinstance(error, ParseFailure):
        return 422
    if isinstance(error, ModelTimeout):
        return 504
    if isinstance(error, (ModelCallError, ClassificationFormatError)):
        return 502
    if isinstance(error, (RetrievalFailure, StoreFailure)):
        return 503
    return 500


async def _handle_pipeline_error(request: Request, error: EventRAGError) -> JSONResponse:
    status_code = _status_for(error)
    logger.error("Request failed", path=request.url.path, status=status_code, error=str(error))
    return JSONResponse(status_code=status_code, content={"detail": str(error)})


# ─────────────────────────────────────────────────────────────
# Application
# ─────────────────────────────────────────────────────────────

def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create the API; pass ``services`` to skip building real clients."""
    app = FastAPI(
        title="Event Knowledge Service",
        description="Document and indoor-map ingestion with grounded question answering",
        version="1.0.0",
        lifespan=_lifespan,
    )
    app.state.services = services
    app.add_exception_handler(EventRAGError, _handle_pipeline_error)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.post(
        "/events/{event_id}/documents/{document_id}/ingest",
        response_model=IngestDocumentResponse,
    )
    async def ingest_document(
        event_id: str,
        document_id: str,
        services: Services = Depends(get_services),
    ):
        """Index a previously uploaded document of the event."""
        document = await services.store.get_document(event_id, document_id)
        if document is None:
            raise NotFound("Document not found", {"event_id": event_id, "document_id": document_id})

        buffer = await services.documents.read(document.file_id)
        chunk_count = await services.ingestion.ingest_document(
            event_id, document.id, buffer, document.filename
        )
        return IngestDocumentResponse(document_id=document.id, chunk_count=chunk_count)

    @app.post("/events/{event_id}/indoor-map/ingest", response_model=IngestMapResponse)
    async def ingest_indoor_map(
        event_id: str,
        request: IngestMapRequest,
        services: Services = Depends(get_services),
    ):
        """Index the event's indoor map, replacing any previous one."""
        info = await services.indoor_maps.stat(request.file_id)
        buffer = await services.indoor_maps.read(request.file_id)
        chunk_count = await services.ingestion.ingest_indoor_map(
            event_id, request.file_id, buffer, info.content_type or "image/png"
        )
        return IngestMapResponse(file_id=request.file_id, chunk_count=chunk_count)

    @app.post("/events/{event_id}/documents/reprocess", response_model=ReprocessReport)
    async def reprocess_documents(event_id: str, services: Services = Depends(get_services)):
        """Index every document of the event that is still unprocessed."""
        return await services.ingestion.reprocess_pending(event_id, services.documents)

    @app.post("/events/{event_id}/ask", response_model=AskResponse)
    async def ask(event_id: str, request: AskRequest, services: Services = Depends(get_services)):
        """Answer a question from the event's indexed knowledge."""
        answer = await services.answers.answer(event_id, request.question)
        return AskResponse(answer=answer)

    @app.post("/classify", response_model=Classification)
    async def classify(request: ClassifyRequest, services: Services = Depends(get_services)):
        """Decide whether a message should be flagged for the organizers."""
        return await services.answers.classify_message(request.message)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("eventrag.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
