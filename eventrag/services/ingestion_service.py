"""
Ingestion Service
Coordinates parse -> chunk -> embed -> commit for event documents and
indoor maps.

Nothing is written until every chunk of a run has been embedded; the
chunks and the source's metadata update are then committed together, so
a failed run leaves the store untouched and can simply be retried.
"""
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from eventrag.exceptions import EventRAGError, ModelCallError
from eventrag.models.schemas import (
    INDOOR_MAP_TYPE,
    ChunkBatch,
    ChunkRecord,
    ReprocessReport,
    SourceKind,
)
from eventrag.services.blob_store import BlobStore
from eventrag.services.chunking_service import ChunkingService
from eventrag.services.document_parser import DocumentParser
from eventrag.services.embedding_service import EmbeddingService
from eventrag.services.event_store import EventStore
from eventrag.services.vision_service import VisionService

logger = structlog.get_logger()

INDOOR_MAP_MARKER = "[INDOOR MAP DESCRIPTION]"


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, ModelCallError) and error.transient


class IngestionService:
    """Turns uploaded sources into committed, embedded chunks."""

    def __init__(
        self,
        parser: DocumentParser,
        chunker: ChunkingService,
        embedder: EmbeddingService,
        vision: VisionService,
        store: EventStore,
        embed_max_attempts: int = 3,
        retry_wait: Optional[wait_base] = None,
    ):
        self.parser = parser
        self.chunker = chunker
        self.embedder = embedder
        self.vision = vision
        self.store = store
        self.embed_max_attempts = embed_max_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    async def ingest_document(
        self,
        event_id: str,
        document_id: str,
        buffer: bytes,
        filename: str,
    ) -> int:
        """
        Parse, chunk, embed and store a document.

        Args:
            event_id: Owning event
            document_id: Document record to index
            buffer: Raw file bytes
            filename: Original filename (selects the parser)

        Returns:
            Number of chunks stored
        """
        log = logger.bind(event_id=event_id, document_id=document_id, filename=filename)
        log.info("Stage: Processing document")

        try:
            text = await self.parser.parse(buffer, filename)
            chunks = self.chunker.chunk(text)
            log.info("Stage: Document chunked", characters=len(text), chunks=len(chunks))

            records = await self._embed_chunks(event_id, document_id, chunks, chunk_type=None)
            count = await self.store.commit_batch(ChunkBatch(
                event_id=event_id,
                kind=SourceKind.DOCUMENT,
                source_id=document_id,
                committed_at=datetime.now(timezone.utc),
                chunks=records,
            ))
        except EventRAGError as e:
            e.details.setdefault("document_id", document_id)
            e.details.setdefault("filename", filename)
            log.error("Stage: Document ingestion failed", error=str(e))
            raise

        log.info("Stage: Document ingestion complete", chunk_count=count)
        return count

    async def ingest_indoor_map(
        self,
        event_id: str,
        file_id: str,
        buffer: bytes,
        mime_type: str,
    ) -> int:
        """
        Describe, chunk, embed and store an indoor map image.

        The event's previous indoor-map chunks are replaced by this run.

        Returns:
            Number of chunks stored
        """
        log = logger.bind(event_id=event_id, file_id=file_id, mime_type=mime_type)
        log.info("Stage: Processing indoor map")

        try:
            description = await self.vision.describe_image(buffer, mime_type)
            chunks = self.chunker.chunk(description)
            log.info("Stage: Map description chunked", characters=len(description), chunks=len(chunks))

            records = await self._embed_chunks(event_id, file_id, chunks, chunk_type=INDOOR_MAP_TYPE)
            count = await self.store.commit_batch(ChunkBatch(
                event_id=event_id,
                kind=SourceKind.INDOOR_MAP,
                source_id=file_id,
                content_type=mime_type,
                committed_at=datetime.now(timezone.utc),
                chunks=records,
            ))
        except EventRAGError as e:
            e.details.setdefault("file_id", file_id)
            log.error("Stage: Indoor map ingestion failed", error=str(e))
            raise

        log.info("Stage: Indoor map indexed", chunk_count=count)
        return count

    async def reprocess_pending(self, event_id: str, blobs: BlobStore) -> ReprocessReport:
        """
        Ingest every document of the event that has no processed timestamp.

        One failing document does not stop the others. Running this again
        after a fully successful pass does nothing.
        """
        pending = await self.store.list_pending_documents(event_id)
        report = ReprocessReport(event_id=event_id)
        logger.info("Reprocessing pending documents", event_id=event_id, pending=len(pending))

        for document in pending:
            try:
                buffer = await blobs.read(document.file_id)
                report.processed[document.id] = await self.ingest_document(
                    event_id, document.id, buffer, document.filename
                )
            except EventRAGError as e:
                report.failed[document.id] = e.message
                logger.warning(
                    "Skipping document after failure",
                    event_id=event_id,
                    document_id=document.id,
                    error=str(e),
                )

        logger.info(
            "Reprocessing finished",
            event_id=event_id,
            processed=len(report.processed),
            failed=len(report.failed),
        )
        return report

    async def _embed_chunks(
        self,
        event_id: str,
        source_id: str,
        chunks: List[str],
        chunk_type: Optional[str],
    ) -> List[ChunkRecord]:
        # One in-flight model call per run; positions follow chunk order.
        records = []
        for position, text in enumerate(chunks):
            embedding = await self._embed_with_retry(text)
            if chunk_type == INDOOR_MAP_TYPE:
                text = f"{INDOOR_MAP_MARKER} {text}"
            records.append(ChunkRecord(
                event_id=event_id,
                document_id=source_id,
                type=chunk_type,
                text=text,
                embedding=embedding,
                position=position,
                created_at=datetime.now(timezone.utc),
            ))
            logger.debug("Embedded chunk", source_id=source_id, chunk=position + 1, total=len(chunks))
        return records

    async def _embed_with_retry(self, text: str) -> List[float]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.embed_max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_transient),
            reraise=True,
        ):
            with attempt:
                return await self.embedder.embed(text)
