"""
Event Store
Durable per-event storage for documents, indoor maps and chunks.

Chunk writes of one ingestion run are committed through a single
Postgres function (``commit_chunk_batch``), which replaces the source's
previous chunks and updates its metadata in one transaction.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
import structlog
from supabase import AsyncClient, PostgrestAPIError

from eventrag.exceptions import NotFound, StoreFailure
from eventrag.models.schemas import ChunkBatch, ChunkRecord, Document, IndoorMap

logger = structlog.get_logger()


class EventStore(ABC):
    """Backend-agnostic interface of the per-event store."""

    @abstractmethod
    async def get_document(self, event_id: str, document_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def list_pending_documents(self, event_id: str) -> List[Document]:
        """Documents of the event that have never been processed."""
        ...

    @abstractmethod
    async def get_indoor_map(self, event_id: str) -> Optional[IndoorMap]:
        ...

    @abstractmethod
    async def list_chunks(self, event_id: str) -> List[ChunkRecord]:
        """Full chunk corpus of the event, ordered by source and position."""
        ...

    @abstractmethod
    async def commit_batch(self, batch: ChunkBatch) -> int:
        """
        Atomically replace a source's chunks and update its metadata.

        For documents, previous chunks of ``batch.source_id`` are removed
        and ``processed_at``/``chunk_count`` are set. For indoor maps,
        every previous indoor-map chunk of the event is removed and the
        event's IndoorMap record is upserted with ``indexed_at``.

        Returns:
            Number of chunks written

        Raises:
            NotFound: the target document does not exist
            StoreFailure: the write failed; nothing was persisted
        """
        ...


class SupabaseEventStore(EventStore):
    """Event store backed by Supabase (PostgREST + a Postgres RPC)."""

    PAGE_SIZE = 1000
    CHUNK_COLUMNS = "id, event_id, document_id, type, text, embedding, position, created_at"

    def __init__(self, client: AsyncClient):
        self.client = client

    async def get_document(self, event_id: str, document_id: str) -> Optional[Document]:
        rows = await self._select(
            self.client.table("documents")
            .select("*")
            .eq("event_id", event_id)
            .eq("id", document_id)
        )
        return Document.model_validate(rows[0]) if rows else None

    async def list_pending_documents(self, event_id: str) -> List[Document]:
        rows = await self._select(
            self.client.table("documents")
            .select("*")
            .eq("event_id", event_id)
            .is_("processed_at", "null")
            .order("created_at")
        )
        return [Document.model_validate(row) for row in rows]

    async def get_indoor_map(self, event_id: str) -> Optional[IndoorMap]:
        rows = await self._select(
            self.client.table("indoor_maps").select("*").eq("event_id", event_id)
        )
        return IndoorMap.model_validate(rows[0]) if rows else None

    async def list_chunks(self, event_id: str) -> List[ChunkRecord]:
        chunks: List[ChunkRecord] = []
        start = 0
        # PostgREST caps rows per response, so page through the corpus
        while True:
            rows = await self._select(
                self.client.table("chunks")
                .select(self.CHUNK_COLUMNS)
                .eq("event_id", event_id)
                .order("document_id")
                .order("position")
                .range(start, start + self.PAGE_SIZE - 1)
            )
            chunks.extend(ChunkRecord.model_validate(row) for row in rows)
            if len(rows) < self.PAGE_SIZE:
                break
            start += self.PAGE_SIZE

        logger.info("Corpus loaded", event_id=event_id, chunks=len(chunks))
        return chunks

    async def commit_batch(self, batch: ChunkBatch) -> int:
        params = {
            "p_event_id": batch.event_id,
            "p_kind": batch.kind.value,
            "p_source_id": batch.source_id,
            "p_content_type": batch.content_type,
            "p_committed_at": batch.committed_at.isoformat(),
            "p_chunks": [
                chunk.model_dump(mode="json", exclude={"id", "event_id"})
                for chunk in batch.chunks
            ],
        }

        logger.info(
            "Committing chunk batch",
            event_id=batch.event_id,
            kind=batch.kind.value,
            source_id=batch.source_id,
            count=len(batch.chunks),
        )
        try:
            result = await self.client.rpc("commit_chunk_batch", params).execute()
        except PostgrestAPIError as e:
            # P0002 is raised by the function when the target row is missing
            if e.code == "P0002":
                raise NotFound(e.message or "Record not found", {"source_id": batch.source_id}) from e
            raise StoreFailure(f"Chunk batch commit failed: {e.message}", {"code": e.code}) from e
        except httpx.HTTPError as e:
            raise StoreFailure(f"Chunk batch commit failed: {e}") from e

        return int(result.data) if result.data is not None else len(batch.chunks)

    async def _select(self, query: Any) -> List[Dict[str, Any]]:
        try:
            result = await query.execute()
        except PostgrestAPIError as e:
            raise StoreFailure(f"Store query failed: {e.message}", {"code": e.code}) from e
        except httpx.HTTPError as e:
            raise StoreFailure(f"Store query failed: {e}") from e
        return result.data or []
