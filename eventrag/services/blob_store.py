"""
Blob Store
Reads original uploaded files and their stored metadata from Supabase Storage.
"""
import posixpath
from abc import ABC, abstractmethod

import httpx
import structlog
from supabase import AsyncClient, StorageException

from eventrag.exceptions import NotFound, StoreFailure
from eventrag.models.schemas import BlobInfo

logger = structlog.get_logger()


class BlobStore(ABC):
    """Read-only access to stored files, addressed by an opaque file id."""

    @abstractmethod
    async def read(self, file_id: str) -> bytes:
        """Return the complete contents of the file."""
        ...

    @abstractmethod
    async def stat(self, file_id: str) -> BlobInfo:
        """Return the stored metadata of the file."""
        ...


class SupabaseBlobStore(BlobStore):
    """Blob store over one Supabase Storage bucket; file ids are object paths."""

    def __init__(self, client: AsyncClient, bucket: str):
        self.client = client
        self.bucket = bucket

    async def read(self, file_id: str) -> bytes:
        logger.info("Downloading file", bucket=self.bucket, file_id=file_id)
        try:
            data = await self.client.storage.from_(self.bucket).download(file_id)
        except StorageException as e:
            raise self._translate(e, file_id) from e
        except httpx.HTTPError as e:
            raise StoreFailure(f"Download failed: {e}", {"file_id": file_id}) from e

        logger.info("File downloaded", file_id=file_id, size_bytes=len(data))
        return data

    async def stat(self, file_id: str) -> BlobInfo:
        folder, name = posixpath.split(file_id)
        try:
            entries = await self.client.storage.from_(self.bucket).list(folder, {"search": name})
        except StorageException as e:
            raise self._translate(e, file_id) from e
        except httpx.HTTPError as e:
            raise StoreFailure(f"Metadata lookup failed: {e}", {"file_id": file_id}) from e

        for entry in entries:
            if entry.get("name") == name:
                metadata = entry.get("metadata") or {}
                return BlobInfo(
                    file_id=file_id,
                    content_type=metadata.get("mimetype"),
                    size=metadata.get("size"),
                    uploaded_at=entry.get("created_at"),
                )
        raise NotFound("File not found", {"bucket": self.bucket, "file_id": file_id})

    def _translate(self, error: StorageException, file_id: str) -> Exception:
        details = {"bucket": self.bucket, "file_id": file_id}
        if "not found" in str(error).lower():
            return NotFound("File not found", details)
        return StoreFailure(f"Storage request failed: {error}", details)
