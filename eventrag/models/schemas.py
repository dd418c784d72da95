"""
Data models for the event knowledge pipeline.
"""
import os
from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from eventrag.exceptions import UnsupportedFormat

INDOOR_MAP_TYPE = "indoor_map"


class SourceFormat(str, Enum):
    """Document formats the parser accepts, keyed by file extension."""
    PDF = "pdf"
    DOCX = "docx"
    TEXT = "txt"

    @classmethod
    def from_filename(cls, filename: str) -> "SourceFormat":
        ext = os.path.splitext(filename)[1].lstrip(".").lower()
        try:
            return cls(ext)
        except ValueError:
            raise UnsupportedFormat(ext, filename) from None


class SourceKind(str, Enum):
    DOCUMENT = "document"
    INDOOR_MAP = "indoor_map"


class Document(BaseModel):
    """An uploaded source file belonging to an event."""
    id: str
    event_id: str
    filename: str
    content_type: Optional[str] = None
    file_id: str
    processed_at: Optional[datetime] = None
    chunk_count: Optional[int] = None


class IndoorMap(BaseModel):
    """The (single) indoor map image of an event."""
    event_id: str
    file_id: str
    content_type: Optional[str] = None
    indexed_at: Optional[datetime] = None


class ChunkRecord(BaseModel):
    """A persisted, retrievable span of source text with its embedding."""
    id: Optional[str] = None
    event_id: str
    document_id: str
    type: Optional[Literal["indoor_map"]] = None
    text: str
    embedding: List[float]
    position: int = Field(ge=0)
    created_at: datetime


class ChunkBatch(BaseModel):
    """All chunk writes staged by one ingestion run, committed as a unit."""
    event_id: str
    kind: SourceKind
    source_id: str
    committed_at: datetime
    content_type: Optional[str] = None  # indoor maps only
    chunks: List[ChunkRecord] = Field(default_factory=list)


class ChunkResult(BaseModel):
    """A chunk returned from retrieval together with its similarity score."""
    content: str
    score: float
    document_id: str
    position: int
    type: Optional[str] = None


class Classification(BaseModel):
    """Whether an attendee message needs organizer attention."""
    should_flag: bool
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class ReprocessReport(BaseModel):
    """Outcome of re-ingesting every unprocessed document of an event."""
    event_id: str
    processed: Dict[str, int] = Field(default_factory=dict)
    failed: Dict[str, str] = Field(default_factory=dict)


class BlobInfo(BaseModel):
    """Stored metadata of a blob-store file."""
    file_id: str
    content_type: Optional[str] = None
    size: Optional[int] = None
    uploaded_at: Optional[datetime] = None
