"""
Exception hierarchy for the event knowledge pipeline.

Every error carries a human-readable message plus a details dict that
the ingestion layer enriches with the failing source (document id,
filename) before re-raising.
"""
from typing import Any, Dict, Optional


class EventRAGError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(EventRAGError):
    """Invalid static configuration. Raised at startup, never at request time."""


class UnsupportedFormat(EventRAGError):
    """The file extension is not one the parser understands."""

    def __init__(self, extension: str, filename: Optional[str] = None) -> None:
        details: Dict[str, Any] = {"extension": extension}
        if filename:
            details["filename"] = filename
        super().__init__(f"Unsupported file type: {extension or '<none>'}", details)
        self.extension = extension


class ParseFailure(EventRAGError):
    """The document could not be decoded."""

    def __init__(self, filename: str, detail: str) -> None:
        super().__init__(f"Failed to parse document: {detail}", {"filename": filename})
        self.filename = filename


class ModelCallError(EventRAGError):
    """
    An external model call failed.

    ``transient`` is True for failures worth retrying with backoff
    (timeouts, connection errors, rate limits, upstream 5xx).
    """

    def __init__(
        self,
        message: str,
        transient: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.transient = transient


class ModelTimeout(ModelCallError):
    """An external model call exceeded its timeout."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, transient=True, details=details)


class EmbeddingFailure(ModelCallError):
    """Embedding request failed or returned an unusable vector."""


class DescriptionFailure(ModelCallError):
    """Image description request failed."""


class GenerationFailure(ModelCallError):
    """Text generation request failed."""


class EmbeddingTimeout(EmbeddingFailure, ModelTimeout):
    pass


class DescriptionTimeout(DescriptionFailure, ModelTimeout):
    pass


class GenerationTimeout(GenerationFailure, ModelTimeout):
    pass


class ClassificationFormatError(EventRAGError):
    """The classifier answered, but not with the expected JSON structure."""

    def __init__(self, message: str, raw_output: str) -> None:
        super().__init__(message, {"raw_output": raw_output[:500]})
        self.raw_output = raw_output


class StoreFailure(EventRAGError):
    """A durable store or blob store call failed."""


class RetrievalFailure(EventRAGError):
    """The corpus or the question embedding could not be obtained."""


class NotFound(EventRAGError):
    """A requested record or blob does not exist."""
