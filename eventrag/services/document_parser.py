"""
Document Parser Service
Converts an uploaded file's bytes into plain text, dispatching on the
file extension.
"""
import asyncio
import io
from typing import Callable, Dict, List

import structlog
from unstructured.documents.elements import Element
from unstructured.partition.docx import partition_docx
from unstructured.partition.pdf import partition_pdf

from eventrag.exceptions import ParseFailure
from eventrag.models.schemas import SourceFormat

logger = structlog.get_logger()


class DocumentParser:
    """Extracts text from PDF, DOCX and plain-text documents."""

    def __init__(self):
        self._handlers: Dict[SourceFormat, Callable[[bytes], str]] = {
            SourceFormat.PDF: self._parse_pdf,
            SourceFormat.DOCX: self._parse_docx,
            SourceFormat.TEXT: self._parse_text,
        }

    async def parse(self, buffer: bytes, filename: str) -> str:
        """
        Parse a document and return its text.

        Args:
            buffer: Raw file bytes
            filename: Original filename; its extension selects the decoder

        Returns:
            Extracted plain text

        Raises:
            UnsupportedFormat: extension is not pdf, docx or txt
            ParseFailure: the decoder rejected the file
        """
        source_format = SourceFormat.from_filename(filename)
        logger.info("Parsing document", filename=filename, file_type=source_format.value)

        handler = self._handlers[source_format]
        try:
            text = await asyncio.to_thread(handler, buffer)
        except Exception as e:
            logger.error("Failed to parse document", filename=filename, error=str(e))
            raise ParseFailure(filename, str(e) or type(e).__name__) from e

        logger.info("Document parsed successfully", filename=filename, characters=len(text))
        return text

    def _parse_pdf(self, buffer: bytes) -> str:
        # "fast" extracts the embedded text layer only, no OCR or layout models
        elements = partition_pdf(file=io.BytesIO(buffer), strategy="fast")
        return self._join_elements(elements)

    def _parse_docx(self, buffer: bytes) -> str:
        elements = partition_docx(file=io.BytesIO(buffer))
        return self._join_elements(elements)

    def _parse_text(self, buffer: bytes) -> str:
        return buffer.decode("utf-8")

    def _join_elements(self, elements: List[Element]) -> str:
        texts = [str(el.text).strip() for el in elements if getattr(el, "text", None)]
        return "\n\n".join(t for t in texts if t)
