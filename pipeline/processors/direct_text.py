import io
import logging
from typing import Optional

from pypdf import PdfReader

from pipeline.core.config import DEFAULT_THRESHOLDS, PipelineThresholds
from pipeline.models.dto import Document, ExtractionMethod, PageResult

logger = logging.getLogger(__name__)


def extract_embedded_text(data: bytes) -> str:
    """Concatenate the machine-encoded text of every PDF page."""
    reader = PdfReader(io.BytesIO(data))
    parts = []
    for page in reader.pages:
        parts.append(page.extract_text() or "")
    return "\n".join(parts).strip()


class DirectTextExtractor:
    """Fast path for PDFs that already carry a text layer."""

    def __init__(self, thresholds: PipelineThresholds = DEFAULT_THRESHOLDS):
        self.thresholds = thresholds

    def try_extract(self, document: Document) -> Optional[PageResult]:
        """Return the embedded text as a single PageResult, or None.

        Parse errors are treated exactly like a document without text.
        """
        if not document.is_pdf:
            return None

        try:
            text = extract_embedded_text(document.data)
        except Exception:
            logger.debug(
                "Direct text extraction failed, falling back to OCR",
                extra={"document_id": document.document_id},
                exc_info=True,
            )
            return None

        if len(text) <= self.thresholds.min_direct_text_chars:
            logger.debug(
                f"Embedded text too short ({len(text)} chars), falling back to OCR",
                extra={"document_id": document.document_id},
            )
            return None

        return PageResult(
            page_index=0,
            text=text,
            confidence=self.thresholds.direct_extraction_confidence,
            method=ExtractionMethod.DIRECT,
        )
