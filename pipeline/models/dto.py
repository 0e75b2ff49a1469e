"""
Typed contracts passed between the pipeline stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Optional

import numpy as np

from pipeline.utils.file_detection import detect_file_type_from_bytes


class ExtractionMethod(str, Enum):
    DIRECT = "direct_extraction"
    OCR = "ocr"
    FAILED = "failed"


class CorrectionStatus(str, Enum):
    """Outcome of the AI correction stage for one document."""

    NOT_REQUESTED = "not_requested"
    SKIPPED = "skipped"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class Document:
    """Source file loaded from storage. Never mutated during a run."""

    document_id: str
    data: bytes
    media_type: str = "application/octet-stream"
    filename: str = ""

    @property
    def detected_type(self) -> Optional[str]:
        detected = detect_file_type_from_bytes(self.data[:12])
        return detected[0] if detected else None

    @property
    def is_pdf(self) -> bool:
        if self.detected_type == "pdf":
            return True
        if self.media_type == "application/pdf":
            return True
        return PurePath(self.filename).suffix.lower() == ".pdf"


@dataclass
class PageImage:
    """One rasterized page; pixels are RGB or grayscale uint8."""

    page_index: int
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class EnhancementVariant:
    label: str
    pixels: np.ndarray


@dataclass(frozen=True)
class WordBox:
    text: str
    confidence: float
    bbox: tuple[int, int, int, int]  # left, top, width, height


@dataclass(frozen=True)
class OCRResult:
    """Recognition output for one variant; confidence is in [0, 1]."""

    text: str
    confidence: float
    words: tuple[WordBox, ...] = ()
    source_variant: str = "original"


@dataclass
class PageResult:
    page_index: int
    text: str
    confidence: float
    method: ExtractionMethod
    source_variant: Optional[str] = None
    words: tuple[WordBox, ...] = ()
    error: Optional[str] = None

    @classmethod
    def from_ocr(cls, page_index: int, result: OCRResult) -> PageResult:
        return cls(
            page_index=page_index,
            text=result.text,
            confidence=result.confidence,
            method=ExtractionMethod.OCR,
            source_variant=result.source_variant,
            words=result.words,
        )

    @classmethod
    def failed(cls, page_index: int, error: str) -> PageResult:
        return cls(
            page_index=page_index,
            text="",
            confidence=0.0,
            method=ExtractionMethod.FAILED,
            error=error,
        )


@dataclass
class ProcessingOptions:
    language: str = "eng"
    enhance_with_ai: bool = False
    extract_original: bool = False
    confidence_threshold: Optional[float] = None
    document_type_hint: Optional[str] = None


@dataclass
class DocumentResult:
    """Aggregate of all pages of one document."""

    text: str
    original_text: str
    confidence: float
    page_count: int
    method: ExtractionMethod
    pages: list[PageResult] = field(default_factory=list)
    enhanced_text: Optional[str] = None
    ai_enhanced: bool = False
    correction_status: CorrectionStatus = CorrectionStatus.NOT_REQUESTED
    failed_pages: list[int] = field(default_factory=list)
    detected_language: str = "eng"
    document_type: Optional[str] = None

    def meets_threshold(self, threshold: float) -> bool:
        return self.confidence >= threshold

    def to_record(self) -> dict:
        """Serializable summary persisted for later operations."""
        return {
            "text": self.text,
            "original_text": self.original_text,
            "enhanced_text": self.enhanced_text,
            "confidence": self.confidence,
            "page_count": self.page_count,
            "method": self.method.value,
            "ai_enhanced": self.ai_enhanced,
            "correction_status": self.correction_status.value,
            "failed_pages": list(self.failed_pages),
            "detected_language": self.detected_language,
            "document_type": self.document_type,
        }
