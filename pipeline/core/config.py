from dataclasses import dataclass

# =============================================================================
# Pipeline Thresholds
# =============================================================================


@dataclass(frozen=True)
class PipelineThresholds:
    """Numeric heuristics shared by the OCR and correction stages.

    Attributes:
        early_exit_confidence: Stop trying variants once a result is above this
        direct_extraction_confidence: Confidence reported for embedded PDF text
        min_direct_text_chars: Embedded text must be longer than this to be used
        min_correction_ratio: Corrected text may not be shorter than this share
        max_correction_ratio: Corrected text may not be longer than this share
        min_ai_text_chars: Text must be longer than this to be sent for correction
        min_word_confidence: Native (0-100) word confidence kept in word lists
        default_confidence_threshold: Reported threshold when the caller sets none
    """

    early_exit_confidence: float = 0.8
    direct_extraction_confidence: float = 0.95
    min_direct_text_chars: int = 50
    min_correction_ratio: float = 0.3
    max_correction_ratio: float = 3.0
    min_ai_text_chars: int = 10
    min_word_confidence: float = 30.0
    default_confidence_threshold: float = 0.6


DEFAULT_THRESHOLDS = PipelineThresholds()


# =============================================================================
# Image Processing
# =============================================================================

RASTER_DPI = 150  # Rendering density for scanned PDFs
MAX_OCR_PAGES = 100  # Pages beyond this are not rasterized
MAX_PIXELS = 150_000_000  # Pillow's decompression bomb limit

HIGH_CONTRAST_MAX_SIDE = 2000
MODERATE_SHARPEN_MAX_SIDE = 1800


# =============================================================================
# External Service Timeouts (seconds)
# =============================================================================

LLM_REQUEST_TIMEOUT_SECONDS = 30
OCR_CALL_TIMEOUT_SECONDS = 60


# =============================================================================
# Text Correction
# =============================================================================

CORRECTION_TEMPERATURE = 0.1
CORRECTION_MAX_TOKENS = 2000
SUMMARY_TEMPERATURE = 0.3
SUMMARY_CHUNK_CHARS = 24_000  # Roughly 6k tokens per summarisation request


# =============================================================================
# Batch Queue
# =============================================================================

JOB_MAX_ATTEMPTS = 3
JOB_RETRY_BASE_DELAY_SECONDS = 2.0
DEFAULT_OPERATION_SECONDS = 10.0  # ETA guess before any operation finished
EVENT_SUBSCRIBER_QUEUE_SIZE = 100


# =============================================================================
# Error Handling
# =============================================================================

ERROR_BODY_MAX_CHARS = 200  # Maximum chars from error response bodies
