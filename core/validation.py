"""Application startup validation checks.

Validates settings before the application starts so a misconfigured
deployment fails fast instead of on the first batch job.
"""

import logging
import re

logger = logging.getLogger(__name__)


def validate_all_settings() -> None:
    """Validate all critical settings at application startup.

    Raises:
        RuntimeError: If any setting is out of range or malformed
    """
    from core.settings import (
        llm_settings,
        ocr_settings,
        queue_settings,
        storage_settings,
    )

    problems = []

    if not re.match(r"^https?://.+", llm_settings.LLM_BASE_URL):
        problems.append(
            f"  - LLM_BASE_URL={llm_settings.LLM_BASE_URL} "
            "(must start with http:// or https://)"
        )
    if llm_settings.LLM_REQUEST_TIMEOUT_SECONDS <= 0:
        problems.append("  - LLM_REQUEST_TIMEOUT_SECONDS must be positive")
    if ocr_settings.OCR_CALL_TIMEOUT_SECONDS <= 0:
        problems.append("  - OCR_CALL_TIMEOUT_SECONDS must be positive")
    if not (50 <= ocr_settings.OCR_RASTER_DPI <= 600):
        problems.append(
            f"  - OCR_RASTER_DPI must be 50-600, got {ocr_settings.OCR_RASTER_DPI}"
        )
    if ocr_settings.OCR_MAX_PAGES < 1:
        problems.append("  - OCR_MAX_PAGES must be at least 1")
    if queue_settings.QUEUE_WORKERS < 1:
        problems.append("  - QUEUE_WORKERS must be at least 1")
    if queue_settings.QUEUE_MAX_ATTEMPTS < 1:
        problems.append("  - QUEUE_MAX_ATTEMPTS must be at least 1")
    if queue_settings.QUEUE_RETRY_BASE_DELAY_SECONDS < 0:
        problems.append("  - QUEUE_RETRY_BASE_DELAY_SECONDS cannot be negative")
    if storage_settings.STORAGE_BACKEND == "s3":
        for name in ("S3_ENDPOINT", "S3_ACCESS_KEY", "S3_SECRET_KEY", "S3_BUCKET"):
            if not getattr(storage_settings, name):
                problems.append(f"  - {name} is required when STORAGE_BACKEND=s3")

    if problems:
        error_msg = "Invalid configuration:\n" + "\n".join(problems)
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    if not llm_settings.enabled:
        logger.warning("LLM_API_KEY not set: AI correction and summaries are disabled")

    logger.info("All settings validated successfully")
    logger.info(f"  - LLM: {llm_settings.LLM_BASE_URL} ({llm_settings.LLM_PRIMARY_MODEL})")
    logger.info(
        f"  - OCR: dpi={ocr_settings.OCR_RASTER_DPI} max_pages={ocr_settings.OCR_MAX_PAGES}"
    )
    logger.info(f"  - Queue: workers={queue_settings.QUEUE_WORKERS}")
