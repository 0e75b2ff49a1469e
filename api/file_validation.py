"""Upload validation utilities.

Size checks and magic byte detection for documents uploaded through the API.
The declared content type is only a hint; the stored media type comes from
the bytes themselves.
"""

import logging
import os

from fastapi import UploadFile

from pipeline.core.exceptions import (
    PayloadTooLargeError,
    UnsupportedDocumentError,
    ValidationError,
)
from pipeline.utils.file_detection import detect_file_type_from_bytes

logger = logging.getLogger(__name__)


def _get_file_size(file: UploadFile) -> int:
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size


def _validate_file_size(size: int, max_size_mb: int) -> None:
    if size == 0:
        raise ValidationError(
            message="File is empty (0 bytes)",
            field="file",
            details={"file_size": 0},
        )

    if size > max_size_mb * 1024 * 1024:
        raise PayloadTooLargeError(
            max_size_mb=max_size_mb,
            actual_size_mb=size / (1024 * 1024),
        )


async def read_upload_file(file: UploadFile, max_size_mb: int) -> tuple[bytes, str]:
    """Validate an upload and return its bytes and detected media type.

    Raises:
        ValidationError: If the file is empty
        PayloadTooLargeError: If the file exceeds max_size_mb
        UnsupportedDocumentError: If the bytes are not a PDF or known image
    """
    _validate_file_size(_get_file_size(file), max_size_mb)

    data = await file.read()
    detected = detect_file_type_from_bytes(data[:12])
    if detected is None:
        logger.warning(
            f"Rejected upload with unknown magic bytes: {data[:8].hex()}"
        )
        raise UnsupportedDocumentError(
            file.filename or "upload", file.content_type or "unknown"
        )

    detected_type, media_type = detected
    if file.content_type and file.content_type != media_type:
        logger.info(
            f"Declared content type {file.content_type} differs from "
            f"detected {detected_type}, using {media_type}"
        )
    return data, media_type
