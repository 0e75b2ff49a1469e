"""Document upload and single-document OCR endpoints."""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from api.file_validation import read_upload_file
from api.schemas import OCRRequest, OCRResponse, ProblemDetail, UploadResponse
from core.dependencies import get_owner_id, get_pipeline, get_records, get_storage
from core.settings import storage_settings
from pipeline.core.exceptions import DocumentNotFoundError
from pipeline.models.dto import DocumentResult, ProcessingOptions
from pipeline.orchestrator import DocumentPipeline
from services.persistence import InMemoryRecordStore
from services.storage import StoragePort, load_document

router = APIRouter(prefix="/documents", tags=["documents"])
logger = logging.getLogger(__name__)


def build_ocr_response(result: DocumentResult, threshold: float) -> OCRResponse:
    return OCRResponse(
        text=result.text,
        confidence=result.confidence,
        page_count=result.page_count,
        ai_enhanced=result.ai_enhanced,
        detected_language=result.detected_language,
        original_text=result.original_text,
        enhanced_text=result.enhanced_text,
        method=result.method.value,
        meets_threshold=result.meets_threshold(threshold),
        failed_pages=result.failed_pages,
        correction_status=result.correction_status.value,
        document_type=result.document_type,
    )


@router.post(
    "",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Empty file", "model": ProblemDetail},
        413: {"description": "File too large", "model": ProblemDetail},
        415: {"description": "Unsupported file type", "model": ProblemDetail},
    },
)
async def upload_document(
    file: UploadFile = File(..., description="PDF or image file"),
    owner_id: str = Depends(get_owner_id),
    storage: StoragePort = Depends(get_storage),
):
    data, media_type = await read_upload_file(
        file, storage_settings.UPLOAD_MAX_FILE_SIZE_MB
    )
    stored = await storage.put(owner_id, file.filename or "document", media_type, data)
    logger.info(
        f"Document uploaded: {stored.filename} ({stored.size} bytes)",
        extra={"document_id": stored.ref, "owner_id": owner_id},
    )
    return UploadResponse(
        document_id=stored.ref,
        filename=stored.filename,
        media_type=stored.media_type,
        size=stored.size,
    )


@router.post(
    "/{document_id}/ocr",
    response_model=OCRResponse,
    responses={
        404: {"description": "Document not found", "model": ProblemDetail},
        415: {"description": "Unsupported file type", "model": ProblemDetail},
        500: {"description": "Every page failed OCR", "model": ProblemDetail},
        503: {"description": "OCR engine unavailable", "model": ProblemDetail},
    },
)
async def ocr_document(
    request: Request,
    document_id: str,
    body: Optional[OCRRequest] = None,
    owner_id: str = Depends(get_owner_id),
    storage: StoragePort = Depends(get_storage),
    records: InMemoryRecordStore = Depends(get_records),
    pipeline: DocumentPipeline = Depends(get_pipeline),
):
    start_time = time.time()
    trace_id = getattr(request.state, "trace_id", None)
    body = body or OCRRequest()

    meta, document = await load_document(storage, document_id)
    if meta.owner_id != owner_id:
        raise DocumentNotFoundError(document_id)

    options = ProcessingOptions(
        language=body.language,
        enhance_with_ai=body.enhance_with_ai,
        extract_original=body.extract_original,
        confidence_threshold=body.confidence_threshold,
        document_type_hint=body.document_type,
    )
    result = await pipeline.process(document, options)
    await records.save_result(
        document_id,
        {**result.to_record(), "document_id": document_id, "owner_id": owner_id},
    )

    threshold = (
        body.confidence_threshold
        if body.confidence_threshold is not None
        else pipeline.thresholds.default_confidence_threshold
    )
    logger.info(
        "[RESPONSE] document=%s method=%s confidence=%.3f time=%.2fs",
        document_id,
        result.method.value,
        result.confidence,
        time.time() - start_time,
        extra={"trace_id": trace_id, "document_id": document_id},
    )
    return build_ocr_response(result, threshold)


@router.get(
    "/{document_id}/result",
    responses={404: {"description": "No stored result", "model": ProblemDetail}},
)
async def get_document_result(
    document_id: str,
    owner_id: str = Depends(get_owner_id),
    records: InMemoryRecordStore = Depends(get_records),
):
    record = await records.get_result(document_id)
    if record is None or record.get("owner_id") != owner_id:
        raise DocumentNotFoundError(document_id)
    return record
