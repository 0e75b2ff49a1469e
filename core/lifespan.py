from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import logging

from core.settings import (
    llm_settings,
    ocr_settings,
    queue_settings,
    storage_settings,
)
from pipeline.batch.events import JobEventBus
from pipeline.batch.handlers import OperationHandlers
from pipeline.batch.queue import BatchJobQueue
from pipeline.clients.llm_client import LLMClient
from pipeline.clients.tesseract_client import TesseractOCRAdapter
from pipeline.correction.service import TextCorrectionService
from pipeline.orchestrator import DocumentPipeline
from pipeline.processors.direct_text import DirectTextExtractor
from pipeline.processors.enhancement import ImageEnhancementEngine
from pipeline.processors.multi_strategy import MultiStrategyOCR
from pipeline.processors.rasterizer import DocumentRasterizer
from services.persistence import InMemoryRecordStore, JsonFileRecordStore
from services.storage import InMemoryStorage, LocalDiskStorage, S3Storage, StoragePort

logger = logging.getLogger(__name__)


def build_storage() -> StoragePort:
    backend = storage_settings.STORAGE_BACKEND
    if backend == "s3":
        return S3Storage(
            endpoint=storage_settings.S3_ENDPOINT,
            access_key=storage_settings.S3_ACCESS_KEY,
            secret_key=storage_settings.S3_SECRET_KEY.get_secret_value(),
            bucket=storage_settings.S3_BUCKET,
            secure=storage_settings.S3_SECURE,
        )
    if backend == "memory":
        return InMemoryStorage()
    return LocalDiskStorage(storage_settings.documents_dir)


def build_records() -> InMemoryRecordStore:
    if storage_settings.PERSIST_RECORDS:
        return JsonFileRecordStore(storage_settings.records_dir)
    return InMemoryRecordStore()


def build_llm_client() -> Optional[LLMClient]:
    if not llm_settings.enabled:
        logger.warning("LLM_API_KEY not set, AI correction and summaries disabled")
        return None
    return LLMClient(
        base_url=llm_settings.LLM_BASE_URL,
        api_key=llm_settings.LLM_API_KEY.get_secret_value(),
        timeout=llm_settings.LLM_REQUEST_TIMEOUT_SECONDS,
        verify=llm_settings.LLM_VERIFY_SSL,
    )


def build_pipeline(corrector: Optional[TextCorrectionService]) -> DocumentPipeline:
    adapter = TesseractOCRAdapter(
        tesseract_cmd=ocr_settings.TESSERACT_CMD,
        timeout_seconds=ocr_settings.OCR_CALL_TIMEOUT_SECONDS,
        default_language=ocr_settings.OCR_DEFAULT_LANGUAGE,
    )
    engine = (
        ImageEnhancementEngine.with_denoise()
        if ocr_settings.OCR_EXTRA_DENOISE_VARIANT
        else ImageEnhancementEngine()
    )
    return DocumentPipeline(
        extractor=DirectTextExtractor(),
        rasterizer=DocumentRasterizer(
            dpi=ocr_settings.OCR_RASTER_DPI, max_pages=ocr_settings.OCR_MAX_PAGES
        ),
        ocr=MultiStrategyOCR(engine, adapter),
        corrector=corrector,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""

    logger.info(f"Initializing {storage_settings.STORAGE_BACKEND} document storage...")
    app.state.storage = build_storage()
    app.state.records = build_records()

    llm_client = build_llm_client()
    corrector = None
    if llm_client is not None:
        await llm_client.start()
        corrector = TextCorrectionService(
            llm_client,
            primary_model=llm_settings.LLM_PRIMARY_MODEL,
            fallback_models=llm_settings.fallback_models,
            timeout_seconds=llm_settings.LLM_REQUEST_TIMEOUT_SECONDS,
        )
        logger.info(f"Text correction ready with {len(corrector.models)} model(s)")
    app.state.corrector = corrector

    pipeline = build_pipeline(corrector)
    app.state.pipeline = pipeline
    app.state.ocr_adapter = pipeline.ocr.adapter
    if not pipeline.ocr.adapter.is_available():
        logger.warning("Application will continue without OCR; scanned documents will fail")

    handlers = OperationHandlers(
        app.state.storage, app.state.records, pipeline=pipeline, corrector=corrector
    )
    queue = BatchJobQueue(
        app.state.records,
        handlers,
        JobEventBus(),
        workers=queue_settings.QUEUE_WORKERS,
        max_attempts=queue_settings.QUEUE_MAX_ATTEMPTS,
        retry_base_delay=queue_settings.QUEUE_RETRY_BASE_DELAY_SECONDS,
        default_operation_seconds=queue_settings.QUEUE_DEFAULT_OPERATION_SECONDS,
    )
    await queue.start()
    app.state.queue = queue
    logger.info("Batch queue ready")

    yield

    logger.info("Stopping batch queue...")
    await queue.stop()
    if llm_client is not None:
        await llm_client.aclose()
        logger.info("LLM client closed")
