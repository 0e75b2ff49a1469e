from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Optional

from core.metrics import record_pipeline_duration
from pipeline.clients.tesseract_client import primary_language
from pipeline.core.config import DEFAULT_THRESHOLDS, PipelineThresholds
from pipeline.core.exceptions import (
    CorrectionFailure,
    CorrectionRejected,
    DocumentOCRFailure,
    ExternalServiceError,
    PageOCRFailure,
    UnsupportedDocumentError,
)
from pipeline.correction.classifier import resolve_document_type
from pipeline.correction.service import TextCorrectionService
from pipeline.models.dto import (
    CorrectionStatus,
    Document,
    DocumentResult,
    ExtractionMethod,
    PageResult,
    ProcessingOptions,
)
from pipeline.processors.direct_text import DirectTextExtractor
from pipeline.processors.language_detection import detect_language
from pipeline.processors.multi_strategy import MultiStrategyOCR
from pipeline.processors.rasterizer import DocumentRasterizer

logger = logging.getLogger(__name__)

AUTO_LANGUAGE = "auto"


@dataclass
class PipelineContext:
    document: Document
    options: ProcessingOptions

    # populated during run
    state: str = "START"
    page_count: int = 0
    pages: list[PageResult] = field(default_factory=list)
    method: ExtractionMethod = ExtractionMethod.OCR
    text: str = ""
    enhanced_text: Optional[str] = None
    correction_status: CorrectionStatus = CorrectionStatus.NOT_REQUESTED
    t0: float = field(default_factory=time.perf_counter)

    @property
    def log_extra(self) -> dict:
        return {"document_id": self.document.document_id}


def _mean_confidence(pages: list[PageResult]) -> float:
    scored = [p.confidence for p in pages if p.method != ExtractionMethod.FAILED]
    if not scored:
        return 0.0
    return sum(scored) / len(scored)


class DocumentPipeline:
    """Runs one document through direct extraction, OCR and optional AI correction.

    The direct path never rasterizes. Pages are processed sequentially in page
    order, one page image alive at a time. AI correction never fails the run:
    a rejected or unavailable correction keeps the OCR text.
    """

    def __init__(
        self,
        extractor: DirectTextExtractor,
        rasterizer: DocumentRasterizer,
        ocr: MultiStrategyOCR,
        corrector: Optional[TextCorrectionService] = None,
        thresholds: PipelineThresholds = DEFAULT_THRESHOLDS,
    ) -> None:
        self.extractor = extractor
        self.rasterizer = rasterizer
        self.ocr = ocr
        self.corrector = corrector
        self.thresholds = thresholds

    def _transition(self, ctx: PipelineContext, state: str) -> None:
        logger.info(f"Pipeline {ctx.state} -> {state}", extra=ctx.log_extra)
        ctx.state = state

    def _stage_direct(self, ctx: PipelineContext) -> bool:
        self._transition(ctx, "DIRECT_EXTRACT_ATTEMPTED")
        page = self.extractor.try_extract(ctx.document)
        if page is None:
            return False

        try:
            ctx.page_count = self.rasterizer.count_pages(ctx.document)
        except UnsupportedDocumentError:
            ctx.page_count = 1
        ctx.pages = [page]
        ctx.text = page.text
        ctx.method = ExtractionMethod.DIRECT
        return True

    async def _stage_ocr(self, ctx: PipelineContext) -> None:
        self._transition(ctx, "RASTERIZING")
        ctx.page_count = self.rasterizer.count_pages(ctx.document)

        if not self.ocr.adapter.is_available():
            raise ExternalServiceError(
                service_name="OCR",
                error_type="unavailable",
                details={"detail": "OCR engine is not installed or not reachable"},
            )

        language = ctx.options.language
        if language == AUTO_LANGUAGE:
            language = None
        language = primary_language(language)

        self._transition(ctx, "OCR_PER_PAGE")
        loop = asyncio.get_running_loop()
        with self.rasterizer.workspace() as workdir:
            for page_index in range(ctx.page_count):
                try:
                    image = await loop.run_in_executor(
                        None,
                        partial(
                            self.rasterizer.rasterize_page,
                            ctx.document,
                            page_index,
                            workdir,
                        ),
                    )
                except Exception as e:
                    logger.warning(
                        f"Rasterizing page {page_index} failed: {e}",
                        extra={**ctx.log_extra, "page_index": page_index},
                    )
                    ctx.pages.append(PageResult.failed(page_index, f"rasterize: {e}"))
                    continue

                try:
                    page = await self.ocr.orchestrate(image, language)
                except PageOCRFailure as e:
                    logger.warning(
                        str(e), extra={**ctx.log_extra, "page_index": page_index}
                    )
                    page = PageResult.failed(page_index, "; ".join(e.reasons))
                finally:
                    del image
                ctx.pages.append(page)

        failed = {
            p.page_index: p.error or ""
            for p in ctx.pages
            if p.method == ExtractionMethod.FAILED
        }
        if ctx.pages and len(failed) == len(ctx.pages):
            self._transition(ctx, "FAILED")
            raise DocumentOCRFailure(ctx.document.document_id, failed)

        self._transition(ctx, "AGGREGATED")
        ctx.text = "\n\n".join(p.text for p in ctx.pages).strip()
        ctx.method = ExtractionMethod.OCR

    async def _stage_correct(self, ctx: PipelineContext) -> None:
        if not ctx.options.enhance_with_ai:
            return
        if len(ctx.text) <= self.thresholds.min_ai_text_chars or self.corrector is None:
            ctx.correction_status = CorrectionStatus.SKIPPED
            return

        self._transition(ctx, "AI_CORRECTING")
        try:
            ctx.enhanced_text = await self.corrector.correct(
                ctx.text, ctx.options.document_type_hint
            )
            ctx.correction_status = CorrectionStatus.ACCEPTED
        except CorrectionRejected as e:
            logger.info(f"Keeping original text: {e}", extra=ctx.log_extra)
            ctx.correction_status = CorrectionStatus.REJECTED
        except CorrectionFailure as e:
            logger.warning(f"Keeping original text: {e}", extra=ctx.log_extra)
            ctx.correction_status = CorrectionStatus.FAILED

    def _build_result(self, ctx: PipelineContext) -> DocumentResult:
        ai_enhanced = ctx.enhanced_text is not None
        if ai_enhanced and not ctx.options.extract_original:
            text = ctx.enhanced_text
        else:
            text = ctx.text

        if ctx.options.language == AUTO_LANGUAGE:
            detected_language = detect_language(ctx.text)
        else:
            detected_language = primary_language(ctx.options.language)

        return DocumentResult(
            text=text,
            original_text=ctx.text,
            confidence=_mean_confidence(ctx.pages),
            page_count=ctx.page_count,
            method=ctx.method,
            pages=ctx.pages,
            enhanced_text=ctx.enhanced_text,
            ai_enhanced=ai_enhanced,
            correction_status=ctx.correction_status,
            failed_pages=[
                p.page_index for p in ctx.pages if p.method == ExtractionMethod.FAILED
            ],
            detected_language=detected_language,
            document_type=resolve_document_type(
                ctx.text, ctx.options.document_type_hint
            ).value,
        )

    async def process(
        self, document: Document, options: Optional[ProcessingOptions] = None
    ) -> DocumentResult:
        """
        Extract (and optionally correct) the text of one document.

        Raises:
          UnsupportedDocumentError: Bytes are neither a PDF nor a decodable image.
          ExternalServiceError: OCR is needed but the engine is unavailable.
          DocumentOCRFailure: Every page failed OCR.
        """
        ctx = PipelineContext(document=document, options=options or ProcessingOptions())

        if not self._stage_direct(ctx):
            await self._stage_ocr(ctx)
        await self._stage_correct(ctx)

        self._transition(ctx, "DONE")
        result = self._build_result(ctx)
        elapsed = time.perf_counter() - ctx.t0
        record_pipeline_duration(result.method.value, elapsed)
        logger.info(
            f"Document processed: method={result.method.value} pages={result.page_count} "
            f"confidence={result.confidence:.3f} ai_enhanced={result.ai_enhanced}",
            extra={**ctx.log_extra, "duration_ms": round(elapsed * 1000)},
        )
        return result
