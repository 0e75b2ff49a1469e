"""
Batch operation handlers.

Each handler works on the already-resolved input refs of one operation and
returns an OperationResult. Inputs that cannot be used are recorded in
`failures` and skipped; a handler raises OperationError only when no input
was usable. Anything else it raises aborts the job attempt.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import PurePath
from typing import Any, Awaitable, Callable, Optional

from pipeline.batch.models import Operation, OperationResult, OperationType
from pipeline.core.exceptions import (
    CorrectionFailure,
    DocumentNotFoundError,
    DocumentOCRFailure,
    OperationError,
    UnsupportedDocumentError,
)
from pipeline.correction.service import TextCorrectionService
from pipeline.models.dto import ProcessingOptions
from pipeline.orchestrator import DocumentPipeline
from pipeline.processors import pdf_tools
from pipeline.processors.image_to_pdf_converter import images_to_pdf_bytes
from pipeline.utils.file_detection import is_image_bytes
from services.persistence import InMemoryRecordStore
from services.storage import StoragePort, StoredObject

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
DEFAULT_MERGE_NAME = "batch-merged.pdf"
DEFAULT_CONVERT_NAME = "batch-converted.pdf"
DEFAULT_COMPRESS_QUALITY = 0.7


@dataclass
class OperationContext:
    job_id: str
    owner_id: str
    index: int
    operation: Operation
    refs: list[str]
    failures: list[dict[str, str]] = field(default_factory=list)

    @property
    def options(self) -> dict[str, Any]:
        return self.operation.options

    def fail(self, ref: str, error: str) -> None:
        self.failures.append({"ref": ref, "error": error})
        logger.warning(
            f"Skipping input {ref}: {error}",
            extra={"job_id": self.job_id, "operation": self.operation.type.value},
        )

    def result(self, output_refs: list[str], items: list[dict]) -> OperationResult:
        return OperationResult(
            index=self.index,
            type=self.operation.type,
            success=True,
            output_refs=output_refs,
            items=items,
            failures=self.failures,
        )


def _stem(filename: str) -> str:
    return PurePath(filename).stem or "document"


def _is_pdf(meta: StoredObject, data: bytes) -> bool:
    return meta.to_document(data).is_pdf


async def _off_loop(func: Callable, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))


class OperationHandlers:
    def __init__(
        self,
        storage: StoragePort,
        records: InMemoryRecordStore,
        pipeline: Optional[DocumentPipeline] = None,
        corrector: Optional[TextCorrectionService] = None,
    ):
        self.storage = storage
        self.records = records
        self.pipeline = pipeline
        self.corrector = corrector
        self._handlers: dict[
            OperationType, Callable[[OperationContext], Awaitable[OperationResult]]
        ] = {
            OperationType.MERGE: self.merge,
            OperationType.SPLIT: self.split,
            OperationType.COMPRESS: self.compress,
            OperationType.CONVERT: self.convert,
            OperationType.OCR: self.ocr,
            OperationType.SUMMARIZE: self.summarize,
        }

    async def run(self, ctx: OperationContext) -> OperationResult:
        return await self._handlers[ctx.operation.type](ctx)

    async def _load(self, ctx: OperationContext, ref: str) -> Optional[tuple[StoredObject, bytes]]:
        try:
            meta, data = await self.storage.get(ref)
        except DocumentNotFoundError:
            ctx.fail(ref, "document not found")
            return None
        if meta.owner_id != ctx.owner_id:
            ctx.fail(ref, "document not found")
            return None
        return meta, data

    async def _load_pdfs(self, ctx: OperationContext) -> list[tuple[StoredObject, bytes, int]]:
        usable = []
        for ref in ctx.refs:
            loaded = await self._load(ctx, ref)
            if loaded is None:
                continue
            meta, data = loaded
            if not _is_pdf(meta, data):
                ctx.fail(ref, "not a PDF")
                continue
            try:
                pages = await _off_loop(pdf_tools.page_count, data)
            except Exception as e:
                ctx.fail(ref, f"unreadable PDF: {e}")
                continue
            usable.append((meta, data, pages))
        return usable

    async def _upload_pdf(self, ctx: OperationContext, filename: str, data: bytes) -> StoredObject:
        return await self.storage.put(ctx.owner_id, filename, PDF_MEDIA_TYPE, data)

    async def merge(self, ctx: OperationContext) -> OperationResult:
        inputs = await self._load_pdfs(ctx)
        if len(inputs) < 2:
            raise OperationError(
                "merge", f"Merge needs at least two readable PDFs, got {len(inputs)}"
            )

        merged = await _off_loop(pdf_tools.merge_pdfs, [data for _, data, _ in inputs])
        stored = await self._upload_pdf(
            ctx, ctx.options.get("outputName") or DEFAULT_MERGE_NAME, merged
        )
        return ctx.result(
            [stored.ref],
            [
                {
                    "ref": stored.ref,
                    "filename": stored.filename,
                    "sources": [meta.ref for meta, _, _ in inputs],
                    "pages": sum(pages for _, _, pages in inputs),
                }
            ],
        )

    async def split(self, ctx: OperationContext) -> OperationResult:
        output_refs: list[str] = []
        items: list[dict] = []

        for meta, data, pages in await self._load_pdfs(ctx):
            try:
                ranges = pdf_tools.parse_page_ranges(ctx.options.get("pages"), pages)
                parts = await _off_loop(pdf_tools.split_pdf, data, ranges)
            except ValueError as e:
                ctx.fail(meta.ref, str(e))
                continue

            for number, ((start, end), part) in enumerate(zip(ranges, parts), start=1):
                stored = await self._upload_pdf(
                    ctx, f"{_stem(meta.filename)}-part{number}.pdf", part
                )
                output_refs.append(stored.ref)
                items.append(
                    {"ref": stored.ref, "source": meta.ref, "pages": f"{start + 1}-{end + 1}"}
                )

        if not output_refs:
            raise OperationError("split", "No document could be split")
        return ctx.result(output_refs, items)

    async def compress(self, ctx: OperationContext) -> OperationResult:
        try:
            quality = float(ctx.options.get("quality", DEFAULT_COMPRESS_QUALITY))
        except (TypeError, ValueError):
            quality = DEFAULT_COMPRESS_QUALITY

        output_refs: list[str] = []
        items: list[dict] = []
        for meta, data, _ in await self._load_pdfs(ctx):
            try:
                compressed = await _off_loop(pdf_tools.compress_pdf, data, quality)
            except Exception as e:
                ctx.fail(meta.ref, f"compression failed: {e}")
                continue
            stored = await self._upload_pdf(
                ctx, f"{_stem(meta.filename)}-compressed.pdf", compressed
            )
            output_refs.append(stored.ref)
            items.append(
                {
                    "ref": stored.ref,
                    "source": meta.ref,
                    "originalSize": len(data),
                    "compressedSize": len(compressed),
                }
            )

        if not output_refs:
            raise OperationError("compress", "No document could be compressed")
        return ctx.result(output_refs, items)

    async def convert(self, ctx: OperationContext) -> OperationResult:
        images: list[bytes] = []
        sources: list[str] = []
        for ref in ctx.refs:
            loaded = await self._load(ctx, ref)
            if loaded is None:
                continue
            meta, data = loaded
            if not is_image_bytes(data):
                ctx.fail(ref, "not an image")
                continue
            images.append(data)
            sources.append(meta.ref)

        if not images:
            raise OperationError("convert", "No image inputs to convert")

        try:
            pdf = await _off_loop(images_to_pdf_bytes, images)
        except (OSError, ValueError) as e:
            raise OperationError("convert", f"Image conversion failed: {e}") from e

        stored = await self._upload_pdf(
            ctx, ctx.options.get("outputName") or DEFAULT_CONVERT_NAME, pdf
        )
        return ctx.result(
            [stored.ref], [{"ref": stored.ref, "filename": stored.filename, "sources": sources}]
        )

    def _processing_options(self, options: dict[str, Any]) -> ProcessingOptions:
        return ProcessingOptions(
            language=options.get("language") or "eng",
            enhance_with_ai=bool(options.get("enhanceWithAI", False)),
            extract_original=bool(options.get("extractOriginal", False)),
            confidence_threshold=options.get("confidenceThreshold"),
            document_type_hint=options.get("documentType"),
        )

    async def ocr(self, ctx: OperationContext) -> OperationResult:
        if self.pipeline is None:
            raise OperationError("ocr", "Document pipeline is not configured")

        options = self._processing_options(ctx.options)
        output_refs: list[str] = []
        items: list[dict] = []

        for ref in ctx.refs:
            loaded = await self._load(ctx, ref)
            if loaded is None:
                continue
            meta, data = loaded
            try:
                result = await self.pipeline.process(meta.to_document(data), options)
            except (DocumentOCRFailure, UnsupportedDocumentError) as e:
                ctx.fail(ref, e.message)
                continue

            await self.records.save_result(
                ref,
                {
                    **result.to_record(),
                    "document_id": ref,
                    "owner_id": ctx.owner_id,
                    "job_id": ctx.job_id,
                },
            )
            output_refs.append(ref)
            items.append(
                {
                    "ref": ref,
                    "confidence": result.confidence,
                    "pageCount": result.page_count,
                    "method": result.method.value,
                    "aiEnhanced": result.ai_enhanced,
                    "failedPages": result.failed_pages,
                }
            )

        if not output_refs:
            raise OperationError("ocr", "OCR produced text for no document")
        return ctx.result(output_refs, items)

    async def summarize(self, ctx: OperationContext) -> OperationResult:
        if self.corrector is None:
            raise OperationError("summarize", "AI service is not configured")

        summary_type = ctx.options.get("summaryType") or "auto"
        output_refs: list[str] = []
        items: list[dict] = []

        for ref in ctx.refs:
            record = await self.records.get_result(ref)
            if record is None or record.get("owner_id") != ctx.owner_id:
                ctx.fail(ref, "no extracted text; run ocr first")
                continue
            text = record.get("text") or ""
            if not text.strip():
                ctx.fail(ref, "extracted text is empty")
                continue

            try:
                summary = await self.corrector.summarize(text, summary_type)
            except CorrectionFailure as e:
                ctx.fail(ref, str(e))
                continue

            await self.records.save_result(
                ref, {**record, "summary": summary, "summary_type": summary_type}
            )
            output_refs.append(ref)
            items.append({"ref": ref, "summary": summary, "summaryType": summary_type})

        if not output_refs:
            raise OperationError("summarize", "No document could be summarized")
        return ctx.result(output_refs, items)
