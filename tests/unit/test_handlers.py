"""Unit tests for the batch operation handlers."""

import pytest

from pipeline.batch.handlers import OperationContext, OperationHandlers
from pipeline.batch.models import Operation, OperationType
from pipeline.core.exceptions import OperationError
from pipeline.correction.service import TextCorrectionService
from pipeline.orchestrator import DocumentPipeline
from pipeline.processors import pdf_tools
from pipeline.processors.direct_text import DirectTextExtractor
from pipeline.processors.enhancement import ImageEnhancementEngine
from pipeline.processors.multi_strategy import MultiStrategyOCR
from pipeline.processors.rasterizer import DocumentRasterizer
from services.persistence import InMemoryRecordStore
from services.storage import InMemoryStorage
from tests._fakes import (
    FakeLLMClient,
    FakeOCRAdapter,
    make_blank_pdf,
    make_image_bytes,
)

OWNER = "owner-1"


def context(op_type: str, refs: list[str], **options) -> OperationContext:
    return OperationContext(
        job_id="job-1",
        owner_id=OWNER,
        index=0,
        operation=Operation(type=OperationType(op_type), document_refs=refs, options=options),
        refs=refs,
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def records():
    return InMemoryRecordStore()


@pytest.fixture
def handlers(storage, records):
    pipeline = DocumentPipeline(
        extractor=DirectTextExtractor(),
        rasterizer=DocumentRasterizer(),
        ocr=MultiStrategyOCR(ImageEnhancementEngine(), FakeOCRAdapter(confidence_by_label={})),
    )
    corrector = TextCorrectionService(FakeLLMClient({"m1": "Short summary."}), "m1")
    return OperationHandlers(storage, records, pipeline, corrector)


async def put_pdf(storage, pages=1, owner=OWNER, name="doc.pdf"):
    return (await storage.put(owner, name, "application/pdf", make_blank_pdf(pages))).ref


async def put_image(storage, name="scan.png"):
    return (await storage.put(OWNER, name, "image/png", make_image_bytes())).ref


class TestMerge:
    """merge"""

    async def test_merges_readable_pdfs_and_reports_the_rest(self, handlers, storage):
        """Unusable inputs are listed as failures next to the merged output."""
        first = await put_pdf(storage, 1)
        second = await put_pdf(storage, 2)
        image = await put_image(storage)
        foreign = await put_pdf(storage, owner="someone-else")

        result = await handlers.run(
            context("merge", [first, image, second, "missing", foreign], outputName="all.pdf")
        )

        assert result.success
        meta, data = await storage.get(result.output_refs[0])
        assert meta.filename == "all.pdf"
        assert pdf_tools.page_count(data) == 3
        assert result.items[0]["sources"] == [first, second]
        assert {f["ref"]: f["error"] for f in result.failures} == {
            image: "not a PDF",
            "missing": "document not found",
            foreign: "document not found",
        }

    async def test_single_pdf_is_an_operation_error(self, handlers, storage):
        """Merging needs two readable PDFs."""
        only = await put_pdf(storage)
        with pytest.raises(OperationError, match="at least two"):
            await handlers.run(context("merge", [only]))


class TestSplitCompressConvert:
    """split, compress and convert"""

    async def test_split_by_ranges(self, handlers, storage):
        """Each requested range becomes its own PDF."""
        ref = await put_pdf(storage, 4, name="report.pdf")

        result = await handlers.run(context("split", [ref], pages="1-2,4"))

        assert [item["pages"] for item in result.items] == ["1-2", "4-4"]
        first_meta, first = await storage.get(result.output_refs[0])
        assert first_meta.filename == "report-part1.pdf"
        assert pdf_tools.page_count(first) == 2

    async def test_split_bad_range_fails_input(self, handlers, storage):
        """A malformed range skips the document."""
        ref = await put_pdf(storage, 2)
        with pytest.raises(OperationError):
            await handlers.run(context("split", [ref], pages="3-1"))

    async def test_compress_reports_sizes(self, handlers, storage):
        """Compressed output is stored with original and new sizes."""
        ref = await put_pdf(storage, 2, name="big.pdf")

        result = await handlers.run(context("compress", [ref], quality="not a number"))

        item = result.items[0]
        assert item["source"] == ref
        assert item["originalSize"] > 0
        meta, data = await storage.get(result.output_refs[0])
        assert meta.filename == "big-compressed.pdf"
        assert pdf_tools.page_count(data) == 2

    async def test_convert_images_skips_pdfs(self, handlers, storage):
        """Images become one PDF; PDFs among the inputs are reported."""
        image = await put_image(storage)
        pdf = await put_pdf(storage)

        result = await handlers.run(context("convert", [image, pdf]))

        assert result.failures == [{"ref": pdf, "error": "not an image"}]
        meta, data = await storage.get(result.output_refs[0])
        assert meta.media_type == "application/pdf"
        assert pdf_tools.page_count(data) == 1


class TestOcrSummarize:
    """ocr and summarize"""

    async def test_ocr_saves_record_for_summarize(self, handlers, storage, records, text_pdf):
        """OCR output is persisted and summarize reads it back."""
        ref = (await storage.put(OWNER, "invoice.pdf", "application/pdf", text_pdf)).ref

        ocr = await handlers.run(context("ocr", [ref]))
        assert ocr.output_refs == [ref]
        assert ocr.items[0]["method"] == "direct_extraction"
        record = await records.get_result(ref)
        assert "Northwind" in record["text"]
        assert record["job_id"] == "job-1"

        summary = await handlers.run(context("summarize", [ref], summaryType="brief"))
        assert summary.items == [
            {"ref": ref, "summary": "Short summary.", "summaryType": "brief"}
        ]
        assert (await records.get_result(ref))["summary"] == "Short summary."

    async def test_summarize_without_ocr(self, handlers, storage):
        """Documents with no extracted text cannot be summarised."""
        ref = await put_pdf(storage)
        with pytest.raises(OperationError):
            await handlers.run(context("summarize", [ref]))

    async def test_ocr_without_pipeline(self, storage, records):
        """A handler set without a pipeline refuses OCR."""
        bare = OperationHandlers(storage, records)
        with pytest.raises(OperationError, match="not configured"):
            await bare.run(context("ocr", ["x"]))
