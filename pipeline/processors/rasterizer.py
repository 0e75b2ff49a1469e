import io
import logging
import tempfile
from contextlib import contextmanager
from typing import Iterator

import numpy as np
from pdf2image import convert_from_bytes
from PIL import Image, ImageOps
from pypdf import PdfReader

from pipeline.core.config import MAX_OCR_PAGES, RASTER_DPI
from pipeline.core.exceptions import UnsupportedDocumentError
from pipeline.models.dto import Document, PageImage
from pipeline.utils.file_detection import is_image_bytes

logger = logging.getLogger(__name__)


def _count_pdf_pages(data: bytes) -> int:
    reader = PdfReader(io.BytesIO(data))
    return len(reader.pages)


def prepare_frame(frame: Image.Image) -> Image.Image:
    try:
        frame = ImageOps.exif_transpose(frame)
    except Exception:
        logger.debug("EXIF transpose failed, using frame as-is", exc_info=True)
    if frame.mode not in ("RGB", "L"):
        frame = frame.convert("RGB")
    return frame


class DocumentRasterizer:
    """Turns a Document into one PageImage per page.

    PDF pages are rendered one at a time into a scratch directory that only
    lives inside ``workspace()``; image files are decoded frame by frame.
    """

    def __init__(self, dpi: int = RASTER_DPI, max_pages: int = MAX_OCR_PAGES):
        self.dpi = dpi
        self.max_pages = max_pages

    def count_pages(self, document: Document) -> int:
        """Number of pages that will be rasterized (capped at max_pages)."""
        try:
            if document.is_pdf:
                total = _count_pdf_pages(document.data)
            elif is_image_bytes(document.data):
                with Image.open(io.BytesIO(document.data)) as image:
                    total = getattr(image, "n_frames", 1)
            else:
                raise UnsupportedDocumentError(document.filename, document.media_type)
        except UnsupportedDocumentError:
            raise
        except Exception as e:
            logger.warning(
                f"Cannot read document for rasterization: {e}",
                extra={"document_id": document.document_id},
            )
            raise UnsupportedDocumentError(
                document.filename, document.media_type
            ) from e

        if total > self.max_pages:
            logger.warning(
                f"Document has {total} pages, only the first {self.max_pages} are processed",
                extra={"document_id": document.document_id},
            )
        return min(total, self.max_pages)

    @contextmanager
    def workspace(self) -> Iterator[str]:
        """Scratch directory for rendered pages, removed on every exit path."""
        with tempfile.TemporaryDirectory(prefix="docenhance_") as tmp_dir:
            yield tmp_dir

    def rasterize_page(self, document: Document, page_index: int, workdir: str) -> PageImage:
        if document.is_pdf:
            return self._render_pdf_page(document, page_index, workdir)
        return self._decode_image_frame(document, page_index)

    def _render_pdf_page(self, document: Document, page_index: int, workdir: str) -> PageImage:
        pages = convert_from_bytes(
            document.data,
            dpi=self.dpi,
            first_page=page_index + 1,
            last_page=page_index + 1,
            output_folder=workdir,
            fmt="png",
        )
        if not pages:
            raise ValueError(f"Renderer returned no image for page {page_index}")

        try:
            pixels = np.array(prepare_frame(pages[0]))
        finally:
            for page in pages:
                page.close()
        return PageImage(page_index=page_index, pixels=pixels)

    def _decode_image_frame(self, document: Document, page_index: int) -> PageImage:
        with Image.open(io.BytesIO(document.data)) as image:
            if page_index:
                image.seek(page_index)
            frame = prepare_frame(image.copy())
        try:
            pixels = np.array(frame)
        finally:
            frame.close()
        return PageImage(page_index=page_index, pixels=pixels)
