"""
Byte-in, byte-out PDF transforms used by the batch operations.
"""

import io
import logging
import re
from typing import Iterable, Union

from pypdf import PdfReader, PdfWriter

logger = logging.getLogger(__name__)

PAGE_RANGE = re.compile(r"^\s*(\d+)\s*(?:-\s*(\d+))?\s*$")


def _to_bytes(writer: PdfWriter) -> bytes:
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def page_count(data: bytes) -> int:
    return len(PdfReader(io.BytesIO(data)).pages)


def merge_pdfs(documents: Iterable[bytes]) -> bytes:
    writer = PdfWriter()
    for data in documents:
        writer.append(io.BytesIO(data))
    return _to_bytes(writer)


def parse_page_ranges(
    pages: Union[str, int, list, None], total_pages: int
) -> list[tuple[int, int]]:
    """
    Turn "1-3,5" / ["1-3", 5] into zero-based inclusive (start, end) ranges.

    An empty value means one range per page. Ranges are clipped to the document.

    Raises:
      ValueError: On a malformed or empty range.
    """
    if pages is None or pages == "" or pages == []:
        return [(i, i) for i in range(total_pages)]

    if isinstance(pages, (str, int)):
        parts = [p for p in str(pages).split(",") if p.strip()]
    else:
        parts = [str(p) for p in pages]

    ranges = []
    for part in parts:
        match = PAGE_RANGE.match(part)
        if not match:
            raise ValueError(f"Invalid page range '{part}'")
        start = int(match.group(1))
        end = int(match.group(2) or start)
        if start < 1 or end < start:
            raise ValueError(f"Invalid page range '{part}'")
        if start > total_pages:
            continue
        ranges.append((start - 1, min(end, total_pages) - 1))

    if not ranges:
        raise ValueError("No requested page range falls inside the document")
    return ranges


def split_pdf(data: bytes, ranges: list[tuple[int, int]]) -> list[bytes]:
    reader = PdfReader(io.BytesIO(data))
    parts = []
    for start, end in ranges:
        writer = PdfWriter()
        for index in range(start, end + 1):
            writer.add_page(reader.pages[index])
        parts.append(_to_bytes(writer))
    return parts


def compress_pdf(data: bytes, quality: float = 0.7) -> bytes:
    """Recompress content streams and re-encode embedded images as JPEG."""
    jpeg_quality = max(1, min(95, int(round(quality * 100))))
    writer = PdfWriter(clone_from=PdfReader(io.BytesIO(data)))

    for page in writer.pages:
        for image in page.images:
            try:
                image.replace(image.image, quality=jpeg_quality)
            except Exception as e:
                logger.debug(f"Keeping image {image.name} as-is: {e}")
        page.compress_content_streams()

    return _to_bytes(writer)
