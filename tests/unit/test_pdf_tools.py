"""Unit tests for PDF transforms and image-to-PDF conversion."""

import pytest

from pipeline.processors import pdf_tools
from pipeline.processors.image_to_pdf_converter import images_to_pdf_bytes
from tests._fakes import make_blank_pdf, make_image_bytes


class TestParsePageRanges:
    """parse_page_ranges()"""

    @pytest.mark.parametrize(
        "pages, expected",
        [
            ("1-3,5", [(0, 2), (4, 4)]),
            (["1-2", 4], [(0, 1), (3, 3)]),
            (2, [(1, 1)]),
            (" 2 - 9 ", [(1, 4)]),
            ("1,8", [(0, 0)]),
        ],
    )
    def test_valid(self, pages, expected):
        """Ranges are one-based, inclusive and clipped to five pages."""
        assert pdf_tools.parse_page_ranges(pages, 5) == expected

    @pytest.mark.parametrize("pages", [None, "", []])
    def test_empty_means_every_page(self, pages):
        """No ranges split into single pages."""
        assert pdf_tools.parse_page_ranges(pages, 3) == [(0, 0), (1, 1), (2, 2)]

    @pytest.mark.parametrize("pages", ["a-b", "0", "4-2", "7-9"])
    def test_invalid(self, pages):
        """Malformed, reversed or out-of-document ranges raise ValueError."""
        with pytest.raises(ValueError):
            pdf_tools.parse_page_ranges(pages, 5)


class TestTransforms:
    """merge, split and compress"""

    def test_merge_keeps_all_pages(self):
        """Page counts add up."""
        merged = pdf_tools.merge_pdfs([make_blank_pdf(1), make_blank_pdf(3)])
        assert pdf_tools.page_count(merged) == 4

    def test_split(self):
        """Each range becomes a document with that many pages."""
        parts = pdf_tools.split_pdf(make_blank_pdf(5), [(0, 1), (2, 4)])
        assert [pdf_tools.page_count(p) for p in parts] == [2, 3]

    def test_compress_text_pdf(self, text_pdf):
        """Compression keeps the document readable."""
        compressed = pdf_tools.compress_pdf(text_pdf, quality=0.5)
        assert compressed.startswith(b"%PDF")
        assert pdf_tools.page_count(compressed) == 1


class TestImagesToPdf:
    """images_to_pdf_bytes()"""

    def test_every_frame_becomes_a_page(self):
        """A two-frame TIFF and a PNG give three pages."""
        pdf = images_to_pdf_bytes([make_image_bytes(pages=2), make_image_bytes()])
        assert pdf_tools.page_count(pdf) == 3

    def test_no_images(self):
        """An empty input list is rejected."""
        with pytest.raises(ValueError):
            images_to_pdf_bytes([])
