import pytest

from pipeline.core.exceptions import OCRFailure
from pipeline.models.dto import PageImage
from tests._fakes import make_text_pdf, synthetic_page


@pytest.fixture
def page_image() -> PageImage:
    return PageImage(page_index=0, pixels=synthetic_page())


@pytest.fixture
def text_pdf() -> bytes:
    return make_text_pdf(
        [
            "INVOICE 2024-117 issued to Northwind Traders Ltd.",
            "Total due: 1450.00 USD by 15/03/2024.",
            "Thank you for your business and prompt payment.",
        ]
    )


@pytest.fixture
def ocr_failure() -> OCRFailure:
    return OCRFailure("engine crashed")
