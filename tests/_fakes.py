"""Synthetic documents and scripted OCR/LLM fakes shared by the unit tests."""

import io
from typing import Any, Optional, Union

import numpy as np
from PIL import Image
from pypdf import PdfWriter

from pipeline.models.dto import EnhancementVariant, OCRResult


def make_text_pdf(lines: list[str]) -> bytes:
    """Single-page PDF with a Helvetica text layer."""
    escaped = [
        line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        for line in lines
    ]
    content = "BT /F1 12 Tf 72 720 Td 14 TL " + " ".join(
        f"({line}) Tj T*" for line in escaped
    ) + " ET"
    objects = [
        "<< /Type /Catalog /Pages 2 0 R >>",
        "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] /Contents 4 0 R "
        "/Resources << /Font << /F1 5 0 R >> >> >>",
        f"<< /Length {len(content)} >>\nstream\n{content}\nendstream",
        "<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n{body}\nendobj\n".encode("latin-1")
    xref = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref}\n%%EOF\n"
    ).encode()
    return bytes(out)


def make_blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def synthetic_page(height: int = 120, width: int = 200, seed: int = 0) -> np.ndarray:
    """White RGB page with dark bars standing in for text lines."""
    rng = np.random.default_rng(seed)
    pixels = np.full((height, width, 3), 235, dtype=np.uint8)
    for top in range(15, height - 15, 20):
        pixels[top : top + 8, 20 : width - 20] = 30
    noise = rng.integers(0, 20, size=pixels.shape, dtype=np.uint8)
    return np.clip(pixels.astype(np.int16) - noise, 0, 255).astype(np.uint8)


def make_image_bytes(pages: int = 1, fmt: str = "PNG") -> bytes:
    """PNG for one page, multi-frame TIFF otherwise."""
    frames = [Image.fromarray(synthetic_page(seed=i)) for i in range(pages)]
    buffer = io.BytesIO()
    if pages == 1:
        frames[0].save(buffer, format=fmt)
    else:
        frames[0].save(buffer, format="TIFF", save_all=True, append_images=frames[1:])
    return buffer.getvalue()


ScriptItem = Union[float, Exception]


class FakeOCRAdapter:
    """OCR adapter driven by a script or a per-variant confidence table.

    Script items are consumed one per recognize() call: a float becomes an
    OCRResult with that confidence, an exception is raised.
    """

    def __init__(
        self,
        script: Optional[list[ScriptItem]] = None,
        confidence_by_label: Optional[dict[str, float]] = None,
        available: bool = True,
    ):
        self.script = list(script or [])
        self.confidence_by_label = confidence_by_label or {}
        self.available = available
        self.calls: list[tuple[str, str]] = []

    def is_available(self) -> bool:
        return self.available

    async def recognize(self, variant: EnhancementVariant, language: str) -> OCRResult:
        self.calls.append((variant.label, language))
        if self.script:
            item = self.script.pop(0)
        else:
            item = self.confidence_by_label.get(variant.label, 0.5)
        if isinstance(item, Exception):
            raise item
        return OCRResult(
            text=f"text from {variant.label} call {len(self.calls)}",
            confidence=item,
            source_variant=variant.label,
        )


class FakeLLMClient:
    """Chat client returning scripted answers per model.

    A model's entry is a string, an exception, or a list of those consumed in
    order. Unknown models raise.
    """

    def __init__(self, answers: dict[str, Any]):
        self.answers = {
            model: list(value) if isinstance(value, list) else value
            for model, value in answers.items()
        }
        self.calls: list[dict[str, Any]] = []

    async def complete(self, model, messages, *, temperature=0.0, max_tokens=500) -> str:
        self.calls.append(
            {
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if model not in self.answers:
            raise RuntimeError(f"unknown model {model}")
        answer = self.answers[model]
        if isinstance(answer, list):
            answer = answer.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    @property
    def models_called(self) -> list[str]:
        return [call["model"] for call in self.calls]

