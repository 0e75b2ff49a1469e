import asyncio
import logging
from collections import OrderedDict
from functools import partial
from typing import Any, Optional

import pytesseract
from PIL import Image
from pytesseract import Output, TesseractError, TesseractNotFoundError

from pipeline.core.config import DEFAULT_THRESHOLDS, OCR_CALL_TIMEOUT_SECONDS
from pipeline.core.exceptions import OCRFailure
from pipeline.models.dto import EnhancementVariant, OCRResult, WordBox

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "eng"


def primary_language(language: Optional[str], default: str = DEFAULT_LANGUAGE) -> str:
    """Return the first component of a composite hint like 'eng+spa' or 'eng,spa'."""
    if not language:
        return default
    primary = language.split(",")[0].split("+")[0].strip()
    return primary or default


def normalize_confidence(raw: float) -> float:
    """Map Tesseract's 0-100 confidence onto [0, 1]."""
    return max(0.0, min(1.0, float(raw) / 100.0))


def parse_tesseract_data(
    data: dict[str, list[Any]],
    *,
    variant: str,
    min_word_confidence: float = DEFAULT_THRESHOLDS.min_word_confidence,
) -> OCRResult:
    """Build an OCRResult from pytesseract's image_to_data dictionary.

    Words are regrouped into lines by (block, paragraph, line) and paragraphs
    are separated by a blank line. Layout rows (confidence -1) are ignored.
    """
    lines: "OrderedDict[tuple[int, int, int], list[str]]" = OrderedDict()
    confidences: list[float] = []
    words: list[WordBox] = []

    for i, raw_text in enumerate(data.get("text", [])):
        text = (raw_text or "").strip()
        try:
            conf = float(data["conf"][i])
        except (KeyError, IndexError, TypeError, ValueError):
            continue
        if not text or conf < 0:
            continue

        key = (
            int(data["block_num"][i]),
            int(data["par_num"][i]),
            int(data["line_num"][i]),
        )
        lines.setdefault(key, []).append(text)
        confidences.append(conf)

        if conf > min_word_confidence:
            words.append(
                WordBox(
                    text=text,
                    confidence=normalize_confidence(conf),
                    bbox=(
                        int(data["left"][i]),
                        int(data["top"][i]),
                        int(data["width"][i]),
                        int(data["height"][i]),
                    ),
                )
            )

    rendered: list[str] = []
    previous_paragraph: Optional[tuple[int, int]] = None
    for (block, par, _line), line_words in lines.items():
        if previous_paragraph is not None and (block, par) != previous_paragraph:
            rendered.append("")
        rendered.append(" ".join(line_words))
        previous_paragraph = (block, par)

    confidence = (
        normalize_confidence(sum(confidences) / len(confidences)) if confidences else 0.0
    )
    return OCRResult(
        text="\n".join(rendered),
        confidence=confidence,
        words=tuple(words),
        source_variant=variant,
    )


class TesseractOCRAdapter:
    """Recognizes text in an image variant with the local Tesseract engine.

    Tesseract is driven with the primary language only; composite hints are
    reduced by ``primary_language``. Calls run in the default executor and are
    bounded by ``timeout_seconds``.
    """

    supports_composite_languages = False

    def __init__(
        self,
        tesseract_cmd: Optional[str] = None,
        timeout_seconds: float = OCR_CALL_TIMEOUT_SECONDS,
        min_word_confidence: float = DEFAULT_THRESHOLDS.min_word_confidence,
        default_language: str = DEFAULT_LANGUAGE,
        page_segmentation_mode: int = 3,
    ):
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.timeout_seconds = timeout_seconds
        self.min_word_confidence = min_word_confidence
        self.default_language = default_language
        self.config = f"--oem 3 --psm {page_segmentation_mode}"
        self._available: Optional[bool] = None

    def is_available(self) -> bool:
        if self._available is None:
            try:
                version = pytesseract.get_tesseract_version()
                logger.info(f"Tesseract OCR found: {version}")
                self._available = True
            except (TesseractNotFoundError, OSError) as e:
                logger.error(f"Tesseract OCR not available: {e}")
                self._available = False
        return self._available

    async def recognize(self, variant: EnhancementVariant, language: str) -> OCRResult:
        lang = primary_language(language, self.default_language)
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(
                    None, partial(self._recognize_sync, variant, lang)
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise OCRFailure(
                f"timed out after {self.timeout_seconds}s", variant=variant.label
            ) from e

    def _recognize_sync(self, variant: EnhancementVariant, lang: str) -> OCRResult:
        try:
            image = Image.fromarray(variant.pixels)
            data = pytesseract.image_to_data(
                image,
                lang=lang,
                config=self.config,
                output_type=Output.DICT,
                timeout=self.timeout_seconds,
            )
        except TesseractNotFoundError as e:
            self._available = False
            raise OCRFailure("engine_unavailable", variant=variant.label) from e
        except TesseractError as e:
            raise OCRFailure(
                f"tesseract error ({e.status}): {e.message}", variant=variant.label
            ) from e
        except RuntimeError as e:
            # pytesseract signals its own timeout with RuntimeError
            raise OCRFailure(str(e), variant=variant.label) from e
        except (ValueError, TypeError) as e:
            raise OCRFailure(f"invalid image: {e}", variant=variant.label) from e
        except OSError as e:
            # temp file or subprocess failure inside pytesseract
            raise OCRFailure(f"engine io error: {e}", variant=variant.label) from e

        return parse_tesseract_data(
            data,
            variant=variant.label,
            min_word_confidence=self.min_word_confidence,
        )
