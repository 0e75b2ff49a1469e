import asyncio
import logging
from typing import Optional, Protocol

from core.metrics import record_variant_attempt
from pipeline.core.config import DEFAULT_THRESHOLDS, PipelineThresholds
from pipeline.core.exceptions import OCRFailure, PageOCRFailure
from pipeline.models.dto import EnhancementVariant, OCRResult, PageImage, PageResult
from pipeline.processors.enhancement import ImageEnhancementEngine

logger = logging.getLogger(__name__)


class OCRAdapter(Protocol):
    def is_available(self) -> bool:
        ...

    async def recognize(self, variant: EnhancementVariant, language: str) -> OCRResult:
        ...


class MultiStrategyOCR:
    """Runs OCR over every enhancement variant of a page and keeps the best.

    Variants are tried in the order the engine returns them (original first).
    The best result only changes on a strictly higher confidence, and the loop
    stops as soon as a result beats the early-exit threshold.
    """

    def __init__(
        self,
        engine: ImageEnhancementEngine,
        adapter: OCRAdapter,
        thresholds: PipelineThresholds = DEFAULT_THRESHOLDS,
    ):
        self.engine = engine
        self.adapter = adapter
        self.thresholds = thresholds

    async def orchestrate(self, image: PageImage, language: str) -> PageResult:
        loop = asyncio.get_running_loop()
        variants = await loop.run_in_executor(None, self.engine.enhance, image)

        best: Optional[OCRResult] = None
        failures: list[str] = []

        for variant in variants:
            try:
                result = await self.adapter.recognize(variant, language)
            except OCRFailure as e:
                failures.append(f"{variant.label}: {e.reason}")
                record_variant_attempt(variant.label, "failed")
                logger.warning(
                    f"OCR failed for variant '{variant.label}': {e.reason}",
                    extra={"variant": variant.label, "page_index": image.page_index},
                )
                continue

            record_variant_attempt(variant.label, "ok")
            logger.debug(
                f"Variant '{variant.label}' confidence={result.confidence:.3f}",
                extra={"variant": variant.label, "page_index": image.page_index},
            )

            if best is None or result.confidence > best.confidence:
                best = result

            if result.confidence > self.thresholds.early_exit_confidence:
                logger.info(
                    f"Early exit on variant '{variant.label}' "
                    f"(confidence {result.confidence:.3f})",
                    extra={"variant": variant.label, "page_index": image.page_index},
                )
                break

        if best is None:
            raise PageOCRFailure(image.page_index, failures)

        return PageResult.from_ocr(image.page_index, best)
