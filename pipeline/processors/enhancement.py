import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import cv2
import numpy as np
from PIL import Image, ImageEnhance

from pipeline.core.config import (
    HIGH_CONTRAST_MAX_SIDE,
    MAX_PIXELS,
    MODERATE_SHARPEN_MAX_SIDE,
)
from pipeline.models.dto import EnhancementVariant, PageImage

logger = logging.getLogger(__name__)

ORIGINAL_LABEL = "original"


@dataclass(frozen=True)
class EnhancementProfile:
    """A labeled image transform producing one candidate variant."""

    label: str
    transform: Callable[[np.ndarray], np.ndarray]


def to_grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


def fit_inside(image: np.ndarray, max_side: int) -> np.ndarray:
    """Scale so the longest side equals max_side, keeping aspect ratio."""
    height, width = image.shape[:2]
    longest = max(height, width)
    if longest == 0 or longest == max_side:
        return image

    scale = max_side / longest
    new_width = max(1, int(round(width * scale)))
    new_height = max(1, int(round(height * scale)))

    if new_width * new_height > MAX_PIXELS:
        logger.warning(
            f"Skipping resize: target size [{new_width}x{new_height}] exceeds "
            f"max safe pixel count ({MAX_PIXELS})."
        )
        return image

    interpolation = cv2.INTER_CUBIC if scale > 1.0 else cv2.INTER_AREA
    return cv2.resize(image, (new_width, new_height), interpolation=interpolation)


def normalize(gray: np.ndarray) -> np.ndarray:
    """Stretch intensities to the full 0..255 range."""
    return cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)


def linear(gray: np.ndarray, alpha: float, beta: float) -> np.ndarray:
    """Apply alpha * x + beta with saturation to uint8."""
    return cv2.convertScaleAbs(gray, alpha=alpha, beta=beta)


def sharpen(gray: np.ndarray, sigma: float = 1.0, amount: float = 1.0) -> np.ndarray:
    """Unsharp mask."""
    blurred = cv2.GaussianBlur(gray, (0, 0), sigma)
    return cv2.addWeighted(gray, 1.0 + amount, blurred, -amount, 0)


def high_contrast_binary(image: np.ndarray) -> np.ndarray:
    gray = to_grayscale(fit_inside(image, HIGH_CONTRAST_MAX_SIDE))
    stretched = linear(normalize(gray), alpha=2.0, beta=-50)
    _, binary = cv2.threshold(stretched, 120, 255, cv2.THRESH_BINARY)
    return binary


def moderate_sharpen(image: np.ndarray) -> np.ndarray:
    gray = to_grayscale(fit_inside(image, MODERATE_SHARPEN_MAX_SIDE))
    return linear(sharpen(normalize(gray), sigma=1.0), alpha=1.3, beta=-15)


def denoise_contrast(image: np.ndarray) -> np.ndarray:
    gray = to_grayscale(image)
    contrasted = ImageEnhance.Contrast(Image.fromarray(gray)).enhance(1.5)
    return cv2.fastNlMeansDenoising(
        np.array(contrasted), h=13, templateWindowSize=7
    )


HIGH_CONTRAST_BINARY = EnhancementProfile("high-contrast-binary", high_contrast_binary)
MODERATE_SHARPEN = EnhancementProfile("moderate-sharpen", moderate_sharpen)
DENOISE_CONTRAST = EnhancementProfile("denoise-contrast", denoise_contrast)

DEFAULT_PROFILES: tuple[EnhancementProfile, ...] = (
    HIGH_CONTRAST_BINARY,
    MODERATE_SHARPEN,
)


class ImageEnhancementEngine:
    """Produces candidate variants of a page image for OCR.

    The untouched original always comes first, followed by one variant per
    profile. A failing profile is logged and skipped.
    """

    def __init__(self, profiles: Optional[Sequence[EnhancementProfile]] = None):
        self.profiles = tuple(DEFAULT_PROFILES if profiles is None else profiles)
        labels = [ORIGINAL_LABEL] + [p.label for p in self.profiles]
        if len(set(labels)) != len(labels):
            raise ValueError(f"Enhancement profile labels must be unique: {labels}")

    @classmethod
    def with_denoise(cls) -> "ImageEnhancementEngine":
        return cls(DEFAULT_PROFILES + (DENOISE_CONTRAST,))

    def enhance(self, image: PageImage) -> list[EnhancementVariant]:
        variants = [EnhancementVariant(label=ORIGINAL_LABEL, pixels=image.pixels)]

        for profile in self.profiles:
            try:
                pixels = profile.transform(image.pixels)
            except Exception:
                logger.warning(
                    f"Enhancement '{profile.label}' failed, skipping variant",
                    extra={"variant": profile.label, "page_index": image.page_index},
                    exc_info=True,
                )
                continue
            variants.append(EnhancementVariant(label=profile.label, pixels=pixels))

        return variants
