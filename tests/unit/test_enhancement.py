"""Unit tests for the image enhancement engine."""

import numpy as np
import pytest

from pipeline.models.dto import PageImage
from pipeline.processors.enhancement import (
    ORIGINAL_LABEL,
    EnhancementProfile,
    ImageEnhancementEngine,
    fit_inside,
    to_grayscale,
)


class TestEnhance:
    """Variant generation."""

    def test_at_least_three_distinct_variants(self, page_image):
        """Default engine yields original plus two distinct enhanced variants."""
        variants = ImageEnhancementEngine().enhance(page_image)

        labels = [v.label for v in variants]
        assert len(variants) >= 3
        assert len(set(labels)) == len(labels)
        assert labels[0] == ORIGINAL_LABEL

    def test_original_is_untouched(self, page_image):
        """The first variant is the input pixels as-is."""
        before = page_image.pixels.copy()
        variants = ImageEnhancementEngine().enhance(page_image)

        assert variants[0].pixels is page_image.pixels
        np.testing.assert_array_equal(page_image.pixels, before)

    def test_enhanced_variants_are_grayscale_uint8(self, page_image):
        """Enhanced variants are single-channel 8-bit images."""
        for variant in ImageEnhancementEngine().enhance(page_image)[1:]:
            assert variant.pixels.ndim == 2
            assert variant.pixels.dtype == np.uint8

    def test_high_contrast_variant_is_binary(self, page_image):
        """The high-contrast variant only contains 0 and 255."""
        variants = {v.label: v for v in ImageEnhancementEngine().enhance(page_image)}
        values = set(np.unique(variants["high-contrast-binary"].pixels).tolist())
        assert values <= {0, 255}

    def test_with_denoise_adds_variant(self, page_image):
        """The optional denoise profile adds a fourth variant."""
        variants = ImageEnhancementEngine.with_denoise().enhance(page_image)
        assert [v.label for v in variants][-1] == "denoise-contrast"
        assert len(variants) == 4

    def test_failing_profile_is_skipped(self, page_image):
        """A transform that raises does not abort the others."""

        def explode(pixels):
            raise ValueError("bad kernel")

        engine = ImageEnhancementEngine(
            [
                EnhancementProfile("broken", explode),
                EnhancementProfile("gray", to_grayscale),
            ]
        )
        labels = [v.label for v in engine.enhance(page_image)]
        assert labels == [ORIGINAL_LABEL, "gray"]

    def test_duplicate_labels_rejected(self):
        """Profiles must have unique labels."""
        with pytest.raises(ValueError):
            ImageEnhancementEngine(
                [EnhancementProfile("x", to_grayscale), EnhancementProfile("x", to_grayscale)]
            )

    def test_grayscale_input_supported(self):
        """Single-channel pages are enhanced too."""
        gray = PageImage(page_index=0, pixels=np.full((50, 80), 200, dtype=np.uint8))
        assert len(ImageEnhancementEngine().enhance(gray)) == 3


class TestHelpers:
    """Geometry and color helpers."""

    def test_fit_inside_keeps_aspect_ratio(self):
        """Longest side is scaled to max_side."""
        image = np.zeros((100, 50, 3), dtype=np.uint8)
        resized = fit_inside(image, 400)
        assert resized.shape[:2] == (400, 200)

    def test_fit_inside_noop_when_already_sized(self):
        """No resize when the longest side already matches."""
        image = np.zeros((400, 10), dtype=np.uint8)
        assert fit_inside(image, 400) is image

    def test_to_grayscale_handles_rgba(self):
        """RGBA input is converted to one channel."""
        rgba = np.zeros((10, 10, 4), dtype=np.uint8)
        assert to_grayscale(rgba).shape == (10, 10)
