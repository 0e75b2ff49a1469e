"""
Output checks applied to a model's correction before it replaces OCR text.
"""

import re
from typing import Optional

from pipeline.core.config import DEFAULT_THRESHOLDS, PipelineThresholds

IMPORTANT_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"[A-Z]{5}[0-9]{4}[A-Z]"),  # PAN-style ID
    re.compile(r"\d{4}\s?\d{4}\s?\d{4}"),  # 12-digit grouped number
    re.compile(r"\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}"),  # dates
    re.compile(r"\b\d{3,}\b"),
    re.compile(r"[$€£¥₹]\s?\d+|\d+\s?[$€£¥₹]"),  # currency
)


def contains_important_info(text: str) -> bool:
    return any(pattern.search(text) for pattern in IMPORTANT_PATTERNS)


def check_correction(
    original: str,
    corrected: str,
    thresholds: PipelineThresholds = DEFAULT_THRESHOLDS,
) -> Optional[str]:
    """
    Validate a corrected text against the text it was produced from.

    Returns:
      None when the correction is acceptable, otherwise the rejection reason.
    """
    original_len = len(original)
    corrected_len = len(corrected)

    if corrected_len < original_len * thresholds.min_correction_ratio:
        return (
            f"correction too short ({corrected_len} chars for {original_len} input chars)"
        )
    if corrected_len > original_len * thresholds.max_correction_ratio:
        return (
            f"correction too long ({corrected_len} chars for {original_len} input chars)"
        )
    if contains_important_info(original) and not contains_important_info(corrected):
        return "correction dropped identifiers, dates or amounts"
    return None
