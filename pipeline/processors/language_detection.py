"""Character-pattern language guess for OCR output.

Each language is scored by the share of characters matching its alphabet.
Languages are checked in declaration order and only a strictly better score
replaces the current best, so plain Latin text resolves to English.
"""

import re

DEFAULT_LANGUAGE = "eng"
MIN_TEXT_LENGTH = 10

_PUNCTUATION = r"\s.,!?;:'\"()\-"

LANGUAGE_PATTERNS: dict[str, re.Pattern] = {
    "eng": re.compile(rf"[a-zA-Z{_PUNCTUATION}]"),
    "spa": re.compile(rf"[a-zA-ZáéíóúüñÁÉÍÓÚÜÑ{_PUNCTUATION}]"),
    "fra": re.compile(rf"[a-zA-ZàâäéèêëïîôöùûüÿçÀÂÄÉÈÊËÏÎÔÖÙÛÜŸÇ{_PUNCTUATION}]"),
    "deu": re.compile(rf"[a-zA-ZäöüßÄÖÜ{_PUNCTUATION}]"),
    "rus": re.compile(rf"[а-яёА-ЯЁ{_PUNCTUATION}]"),
    "chi_sim": re.compile(r"[\u4e00-\u9fff]"),
    "jpn": re.compile(r"[\u3040-\u309f\u30a0-\u30ff\u4e00-\u9fff]"),
    "ara": re.compile(r"[\u0600-\u06ff]"),
}

SUPPORTED_LANGUAGES = tuple(LANGUAGE_PATTERNS)


def detect_language(text: str) -> str:
    if not text or len(text) < MIN_TEXT_LENGTH:
        return DEFAULT_LANGUAGE

    best_language = DEFAULT_LANGUAGE
    best_score = 0.0
    for language, pattern in LANGUAGE_PATTERNS.items():
        score = len(pattern.findall(text)) / len(text)
        if score > best_score:
            best_score = score
            best_language = language
    return best_language
