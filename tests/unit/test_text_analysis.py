"""Unit tests for language detection, document classification and correction checks."""

import pytest

from pipeline.core.config import PipelineThresholds
from pipeline.correction.classifier import (
    DocumentType,
    classify_document,
    resolve_document_type,
)
from pipeline.correction.prompts import build_correction_messages, build_summary_messages
from pipeline.correction.validation import check_correction, contains_important_info
from pipeline.processors.language_detection import detect_language


class TestDetectLanguage:
    """Character-pattern language guess."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("The quick brown fox jumps over the lazy dog.", "eng"),
            ("Съешь же ещё этих мягких французских булок.", "rus"),
            ("مرحبا بكم في هذا المستند الرسمي", "ara"),
            ("これはテストのためのひらがなとカタカナです", "jpn"),
        ],
    )
    def test_scripts(self, text, expected):
        """Dominant script decides the language."""
        assert detect_language(text) == expected

    def test_plain_latin_is_english(self):
        """Ties between Latin alphabets resolve to the first declared, English."""
        assert detect_language("Hello there, general reader") == "eng"

    def test_accented_latin(self):
        """Spanish-only characters lift Spanish above English."""
        assert detect_language("¿Dónde está el niño pequeño?") == "spa"

    @pytest.mark.parametrize("text", ["", "short", "123456789"])
    def test_short_text_defaults(self, text):
        """Texts under ten characters are English by default."""
        assert detect_language(text) == "eng"


class TestClassifier:
    """Keyword document classification."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Passport number X1234567", DocumentType.GOVERNMENT_ID),
            ("INVOICE #42 for consulting", DocumentType.BUSINESS),
            ("University transcript for the student", DocumentType.ACADEMIC),
            ("Patient was seen by the doctor", DocumentType.MEDICAL),
            ("Affidavit sworn before a notary", DocumentType.LEGAL),
            ("Monthly bank statement", DocumentType.FINANCIAL),
            ("Hello world", DocumentType.GENERAL),
        ],
    )
    def test_keywords(self, text, expected):
        """Keywords map onto document types."""
        assert classify_document(text) == expected

    def test_first_match_wins(self):
        """Government keywords beat business ones."""
        assert classify_document("Invoice for passport renewal") == DocumentType.GOVERNMENT_ID

    def test_valid_hint_overrides(self):
        """A known hint wins over keywords."""
        assert resolve_document_type("Monthly bank statement", " Medical ") == DocumentType.MEDICAL

    def test_unknown_hint_ignored(self):
        """An unknown hint falls back to classification."""
        assert resolve_document_type("Monthly bank statement", "recipe") == DocumentType.FINANCIAL


class TestPrompts:
    """Prompt assembly."""

    def test_correction_prompt_injects_text_once(self):
        """Braces inside the document text are left alone."""
        text = "Total {amount} = 10"
        messages = build_correction_messages(text, DocumentType.BUSINESS)

        user = messages[1]["content"]
        assert messages[0]["role"] == "system"
        assert user.count(text) == 1
        assert "Special focus for business documents" in user
        assert "{}" not in user

    def test_summary_prompt(self):
        """Summary prompt starts with the type instruction."""
        messages = build_summary_messages("body", "detailed")
        assert messages[1]["content"].startswith("Provide a detailed summary")
        assert messages[1]["content"].endswith("body")


class TestCheckCorrection:
    """Correction output validation."""

    def test_accepts_similar_text(self):
        """Small edits that keep numbers pass."""
        assert check_correction("Invoice 1O24 total 500", "Invoice 1024 total 500") is None

    @pytest.mark.parametrize(
        "corrected, fragment",
        [("ab", "too short"), ("x" * 100, "too long")],
    )
    def test_length_bounds(self, corrected, fragment):
        """Length ratio must stay within [0.3, 3.0]."""
        reason = check_correction("some ocr text here", corrected)
        assert fragment in reason

    def test_custom_thresholds(self):
        """Ratios come from the thresholds object."""
        thresholds = PipelineThresholds(min_correction_ratio=0.9)
        assert check_correction("abcdefghij", "abcdefgh", thresholds) is not None

    def test_dropped_amount_rejected(self):
        """Losing every amount or identifier is rejected."""
        reason = check_correction("Paid $ 450 on 12/05/2023", "Paid some money recently")
        assert reason == "correction dropped identifiers, dates or amounts"

    def test_no_important_info_needed_when_absent(self):
        """Plain prose has nothing to preserve."""
        assert check_correction("helo wrld how are yuo", "hello world how are you") is None

    @pytest.mark.parametrize(
        "text",
        ["ABCDE1234F", "1234 5678 9012", "01/02/1990", "ref 4521", "€ 30", "30 ₹"],
    )
    def test_important_patterns(self, text):
        """IDs, grouped numbers, dates, long numbers and currency are detected."""
        assert contains_important_info(text)
