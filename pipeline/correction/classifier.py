"""
Keyword-based document type classifier used to pick correction instructions.
"""

import re
from enum import Enum
from typing import Optional


class DocumentType(str, Enum):
    GOVERNMENT_ID = "government_id"
    BUSINESS = "business"
    ACADEMIC = "academic"
    MEDICAL = "medical"
    LEGAL = "legal"
    FINANCIAL = "financial"
    GENERAL = "general"


# Checked in declaration order; the first match wins
DOCUMENT_TYPE_PATTERNS: tuple[tuple[DocumentType, re.Pattern], ...] = (
    (
        DocumentType.GOVERNMENT_ID,
        re.compile(
            r"pan|aadhaar|passport|license|certificate|govt|government|"
            r"income tax|birth certificate|marriage certificate",
            re.IGNORECASE,
        ),
    ),
    (
        DocumentType.BUSINESS,
        re.compile(
            r"invoice|receipt|bill|purchase|order|quotation|estimate|contract|agreement",
            re.IGNORECASE,
        ),
    ),
    (
        DocumentType.ACADEMIC,
        re.compile(
            r"university|college|degree|transcript|academic|student|course|grade|gpa",
            re.IGNORECASE,
        ),
    ),
    (
        DocumentType.MEDICAL,
        re.compile(
            r"patient|doctor|medical|hospital|prescription|diagnosis|treatment|health|clinic",
            re.IGNORECASE,
        ),
    ),
    (
        DocumentType.LEGAL,
        re.compile(
            r"court|legal|law|attorney|lawyer|case|judgment|petition|affidavit|notary",
            re.IGNORECASE,
        ),
    ),
    (
        DocumentType.FINANCIAL,
        re.compile(
            r"bank|account|statement|balance|transaction|credit|debit|loan|mortgage|insurance",
            re.IGNORECASE,
        ),
    ),
)


def classify_document(text: str) -> DocumentType:
    for doc_type, pattern in DOCUMENT_TYPE_PATTERNS:
        if pattern.search(text):
            return doc_type
    return DocumentType.GENERAL


def resolve_document_type(text: str, hint: Optional[str] = None) -> DocumentType:
    """Use the caller's hint when it names a known type, else classify the text."""
    if hint:
        try:
            return DocumentType(hint.strip().lower())
        except ValueError:
            pass
    return classify_document(text)
