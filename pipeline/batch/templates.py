"""
Predefined batch workflows and `$RESULT_n` references between operations.

An operation may list `$RESULT_n` among its document refs; at run time that
entry is replaced by the output refs of operation n of the same job.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pipeline.core.exceptions import ValidationError

RESULT_REF = re.compile(r"^\$RESULT_(\d+)$")


def result_index(ref: str) -> Optional[int]:
    match = RESULT_REF.match(ref)
    return int(match.group(1)) if match else None


def resolve_refs(refs: list[str], outputs: dict[int, list[str]]) -> list[str]:
    """Expand `$RESULT_n` entries using the outputs of earlier operations.

    A reference to an operation without outputs expands to nothing.
    """
    resolved: list[str] = []
    for ref in refs:
        index = result_index(ref)
        if index is None:
            resolved.append(ref)
        else:
            resolved.extend(outputs.get(index, []))
    return list(dict.fromkeys(resolved))


@dataclass(frozen=True)
class BatchTemplate:
    id: str
    name: str
    description: str
    build: Callable[[list[str], dict[str, Any]], list[dict[str, Any]]]

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "operations": self.build([], {}),
        }


def _merge_compress(refs: list[str], custom: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {
            "type": "merge",
            "documentRefs": refs,
            "options": {"outputName": custom.get("mergedName") or "merged-document.pdf"},
        },
        {
            "type": "compress",
            "documentRefs": ["$RESULT_0"],
            "options": {
                "quality": custom.get("quality") or 0.7,
                "outputName": custom.get("compressedName") or "compressed-merged.pdf",
            },
        },
    ]


def _ocr_summarize(
    refs: list[str], custom: dict[str, Any], summary_type: str, enhance_with_ai: bool
) -> list[dict[str, Any]]:
    return [
        {
            "type": "ocr",
            "documentRefs": refs,
            "options": {
                "language": custom.get("language") or "eng",
                "enhanceWithAI": custom.get("enhanceWithAI", enhance_with_ai),
            },
        },
        {
            "type": "summarize",
            "documentRefs": ["$RESULT_0"],
            "options": {"summaryType": custom.get("summaryType") or summary_type},
        },
    ]


def _convert_merge_compress(refs: list[str], custom: dict[str, Any]) -> list[dict[str, Any]]:
    return [
        {
            "type": "convert",
            "documentRefs": refs,
            "options": {"outputName": custom.get("convertedName") or "converted-images.pdf"},
        },
        {
            "type": "merge",
            "documentRefs": ["$RESULT_0", *refs],
            "options": {"outputName": custom.get("mergedName") or "final-merged.pdf"},
        },
        {
            "type": "compress",
            "documentRefs": ["$RESULT_1"],
            "options": {
                "quality": custom.get("quality") or 0.8,
                "outputName": custom.get("compressedName") or "final-compressed.pdf",
            },
        },
    ]


TEMPLATES: dict[str, BatchTemplate] = {
    t.id: t
    for t in (
        BatchTemplate(
            "merge-compress",
            "Merge & Compress",
            "Merge multiple PDFs and compress the result",
            _merge_compress,
        ),
        BatchTemplate(
            "ocr-summarize",
            "OCR & Summarize",
            "Extract text from documents and generate summaries",
            lambda refs, custom: _ocr_summarize(refs, custom, "auto", False),
        ),
        BatchTemplate(
            "convert-merge-compress",
            "Convert, Merge & Compress",
            "Convert images to PDF, merge with the other PDFs, and compress",
            _convert_merge_compress,
        ),
        BatchTemplate(
            "full-ai-processing",
            "Complete AI Processing",
            "OCR with AI correction followed by a detailed summary",
            lambda refs, custom: _ocr_summarize(refs, custom, "detailed", True),
        ),
    )
}


def list_templates() -> list[dict[str, Any]]:
    return [template.describe() for template in TEMPLATES.values()]


def build_operations(
    template_id: str, document_refs: list[str], custom_options: Optional[dict[str, Any]] = None
) -> list[dict[str, Any]]:
    """
    Raises:
      ValidationError: Unknown template id.
    """
    template = TEMPLATES.get(template_id)
    if template is None:
        raise ValidationError(f"Unknown template '{template_id}'", field="templateId")
    return template.build(list(document_refs), custom_options or {})
