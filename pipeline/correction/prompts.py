"""
Prompt templates for OCR text correction and summarisation.

Templates contain exactly one `{}` placeholder where the document text is
injected; the document-specific instruction block is filled in first.
"""

from pipeline.correction.classifier import DocumentType

CORRECTION_SYSTEM_PROMPT = (
    "You are a professional OCR text enhancement expert. Clean up OCR-extracted "
    "text while preserving all original information exactly. Focus on fixing OCR "
    "errors, improving readability, and maintaining document structure. Return only "
    "the enhanced text without any explanations."
)

CORRECTION_PROMPT_V1 = """You are an expert at cleaning up OCR-extracted text from government documents, business documents, academic papers, invoices, contracts, and general text documents.

Please clean and enhance the following OCR-extracted text by:
1. Fixing obvious OCR errors and misread characters (like "rn" -> "m", "cl" -> "d", "0" -> "O")
2. Correcting spacing and formatting issues
3. Removing unwanted symbols, artifacts, and garbled text
4. Preserving all original information, numbers, dates, and names exactly
5. Preserving line breaks and paragraph structure where appropriate
6. Removing duplicate characters or words that are OCR artifacts

Document type detected: {doc_type}
{instructions}

Original OCR text:
{}

Please provide only the cleaned and enhanced text without any explanations or comments:"""

DOCUMENT_INSTRUCTIONS: dict[DocumentType, str] = {
    DocumentType.GOVERNMENT_ID: """
Special focus for government/ID documents:
- Fix common ID document terms (e.g., "Date of Birth", "Father's Name", "Address")
- Preserve ID numbers, dates, and official codes exactly
- Clean up government agency names and official terminology
- Fix address formatting and postal codes""",
    DocumentType.BUSINESS: """
Special focus for business documents:
- Fix company names, addresses, and contact information
- Preserve monetary amounts, invoice numbers, and dates exactly
- Clean up product descriptions and quantities
- Fix tax information and business terms""",
    DocumentType.ACADEMIC: """
Special focus for academic documents:
- Fix institution names and academic terminology
- Preserve grades, GPAs, and course codes exactly
- Clean up degree titles and academic credentials
- Fix dates and academic year information""",
    DocumentType.MEDICAL: """
Special focus for medical documents:
- Fix medical terminology and drug names
- Preserve patient information and medical codes exactly
- Clean up doctor names and medical facility information
- Fix dosage information and medical instructions""",
    DocumentType.LEGAL: """
Special focus for legal documents:
- Fix legal terminology and case references
- Preserve court names, case numbers, and legal codes exactly
- Clean up party names and legal addresses
- Fix dates and legal document formatting""",
    DocumentType.FINANCIAL: """
Special focus for financial documents:
- Fix bank names and financial terminology
- Preserve account numbers, amounts, and transaction details exactly
- Clean up financial institution information
- Fix dates and financial codes""",
    DocumentType.GENERAL: """
Special focus for general documents:
- Fix common words and phrases
- Preserve names, dates, and numbers exactly
- Clean up formatting and structure
- Fix punctuation and spacing issues""",
}

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that creates clear, accurate summaries of documents. "
    "Focus on the most important information and maintain the original context. "
    "Write in plain text without markdown formatting."
)

SUMMARY_INSTRUCTIONS = {
    "brief": "Provide a brief 2-3 sentence summary of the following text:",
    "detailed": (
        "Provide a detailed summary with key points and important details "
        "from the following text:"
    ),
    "auto": (
        "Provide a concise but comprehensive summary of the following text, "
        "highlighting the main points and key information:"
    ),
}

SUMMARY_MAX_TOKENS = {"brief": 150, "detailed": 500, "auto": 300}


def build_correction_messages(raw_text: str, doc_type: DocumentType) -> list[dict[str, str]]:
    template = CORRECTION_PROMPT_V1.replace("{doc_type}", doc_type.value).replace(
        "{instructions}", DOCUMENT_INSTRUCTIONS[doc_type]
    )
    return [
        {"role": "system", "content": CORRECTION_SYSTEM_PROMPT},
        {"role": "user", "content": template.replace("{}", raw_text, 1)},
    ]


def build_summary_messages(text: str, summary_type: str) -> list[dict[str, str]]:
    instruction = SUMMARY_INSTRUCTIONS.get(summary_type, SUMMARY_INSTRUCTIONS["auto"])
    return [
        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
        {"role": "user", "content": f"{instruction}\n\n{text}"},
    ]
