"""Custom exception hierarchy for the document enhancement pipeline.

Errors that reach the HTTP boundary inherit from BaseError and carry
structured information compatible with RFC 7807 Problem Details.
Errors that are recovered inside the pipeline (a failed OCR variant,
a rejected correction) inherit from PipelineError instead and never
leave the component that handles them.
"""

from typing import Any, Optional
from enum import Enum


class ErrorCategory(str, Enum):
    """Error categories for classification and monitoring."""

    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    EXTERNAL_SERVICE = "external_service"
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"


class BaseError(Exception):
    """Base exception for all errors surfaced to API callers.

    Attributes:
        message: Human-readable error message
        error_code: Application-specific error code
        category: Error category for classification
        http_status: HTTP status code to return
        details: Additional context (dict)
        retryable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory,
        http_status: int,
        details: Optional[dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.category = category
        self.http_status = http_status
        self.details = details or {}
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to RFC 7807 Problem Details format.

        Returns:
            Dict containing standardized error information
        """
        return {
            "type": f"/errors/{self.error_code}",
            "title": self.message,
            "status": self.http_status,
            "code": self.error_code,
            "detail": self.details.get("detail"),
            "category": self.category.value,
            "retryable": self.retryable,
        }


class ClientError(BaseError):
    """Base for client errors (4xx).

    Represents errors caused by invalid client requests.
    These are not retryable by default.
    """

    def __init__(self, message: str, error_code: str, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            category=ErrorCategory.CLIENT_ERROR,
            http_status=kwargs.pop("http_status", 400),
            retryable=False,
            **kwargs,
        )


class ValidationError(ClientError):
    """Malformed job or operation submission (400 Bad Request).

    Raised synchronously by the batch queue before anything is persisted.

    Args:
        message: Validation error description
        field: Name of the field that failed validation
        details: Additional validation context
    """

    def __init__(self, message: str, field: str, **kwargs):
        additional_details = kwargs.pop("details", {})
        additional_details["field"] = field
        additional_details.setdefault("detail", message)
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            http_status=400,
            details=additional_details,
            **kwargs,
        )
        self.field = field


class ResourceNotFoundError(ClientError):
    """Resource not found (404).

    Args:
        resource_type: Type of resource (e.g., "Batch job", "Document")
        resource_id: Identifier of the missing resource
    """

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            message=f"{resource_type} not found",
            error_code="RESOURCE_NOT_FOUND",
            http_status=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class JobNotFoundError(ResourceNotFoundError):
    """Batch job does not exist or belongs to another owner."""

    def __init__(self, job_id: str):
        super().__init__("Batch job", job_id)


class DocumentNotFoundError(ResourceNotFoundError):
    """Stored document does not exist or belongs to another owner."""

    def __init__(self, document_id: str):
        super().__init__("Document", document_id)


class JobAlreadyTerminalError(ClientError):
    """Cancellation requested for a job that already finished (409)."""

    def __init__(self, job_id: str, status: str):
        super().__init__(
            message=f"Batch job is already {status}",
            error_code="JOB_ALREADY_TERMINAL",
            http_status=409,
            details={
                "job_id": job_id,
                "status": status,
                "detail": "Only pending or processing jobs can be cancelled",
            },
        )


class UnsupportedDocumentError(ClientError):
    """Document bytes cannot be decoded as a PDF or raster image (415)."""

    def __init__(self, filename: str, media_type: str):
        super().__init__(
            message="Unsupported document type",
            error_code="UNSUPPORTED_DOCUMENT",
            http_status=415,
            details={
                "filename": filename,
                "media_type": media_type,
                "detail": f"Cannot read '{filename}' ({media_type}) as PDF or image",
            },
        )


class PayloadTooLargeError(ClientError):
    """Uploaded document exceeds the size limit (413).

    Args:
        max_size_mb: Configured limit in megabytes
        actual_size_mb: Size of the rejected upload in megabytes
    """

    def __init__(self, max_size_mb: int, actual_size_mb: float):
        super().__init__(
            message="Document too large",
            error_code="PAYLOAD_TOO_LARGE",
            http_status=413,
            details={
                "max_size_mb": max_size_mb,
                "actual_size_mb": round(actual_size_mb, 2),
                "detail": f"Document is {actual_size_mb:.1f} MB, limit is {max_size_mb} MB",
            },
        )


class ServerError(BaseError):
    """Base for server errors (5xx).

    Represents internal server errors or failures in external dependencies.
    Some server errors may be retryable.
    """

    def __init__(self, message: str, error_code: str, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            category=ErrorCategory.SERVER_ERROR,
            http_status=kwargs.pop("http_status", 500),
            retryable=kwargs.pop("retryable", False),
            **kwargs,
        )


class ExternalServiceError(ServerError):
    """External service failure (502 / 503 / 504).

    Raised when external capabilities (OCR engine, LLM, storage) fail or time out.
    These errors are retryable as they may be transient.

    Args:
        service_name: Name of the external service
        error_type: Type of error ("timeout", "unavailable", "error",
            "circuit_open", "rate_limit")
        details: Additional error context
    """

    def __init__(self, service_name: str, error_type: str, **kwargs):
        if error_type == "timeout":
            http_status = 504
        elif error_type in ("circuit_open", "unavailable"):
            http_status = 503
        else:
            http_status = 502

        additional_details = kwargs.pop("details", {})
        additional_details.update(
            {
                "service": service_name,
                "error_type": error_type,
            }
        )

        super().__init__(
            message=f"{service_name} service {error_type}",
            error_code=f"{service_name.upper()}_{error_type.upper()}",
            http_status=http_status,
            retryable=True,
            details=additional_details,
            **kwargs,
        )
        self.service_name = service_name
        self.error_type = error_type


class DocumentOCRFailure(ServerError):
    """Every page of a document failed OCR (500).

    Fatal for the document's OCR operation. Inside a batch job it becomes an
    operation-level failure; on the synchronous endpoint it is the response.

    Args:
        document_id: Identifier of the document
        page_errors: Mapping of page index to failure reason
    """

    def __init__(self, document_id: str, page_errors: dict[int, str]):
        super().__init__(
            message="OCR failed for every page of the document",
            error_code="DOCUMENT_OCR_FAILED",
            http_status=500,
            details={
                "document_id": document_id,
                "page_errors": {str(k): v for k, v in page_errors.items()},
                "detail": f"{len(page_errors)} page(s) produced no text",
            },
        )
        self.document_id = document_id
        self.page_errors = page_errors


class OperationError(ServerError):
    """A batch operation could not produce any output.

    Recorded as a failed operation on the job; the job keeps going.
    """

    def __init__(self, operation_type: str, reason: str, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"operation": operation_type, "detail": reason})
        super().__init__(
            message=reason,
            error_code="OPERATION_FAILED",
            details=details,
            **kwargs,
        )
        self.operation_type = operation_type
        self.reason = reason


class JobExecutionError(ServerError):
    """Uncaught error while executing a job attempt.

    Triggers the job-level retry policy. The message of the last attempt is
    stored verbatim on the job when retries are exhausted.
    """

    def __init__(self, job_id: str, message: str, operation_index: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="JOB_EXECUTION_FAILED",
            retryable=True,
            details={"job_id": job_id, "operation_index": operation_index},
        )
        self.job_id = job_id
        self.operation_index = operation_index


class PipelineError(Exception):
    """Base for failures that are recovered inside the pipeline."""


class OCRFailure(PipelineError):
    """The OCR engine could not recognise one image variant."""

    def __init__(self, reason: str, variant: Optional[str] = None):
        super().__init__(f"OCR failed: {reason}")
        self.reason = reason
        self.variant = variant


class PageOCRFailure(PipelineError):
    """All enhancement variants of one page failed OCR."""

    def __init__(self, page_index: int, reasons: list[str]):
        super().__init__(
            f"OCR failed on page {page_index} for all {len(reasons)} variant(s)"
        )
        self.page_index = page_index
        self.reasons = reasons


class CorrectionFailure(PipelineError):
    """Every model in the correction fallback chain failed."""

    def __init__(self, errors: dict[str, str]):
        super().__init__(f"Text correction unavailable after {len(errors)} attempt(s)")
        self.errors = errors


class CorrectionRejected(PipelineError):
    """A correction was produced but failed output validation."""

    def __init__(self, reason: str, model: Optional[str] = None):
        super().__init__(f"Correction rejected: {reason}")
        self.reason = reason
        self.model = model
