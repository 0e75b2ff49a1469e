"""Unit tests for exception hierarchy."""

import pytest

from pipeline.core.exceptions import (
    BaseError,
    ClientError,
    CorrectionFailure,
    CorrectionRejected,
    DocumentNotFoundError,
    DocumentOCRFailure,
    ErrorCategory,
    ExternalServiceError,
    JobAlreadyTerminalError,
    JobExecutionError,
    JobNotFoundError,
    OperationError,
    PageOCRFailure,
    PayloadTooLargeError,
    PipelineError,
    ResourceNotFoundError,
    ServerError,
    UnsupportedDocumentError,
    ValidationError,
)


class TestBaseError:
    """RFC 7807 conversion."""

    def test_to_dict(self):
        """to_dict produces the problem-detail fields."""
        error = BaseError(
            message="Boom",
            error_code="BOOM",
            category=ErrorCategory.SERVER_ERROR,
            http_status=500,
            details={"detail": "context"},
            retryable=True,
        )
        assert error.to_dict() == {
            "type": "/errors/BOOM",
            "title": "Boom",
            "status": 500,
            "code": "BOOM",
            "detail": "context",
            "category": "server_error",
            "retryable": True,
        }

    def test_defaults(self):
        """details defaults to an empty dict and retryable to False."""
        error = BaseError("x", "X", ErrorCategory.CLIENT_ERROR, 400)
        assert error.details == {}
        assert error.retryable is False
        assert error.to_dict()["detail"] is None


class TestClientErrors:
    """4xx errors."""

    def test_client_error_is_not_retryable(self):
        """ClientError defaults to 400 and never retries."""
        error = ClientError("bad", "BAD")
        assert error.http_status == 400
        assert error.category == ErrorCategory.CLIENT_ERROR
        assert error.retryable is False

    def test_validation_error_records_field(self):
        """ValidationError keeps the field name in details."""
        error = ValidationError("Unknown operation type 'rotate'", field="operations[0].type")
        assert error.http_status == 400
        assert error.field == "operations[0].type"
        assert error.details["field"] == "operations[0].type"
        assert error.to_dict()["detail"] == "Unknown operation type 'rotate'"

    @pytest.mark.parametrize(
        "error, resource",
        [
            (JobNotFoundError("job-1"), "Batch job"),
            (DocumentNotFoundError("doc-1"), "Document"),
        ],
    )
    def test_not_found_errors(self, error, resource):
        """Specific not-found errors are 404 ResourceNotFoundErrors."""
        assert isinstance(error, ResourceNotFoundError)
        assert error.http_status == 404
        assert error.resource_type == resource
        assert error.message == f"{resource} not found"

    def test_job_already_terminal_is_conflict(self):
        """Cancelling a finished job is a 409."""
        error = JobAlreadyTerminalError("job-1", "completed")
        assert error.http_status == 409
        assert error.error_code == "JOB_ALREADY_TERMINAL"
        assert error.message == "Batch job is already completed"

    def test_unsupported_document(self):
        """Undecodable documents answer 415."""
        error = UnsupportedDocumentError("notes.txt", "text/plain")
        assert error.http_status == 415
        assert "notes.txt" in error.details["detail"]

    def test_payload_too_large(self):
        """Oversized uploads answer 413 with rounded sizes."""
        error = PayloadTooLargeError(max_size_mb=50, actual_size_mb=51.234)
        assert error.http_status == 413
        assert error.details["actual_size_mb"] == 51.23
        assert error.details["max_size_mb"] == 50


class TestServerErrors:
    """5xx errors."""

    @pytest.mark.parametrize(
        "error_type, status",
        [
            ("timeout", 504),
            ("unavailable", 503),
            ("circuit_open", 503),
            ("error", 502),
            ("rate_limit", 502),
        ],
    )
    def test_external_service_status_mapping(self, error_type, status):
        """Error type selects the HTTP status."""
        error = ExternalServiceError("LLM", error_type)
        assert error.http_status == status
        assert error.retryable is True
        assert error.error_code == f"LLM_{error_type.upper()}"
        assert error.details["service"] == "LLM"

    def test_external_service_merges_details(self):
        """Caller details are kept next to service and error_type."""
        error = ExternalServiceError("S3", "error", details={"bucket": "docs"})
        assert error.details == {"bucket": "docs", "service": "S3", "error_type": "error"}

    def test_document_ocr_failure(self):
        """Whole-document OCR failure is a 500 with per-page reasons."""
        error = DocumentOCRFailure("doc-1", {0: "blank", 1: "timeout"})
        assert isinstance(error, ServerError)
        assert error.http_status == 500
        assert error.details["page_errors"] == {"0": "blank", "1": "timeout"}

    def test_operation_error(self):
        """OperationError keeps the reason as its message."""
        error = OperationError("merge", "merge needs at least two PDF documents")
        assert error.message == "merge needs at least two PDF documents"
        assert error.details["operation"] == "merge"

    def test_job_execution_error_is_retryable(self):
        """JobExecutionError drives the job retry policy."""
        error = JobExecutionError("job-1", "disk full", operation_index=2)
        assert error.retryable is True
        assert error.details == {"job_id": "job-1", "operation_index": 2}


class TestPipelineErrors:
    """Errors recovered inside the pipeline never reach HTTP."""

    @pytest.mark.parametrize(
        "error",
        [
            PageOCRFailure(3, ["a", "b"]),
            CorrectionFailure({"m1": "timeout"}),
            CorrectionRejected("length ratio 0.10 below 0.3", model="m1"),
        ],
    )
    def test_not_base_errors(self, error):
        """Pipeline errors are not BaseErrors."""
        assert isinstance(error, PipelineError)
        assert not isinstance(error, BaseError)

    def test_page_failure_message(self):
        """Message names the page and variant count."""
        assert "page 3" in str(PageOCRFailure(3, ["a", "b"]))
        assert "2 variant" in str(PageOCRFailure(3, ["a", "b"]))
