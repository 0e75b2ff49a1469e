"""Pydantic request/response schemas for API endpoints."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pipeline.batch.models import BatchJob, QueueStats


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    This standardized error format provides structured, machine-readable
    error information for HTTP API responses.

    See: https://www.rfc-editor.org/rfc/rfc7807
    """

    type: str = Field(..., description="URI reference identifying the problem type")
    title: str = Field(..., description="Short, human-readable summary of the problem")
    status: int = Field(..., description="HTTP status code for this problem")
    detail: Optional[str] = Field(
        None, description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        None,
        description="URI reference identifying this specific occurrence (e.g., request path)",
    )

    # Extension members (allowed by RFC 7807)
    code: str = Field(..., description="Application-specific error code")
    category: str = Field(
        ..., description="Error category (client_error, server_error, etc.)"
    )
    retryable: bool = Field(
        default=False, description="Whether the request can be retried"
    )
    trace_id: Optional[str] = Field(
        None, description="Distributed tracing ID for correlation across services"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "/errors/VALIDATION_ERROR",
                "title": "Unknown operation type 'rotate'",
                "status": 400,
                "detail": "Unknown operation type 'rotate'",
                "instance": "/batch",
                "code": "VALIDATION_ERROR",
                "category": "client_error",
                "retryable": False,
                "trace_id": "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
            }
        }
    )


class CamelSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateBatchRequest(CamelSchema):
    """Batch submission. Operations are validated by the queue, not here."""

    name: str = Field("", description="Human-readable batch name")
    operations: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Ordered operations: {type, documentRefs, options}",
    )

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "name": "Quarterly reports",
                "operations": [
                    {"type": "merge", "documentRefs": ["a1", "b2"], "options": {}},
                    {
                        "type": "compress",
                        "documentRefs": ["$RESULT_0"],
                        "options": {"quality": 0.7},
                    },
                ],
            }
        },
    )


class FromTemplateRequest(CamelSchema):
    template_id: str = Field(..., description="One of the ids from GET /batch/templates")
    name: str = Field("", description="Human-readable batch name")
    document_refs: list[str] = Field(default_factory=list)
    custom_options: dict[str, Any] = Field(default_factory=dict)


class CreateBatchResponse(CamelSchema):
    batch_id: str
    status: str
    name: str
    operation_count: int


class CancelBatchResponse(CamelSchema):
    batch_id: str
    status: str
    cancel_requested: bool


class BatchListResponse(CamelSchema):
    items: list[BatchJob]
    page: int
    limit: int
    total: int


class TemplatesResponse(CamelSchema):
    templates: list[dict[str, Any]]


class OCRRequest(CamelSchema):
    language: str = Field("eng", description="Tesseract language code, composite hint or 'auto'")
    enhance_with_ai: bool = Field(False, alias="enhanceWithAI")
    extract_original: bool = False
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    document_type: Optional[str] = Field(
        None, description="Overrides keyword classification for correction prompts"
    )


class OCRResponse(CamelSchema):
    text: str
    confidence: float
    page_count: int
    ai_enhanced: bool
    detected_language: str
    original_text: Optional[str] = None
    enhanced_text: Optional[str] = None
    method: str
    meets_threshold: bool
    failed_pages: list[int] = Field(default_factory=list)
    correction_status: str
    document_type: Optional[str] = None


class UploadResponse(CamelSchema):
    document_id: str
    filename: str
    media_type: str
    size: int


class HealthResponse(CamelSchema):
    """System health status response."""

    status: str = Field(..., description="Overall system status (healthy/degraded)")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    ocr_available: bool
    llm_enabled: bool
    llm_circuits: list[dict[str, Any]] = Field(
        default_factory=list, description="Circuit breaker state per AI model"
    )
    queue: Optional[QueueStats] = None
