import time
from typing import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    labelnames=("endpoint", "method", "status"),
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=("endpoint", "method"),
    buckets=(0.05, 0.1, 0.2, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)
document_pipeline_duration_seconds = Histogram(
    "document_pipeline_duration_seconds",
    "End-to-end document processing duration in seconds",
    labelnames=("method",),
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)
ocr_variant_attempts_total = Counter(
    "ocr_variant_attempts_total",
    "OCR attempts per enhancement variant",
    labelnames=("variant", "outcome"),
)
text_corrections_total = Counter(
    "text_corrections_total",
    "AI text corrections by outcome",
    labelnames=("outcome",),
)
jobs_submitted_total = Counter("batch_jobs_submitted_total", "Batch jobs submitted")
jobs_completed_total = Counter("batch_jobs_completed_total", "Batch jobs completed")
jobs_failed_total = Counter("batch_jobs_failed_total", "Batch jobs failed")
jobs_cancelled_total = Counter("batch_jobs_cancelled_total", "Batch jobs cancelled")
job_attempts_total = Counter("batch_job_attempts_total", "Batch job execution attempts")


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            _observe(request, "500", start)
            raise
        _observe(request, str(response.status_code), start)
        return response


def _observe(request: Request, status: str, start: float) -> None:
    endpoint = _endpoint_label(request)
    http_requests_total.labels(
        endpoint=endpoint, method=request.method, status=status
    ).inc()
    http_request_duration_seconds.labels(
        endpoint=endpoint, method=request.method
    ).observe(time.perf_counter() - start)


def _endpoint_label(request: Request) -> str:
    # Route template (e.g. /batch/{batch_id}) keeps label cardinality bounded
    route = request.scope.get("route")
    path = getattr(route, "path", None) or getattr(route, "path_format", None)
    if isinstance(path, str) and path:
        return path
    return request.url.path


def record_pipeline_duration(method: str, seconds: float) -> None:
    document_pipeline_duration_seconds.labels(method=method).observe(seconds)


def record_variant_attempt(variant: str, outcome: str) -> None:
    ocr_variant_attempts_total.labels(variant=variant, outcome=outcome).inc()


def record_correction(outcome: str) -> None:
    text_corrections_total.labels(outcome=outcome).inc()


def inc_job_submitted() -> None:
    jobs_submitted_total.inc()


def inc_job_attempt() -> None:
    job_attempts_total.inc()


def inc_job_finished(status: str) -> None:
    if status == "completed":
        jobs_completed_total.inc()
    elif status == "failed":
        jobs_failed_total.inc()
    elif status == "cancelled":
        jobs_cancelled_total.inc()


router = APIRouter()


@router.get("/metrics", tags=["health"])
async def metrics_endpoint():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
