"""HTTP tests for the batch, document and health routes."""

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.routes import batch, documents, health
from core.error_handlers import (
    handle_app_error,
    handle_http_error,
    handle_unknown_error,
    handle_validation_error,
)
from core.middleware import trace_id_middleware
from core.settings import storage_settings
from pipeline.batch.events import JobEventBus
from pipeline.batch.handlers import OperationHandlers
from pipeline.batch.queue import BatchJobQueue
from pipeline.core.exceptions import BaseError
from pipeline.orchestrator import DocumentPipeline
from pipeline.processors.direct_text import DirectTextExtractor
from pipeline.processors.enhancement import ImageEnhancementEngine
from pipeline.processors.multi_strategy import MultiStrategyOCR
from pipeline.processors.rasterizer import DocumentRasterizer
from services.persistence import InMemoryRecordStore
from services.storage import InMemoryStorage
from tests._fakes import FakeOCRAdapter

OWNER = {"X-Owner-ID": "owner-1"}
OTHER = {"X-Owner-ID": "owner-2"}

MERGE_COMPRESS = {
    "name": "Quarterly reports",
    "operations": [
        {"type": "merge", "documentRefs": ["a1", "b2"], "options": {}},
        {"type": "compress", "documentRefs": ["$RESULT_0"], "options": {"quality": 0.7}},
    ],
}


def build_app(with_queue: bool = True) -> FastAPI:
    """Routers and error handlers wired to in-memory services, no lifespan."""
    app = FastAPI()
    app.middleware("http")(trace_id_middleware)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(BaseError, handle_app_error)
    app.add_exception_handler(Exception, handle_unknown_error)
    app.include_router(health.router)
    app.include_router(batch.router)
    app.include_router(documents.router)

    adapter = FakeOCRAdapter(confidence_by_label={})
    storage = InMemoryStorage()
    records = InMemoryRecordStore()
    pipeline = DocumentPipeline(
        extractor=DirectTextExtractor(),
        rasterizer=DocumentRasterizer(),
        ocr=MultiStrategyOCR(ImageEnhancementEngine(), adapter),
    )
    app.state.storage = storage
    app.state.records = records
    app.state.pipeline = pipeline
    app.state.ocr_adapter = adapter
    app.state.corrector = None
    app.state.queue = (
        BatchJobQueue(records, OperationHandlers(storage, records, pipeline), JobEventBus())
        if with_queue
        else None
    )
    return app


@pytest.fixture
def client():
    with TestClient(build_app()) as test_client:
        yield test_client


def submit(client, payload=MERGE_COMPRESS, headers=OWNER) -> str:
    response = client.post("/batch", json=payload, headers=headers)
    assert response.status_code == 201
    return response.json()["batchId"]


class TestBatchRoutes:
    """/batch"""

    def test_create(self, client):
        """A valid submission is accepted as pending."""
        response = client.post("/batch", json=MERGE_COMPRESS, headers=OWNER)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["operationCount"] == 2
        assert body["name"] == "Quarterly reports"

    def test_unknown_operation_type(self, client):
        """Unknown operation types are a 400 problem response."""
        payload = {"name": "x", "operations": [{"type": "rotate", "documentRefs": ["a"]}]}

        response = client.post("/batch", json=payload, headers=OWNER)

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["title"] == "Unknown operation type 'rotate'"
        assert response.headers["X-Trace-ID"] == body["trace_id"]

    def test_missing_owner_header(self, client):
        """Requests without an owner are rejected."""
        response = client.post("/batch", json=MERGE_COMPRESS)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_status_and_progress(self, client):
        """The owner sees the job and its per-operation progress."""
        batch_id = submit(client)

        job = client.get(f"/batch/{batch_id}", headers=OWNER).json()
        progress = client.get(f"/batch/{batch_id}/progress", headers=OWNER).json()

        assert job["id"] == batch_id
        assert job["operations"][1]["documentRefs"] == ["$RESULT_0"]
        assert progress["overall"] == 0
        assert [op["documentCount"] for op in progress["perOperationStatus"]] == [2, 1]
        assert progress["lastEvent"]["type"] == "job.submitted"

    def test_other_owner_gets_404(self, client):
        """Jobs are invisible to other owners."""
        batch_id = submit(client)

        response = client.get(f"/batch/{batch_id}", headers=OTHER)

        assert response.status_code == 404
        assert response.json()["code"] == "RESOURCE_NOT_FOUND"

    def test_cancel_then_conflict(self, client):
        """A pending job is cancelled; cancelling again is a 409."""
        batch_id = submit(client)

        first = client.delete(f"/batch/{batch_id}", headers=OWNER)
        second = client.delete(f"/batch/{batch_id}", headers=OWNER)

        assert first.status_code == 200
        assert first.json()["status"] == "cancelled"
        assert second.status_code == 409
        assert second.json()["code"] == "JOB_ALREADY_TERMINAL"

    def test_list_paginated(self, client):
        """Listing is per owner and paginated."""
        for _ in range(3):
            submit(client)
        submit(client, headers=OTHER)

        body = client.get("/batch?page=2&limit=2", headers=OWNER).json()

        assert body["total"] == 3
        assert len(body["items"]) == 1
        assert body["page"] == 2

    def test_limit_out_of_range(self, client):
        """limit above 100 is rejected."""
        assert client.get("/batch?limit=500", headers=OWNER).status_code == 400

    def test_templates_and_from_template(self, client):
        """Templates are listed and can be instantiated."""
        templates = client.get("/batch/templates").json()["templates"]
        assert len(templates) == 4

        response = client.post(
            "/batch/from-template",
            json={"templateId": "merge-compress", "name": "t", "documentRefs": ["a", "b"]},
            headers=OWNER,
        )
        assert response.status_code == 201
        assert response.json()["operationCount"] == 2

    def test_unknown_template(self, client):
        """Unknown template ids are a 400."""
        response = client.post(
            "/batch/from-template",
            json={"templateId": "nope", "name": "t", "documentRefs": ["a"]},
            headers=OWNER,
        )
        assert response.status_code == 400

    def test_stats(self, client):
        """Stats count jobs by state."""
        submit(client)
        cancelled = submit(client)
        client.delete(f"/batch/{cancelled}", headers=OWNER)

        stats = client.get("/batch/stats").json()

        assert stats == {
            "waiting": 1,
            "active": 0,
            "completed": 0,
            "failed": 0,
            "cancelled": 1,
            "total": 2,
        }

    def test_queue_missing_is_503(self):
        """Without a queue the batch routes answer 503."""
        with TestClient(build_app(with_queue=False)) as bare:
            response = bare.get("/batch/stats")
        assert response.status_code == 503
        assert response.json()["retryable"] is True


class TestDocumentRoutes:
    """/documents"""

    def upload(self, client, data, filename="invoice.pdf", content_type="application/pdf"):
        return client.post(
            "/documents", files={"file": (filename, data, content_type)}, headers=OWNER
        )

    def test_upload_and_ocr(self, client, text_pdf):
        """Uploaded PDFs with a text layer are extracted directly."""
        upload = self.upload(client, text_pdf)
        assert upload.status_code == 201
        document_id = upload.json()["documentId"]
        assert upload.json()["mediaType"] == "application/pdf"

        response = client.post(f"/documents/{document_id}/ocr", json={}, headers=OWNER)

        assert response.status_code == 200
        body = response.json()
        assert body["method"] == "direct_extraction"
        assert body["pageCount"] == 1
        assert body["meetsThreshold"] is True
        assert "Northwind" in body["text"]

        stored = client.get(f"/documents/{document_id}/result", headers=OWNER).json()
        assert stored["owner_id"] == "owner-1"

    def test_ocr_without_body_uses_defaults(self, client, text_pdf):
        """The request body is optional."""
        document_id = self.upload(client, text_pdf).json()["documentId"]

        response = client.post(f"/documents/{document_id}/ocr", headers=OWNER)

        assert response.status_code == 200
        body = response.json()
        assert body["method"] == "direct_extraction"
        assert body["aiEnhanced"] is False
        assert body["meetsThreshold"] is True

    def test_threshold_is_reported_not_enforced(self, client, text_pdf):
        """A threshold above the confidence still returns the text."""
        document_id = self.upload(client, text_pdf).json()["documentId"]

        body = client.post(
            f"/documents/{document_id}/ocr",
            json={"confidenceThreshold": 0.99},
            headers=OWNER,
        ).json()

        assert body["meetsThreshold"] is False
        assert body["text"]

    def test_other_owner_cannot_ocr(self, client, text_pdf):
        """Documents of other owners are 404."""
        document_id = self.upload(client, text_pdf).json()["documentId"]

        response = client.post(f"/documents/{document_id}/ocr", json={}, headers=OTHER)
        assert response.status_code == 404
        assert client.get(f"/documents/{document_id}/result", headers=OTHER).status_code == 404

    def test_unknown_document(self, client):
        """OCR on a missing document is 404."""
        response = client.post("/documents/" + "0" * 32 + "/ocr", json={}, headers=OWNER)
        assert response.status_code == 404

    def test_unsupported_bytes(self, client):
        """Files that are neither PDF nor image are 415."""
        response = self.upload(client, b"just some text", "notes.txt", "text/plain")
        assert response.status_code == 415

    def test_empty_file(self, client):
        """Empty uploads are 400."""
        assert self.upload(client, b"").status_code == 400

    def test_too_large(self, client, text_pdf, monkeypatch):
        """Uploads over the size limit are 413."""
        monkeypatch.setattr(storage_settings, "UPLOAD_MAX_FILE_SIZE_MB", 0)
        response = self.upload(client, text_pdf)
        assert response.status_code == 413
        assert response.json()["code"] == "PAYLOAD_TOO_LARGE"


class TestHealth:
    """/health"""

    def test_healthy(self, client):
        """OCR and queue up means healthy."""
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["ocrAvailable"] is True
        assert body["llmEnabled"] is False
        assert body["llmCircuits"] == []
        assert body["queue"]["total"] == 0

    def test_degraded_without_queue(self):
        """A missing queue makes the service degraded and 503."""
        with TestClient(build_app(with_queue=False)) as bare:
            response = bare.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_trace_id_propagated(self, client):
        """An incoming trace id is echoed back."""
        response = client.get("/health", headers={"X-Trace-ID": "trace-123"})
        assert response.headers["X-Trace-ID"] == "trace-123"
