"""FastAPI dependency injection functions.

Services are built once in the lifespan and stored on app.state; routes get
them through these functions, which answer 503 when a service is missing.
"""

from typing import Any

from fastapi import Header, HTTPException, Request, status

from pipeline.batch.queue import BatchJobQueue
from pipeline.orchestrator import DocumentPipeline
from services.persistence import InMemoryRecordStore
from services.storage import StoragePort


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} unavailable",
        )
    return service


async def get_queue(request: Request) -> BatchJobQueue:
    """Get the batch job queue from app state.

    Raises:
        HTTPException: 503 if the queue is unavailable
    """
    return _from_state(request, "queue", "Batch queue")


async def get_pipeline(request: Request) -> DocumentPipeline:
    """Get the document pipeline from app state.

    Raises:
        HTTPException: 503 if the pipeline is unavailable
    """
    return _from_state(request, "pipeline", "Document pipeline")


async def get_storage(request: Request) -> StoragePort:
    return _from_state(request, "storage", "Document storage")


async def get_records(request: Request) -> InMemoryRecordStore:
    return _from_state(request, "records", "Record store")


async def get_owner_id(
    x_owner_id: str = Header(..., alias="X-Owner-ID", min_length=1),
) -> str:
    """Caller identity, set by the authenticating gateway in front of this service."""
    return x_owner_id
