"""Batch job endpoints: submission, status, progress and cancellation."""

import logging

from fastapi import APIRouter, Depends, Query, Request, status

from api.schemas import (
    BatchListResponse,
    CancelBatchResponse,
    CreateBatchRequest,
    CreateBatchResponse,
    FromTemplateRequest,
    ProblemDetail,
    TemplatesResponse,
)
from core.dependencies import get_owner_id, get_queue
from pipeline.batch.models import BatchJob, JobProgress, QueueStats
from pipeline.batch.queue import BatchJobQueue
from pipeline.batch.templates import list_templates

router = APIRouter(prefix="/batch", tags=["batch"])
logger = logging.getLogger(__name__)

_errors = {
    400: {"description": "Validation Error", "model": ProblemDetail},
    404: {"description": "Batch not found", "model": ProblemDetail},
}


def _created(job: BatchJob) -> CreateBatchResponse:
    return CreateBatchResponse(
        batch_id=job.id,
        status=job.status.value,
        name=job.name,
        operation_count=len(job.operations),
    )


@router.post(
    "",
    response_model=CreateBatchResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: _errors[400]},
)
async def create_batch(
    request: Request,
    body: CreateBatchRequest,
    owner_id: str = Depends(get_owner_id),
    queue: BatchJobQueue = Depends(get_queue),
):
    job = await queue.submit(owner_id, body.name, body.operations)
    logger.info(
        f"[NEW BATCH] name={job.name!r} operations={len(job.operations)}",
        extra={"trace_id": getattr(request.state, "trace_id", None), "job_id": job.id},
    )
    return _created(job)


@router.get("", response_model=BatchListResponse)
async def list_batches(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    owner_id: str = Depends(get_owner_id),
    queue: BatchJobQueue = Depends(get_queue),
):
    items, total = await queue.list_jobs(owner_id, page, limit)
    return BatchListResponse(items=items, page=page, limit=limit, total=total)


@router.get("/templates", response_model=TemplatesResponse)
async def get_templates():
    return TemplatesResponse(templates=list_templates())


@router.post(
    "/from-template",
    response_model=CreateBatchResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: _errors[400]},
)
async def create_batch_from_template(
    body: FromTemplateRequest,
    owner_id: str = Depends(get_owner_id),
    queue: BatchJobQueue = Depends(get_queue),
):
    job = await queue.submit_template(
        owner_id,
        body.name,
        body.template_id,
        body.document_refs,
        body.custom_options,
    )
    return _created(job)


@router.get("/stats", response_model=QueueStats)
async def get_queue_stats(queue: BatchJobQueue = Depends(get_queue)):
    return await queue.stats()


@router.get("/{batch_id}", response_model=BatchJob, responses={404: _errors[404]})
async def get_batch(
    batch_id: str,
    owner_id: str = Depends(get_owner_id),
    queue: BatchJobQueue = Depends(get_queue),
):
    return await queue.get_status(batch_id, owner_id)


@router.get(
    "/{batch_id}/progress", response_model=JobProgress, responses={404: _errors[404]}
)
async def get_batch_progress(
    batch_id: str,
    owner_id: str = Depends(get_owner_id),
    queue: BatchJobQueue = Depends(get_queue),
):
    return await queue.progress(batch_id, owner_id)


@router.delete(
    "/{batch_id}",
    response_model=CancelBatchResponse,
    responses={
        404: _errors[404],
        409: {"description": "Batch already finished", "model": ProblemDetail},
    },
)
async def cancel_batch(
    batch_id: str,
    owner_id: str = Depends(get_owner_id),
    queue: BatchJobQueue = Depends(get_queue),
):
    job = await queue.cancel(batch_id, owner_id)
    return CancelBatchResponse(
        batch_id=job.id,
        status=job.status.value,
        cancel_requested=job.cancel_requested,
    )
