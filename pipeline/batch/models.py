"""
Batch job records and the single function allowed to change a job's status.

Models serialize with camelCase aliases so the API can return them as-is.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)


class OperationType(str, Enum):
    MERGE = "merge"
    SPLIT = "split"
    COMPRESS = "compress"
    CONVERT = "convert"
    OCR = "ocr"
    SUMMARIZE = "summarize"


class OperationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Operation(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    type: OperationType
    document_refs: list[str] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)


class OperationState(CamelModel):
    index: int
    type: OperationType
    status: OperationStatus = OperationStatus.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return max(0.0, (self.finished_at - self.started_at).total_seconds())


class OperationResult(CamelModel):
    """Outcome of one operation; failures lists {ref, error} per skipped input."""

    index: int
    type: OperationType
    success: bool
    output_refs: list[str] = Field(default_factory=list)
    items: list[dict[str, Any]] = Field(default_factory=list)
    failures: list[dict[str, str]] = Field(default_factory=list)
    error: Optional[str] = None


class BatchJob(CamelModel):
    id: str
    owner_id: str
    name: str
    operations: list[Operation]
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    result_refs: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    attempts: int = 0
    operation_states: list[OperationState] = Field(default_factory=list)
    results: list[OperationResult] = Field(default_factory=list)
    cancel_requested: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    lease_owner: Optional[str] = None
    template: Optional[str] = None

    @classmethod
    def new(
        cls,
        job_id: str,
        owner_id: str,
        name: str,
        operations: list[Operation],
        template: Optional[str] = None,
    ) -> BatchJob:
        return cls(
            id=job_id,
            owner_id=owner_id,
            name=name,
            operations=operations,
            operation_states=[
                OperationState(index=i, type=op.type) for i, op in enumerate(operations)
            ],
            template=template,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def result_for(self, index: int) -> Optional[OperationResult]:
        for result in self.results:
            if result.index == index:
                return result
        return None


class JobEvent(CamelModel):
    job_id: str
    type: str
    status: JobStatus
    progress: int
    operation_index: Optional[int] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class InvalidJobTransition(Exception):
    def __init__(self, job_id: str, current: JobStatus, requested: JobStatus):
        super().__init__(
            f"Job {job_id} cannot move from {current.value} to {requested.value}"
        )
        self.job_id = job_id
        self.current = current
        self.requested = requested


def transition(job: BatchJob, status: JobStatus, **changes: Any) -> BatchJob:
    """
    Return a copy of job in the given status with the given field changes.

    Raises:
      InvalidJobTransition: If job is already terminal.
    """
    if job.is_terminal:
        raise InvalidJobTransition(job.id, job.status, status)

    now = utcnow()
    update: dict[str, Any] = {"status": status, "updated_at": now, **changes}
    if status.is_terminal:
        update.setdefault("finished_at", now)
        update.setdefault("lease_owner", None)
    return job.model_copy(update=update, deep=True)


class OperationProgress(CamelModel):
    index: int
    type: OperationType
    status: OperationStatus
    document_count: int
    error: Optional[str] = None


class JobProgress(CamelModel):
    overall: int
    status: JobStatus
    per_operation_status: list[OperationProgress]
    estimated_seconds_remaining: float
    started_at: Optional[datetime] = None
    updated_at: datetime
    last_event: Optional[JobEvent] = None


class QueueStats(CamelModel):
    waiting: int
    active: int
    completed: int
    failed: int
    cancelled: int
    total: int
