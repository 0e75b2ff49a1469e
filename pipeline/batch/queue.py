"""
Asynchronous batch job queue.

Jobs are persisted in the record store and their ids pushed onto an
asyncio.Queue. Worker tasks claim a job atomically (pending -> processing
under the store lock), run its operations strictly in order, and retry the
whole job with exponential backoff when an attempt fails unexpectedly.

Cancellation is cooperative: a pending job is cancelled at once, a running
job is stopped before its next operation.
"""

import asyncio
import logging
import math
import uuid
from functools import partial
from typing import Any, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from core.metrics import inc_job_attempt, inc_job_finished, inc_job_submitted
from pipeline.batch.events import JobEventBus
from pipeline.batch.handlers import OperationContext, OperationHandlers
from pipeline.batch.models import (
    BatchJob,
    JobEvent,
    JobProgress,
    JobStatus,
    Operation,
    OperationProgress,
    OperationResult,
    OperationState,
    OperationStatus,
    OperationType,
    QueueStats,
    transition,
    utcnow,
)
from pipeline.batch.templates import build_operations, resolve_refs, result_index
from pipeline.core.config import (
    DEFAULT_OPERATION_SECONDS,
    JOB_MAX_ATTEMPTS,
    JOB_RETRY_BASE_DELAY_SECONDS,
)
from pipeline.core.exceptions import (
    JobAlreadyTerminalError,
    JobExecutionError,
    JobNotFoundError,
    OperationError,
    ValidationError,
)
from pipeline.resilience import RetryConfig, async_retry_with_backoff
from services.persistence import InMemoryRecordStore

logger = logging.getLogger(__name__)

OPERATION_TYPES = {t.value for t in OperationType}


class JobCancelled(Exception):
    """Raised inside a worker when it observes a cancellation request."""


def validate_submission(
    name: Any, operations: Sequence[Union[Operation, dict]]
) -> list[Operation]:
    """
    Check a job submission and return its typed operations.

    Raises:
      ValidationError: On the first problem found; nothing has been persisted.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Batch name is required", field="name")
    if not operations:
        raise ValidationError("At least one operation is required", field="operations")

    typed: list[Operation] = []
    for index, raw in enumerate(operations):
        field_prefix = f"operations[{index}]"
        if isinstance(raw, Operation):
            op = raw
        else:
            if not isinstance(raw, dict):
                raise ValidationError("Operation must be an object", field=field_prefix)
            op_type = raw.get("type")
            if op_type not in OPERATION_TYPES:
                raise ValidationError(
                    f"Unknown operation type '{op_type}'", field=f"{field_prefix}.type"
                )
            try:
                op = Operation.model_validate(raw)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid operation: {e.errors()[0]['msg']}", field=field_prefix
                ) from e

        if not op.document_refs:
            raise ValidationError(
                "Operation needs at least one document ref",
                field=f"{field_prefix}.documentRefs",
            )
        for ref in op.document_refs:
            if not isinstance(ref, str) or not ref.strip():
                raise ValidationError(
                    "Document refs must be non-empty strings",
                    field=f"{field_prefix}.documentRefs",
                )
            referenced = result_index(ref)
            if referenced is not None and referenced >= index:
                raise ValidationError(
                    f"'{ref}' must reference an earlier operation",
                    field=f"{field_prefix}.documentRefs",
                )
        typed.append(op)
    return typed


class BatchJobQueue:
    def __init__(
        self,
        records: InMemoryRecordStore,
        handlers: OperationHandlers,
        bus: Optional[JobEventBus] = None,
        *,
        workers: int = 2,
        max_attempts: int = JOB_MAX_ATTEMPTS,
        retry_base_delay: float = JOB_RETRY_BASE_DELAY_SECONDS,
        default_operation_seconds: float = DEFAULT_OPERATION_SECONDS,
    ):
        self.records = records
        self.handlers = handlers
        self.bus = bus or JobEventBus()
        self.worker_count = workers
        self.retry_config = RetryConfig(
            max_attempts=max_attempts,
            initial_delay_seconds=retry_base_delay,
            max_delay_seconds=max(60.0, retry_base_delay),
            exponential_base=2.0,
            jitter=False,
        )
        self.default_operation_seconds = default_operation_seconds
        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit(
        self,
        owner_id: str,
        name: str,
        operations: Sequence[Union[Operation, dict]],
        template: Optional[str] = None,
    ) -> BatchJob:
        typed = validate_submission(name, operations)
        job = BatchJob.new(uuid.uuid4().hex, owner_id, name.strip(), typed, template)
        await self.records.insert_job(job)
        inc_job_submitted()
        self._publish(job, "job.submitted")
        self._queue.put_nowait(job.id)
        logger.info(
            f"Batch job submitted with {len(typed)} operation(s)",
            extra={"job_id": job.id, "owner_id": owner_id},
        )
        return job

    async def submit_template(
        self,
        owner_id: str,
        name: str,
        template_id: str,
        document_refs: list[str],
        custom_options: Optional[dict] = None,
    ) -> BatchJob:
        operations = build_operations(template_id, document_refs, custom_options)
        return await self.submit(owner_id, name, operations, template=template_id)

    async def get_status(self, job_id: str, owner_id: Optional[str] = None) -> BatchJob:
        job = await self.records.get_job(job_id)
        if job is None or (owner_id is not None and job.owner_id != owner_id):
            raise JobNotFoundError(job_id)
        return job

    async def cancel(self, job_id: str, owner_id: Optional[str] = None) -> BatchJob:
        """
        Cancel a pending job immediately or ask a running job to stop.

        Raises:
          JobNotFoundError: Unknown job or owned by someone else.
          JobAlreadyTerminalError: Job already completed, failed or cancelled.
        """
        await self.get_status(job_id, owner_id)

        def change(job: BatchJob) -> BatchJob:
            if job.is_terminal:
                raise JobAlreadyTerminalError(job.id, job.status.value)
            if job.status == JobStatus.PENDING:
                return transition(
                    job, JobStatus.CANCELLED, operation_states=_skip_pending(job)
                )
            return transition(job, job.status, cancel_requested=True)

        job = await self.records.update_job(job_id, change)
        if job.status == JobStatus.CANCELLED:
            inc_job_finished(JobStatus.CANCELLED.value)
            self._publish(job, "job.cancelled")
            logger.info("Pending batch job cancelled", extra={"job_id": job_id})
        else:
            self._publish(job, "job.cancel_requested")
            logger.info("Cancellation requested for running job", extra={"job_id": job_id})
        return job

    async def list_jobs(
        self, owner_id: str, page: int = 1, limit: int = 20
    ) -> tuple[list[BatchJob], int]:
        return await self.records.list_jobs(owner_id, page, limit)

    async def stats(self) -> QueueStats:
        counts = await self.records.count_by_status()
        return QueueStats(
            waiting=counts[JobStatus.PENDING],
            active=counts[JobStatus.PROCESSING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            cancelled=counts[JobStatus.CANCELLED],
            total=sum(counts.values()),
        )

    async def progress(self, job_id: str, owner_id: Optional[str] = None) -> JobProgress:
        job = await self.get_status(job_id, owner_id)
        return JobProgress(
            overall=job.progress,
            status=job.status,
            per_operation_status=[
                OperationProgress(
                    index=state.index,
                    type=state.type,
                    status=state.status,
                    document_count=len(job.operations[state.index].document_refs),
                    error=state.error,
                )
                for state in job.operation_states
            ],
            estimated_seconds_remaining=self.estimate_remaining(job),
            started_at=job.started_at,
            updated_at=job.updated_at,
            last_event=self.bus.latest(job_id),
        )

    def estimate_remaining(self, job: BatchJob) -> float:
        """Remaining operations times the mean observed operation duration."""
        if job.is_terminal:
            return 0.0
        durations = [
            s.duration_seconds
            for s in job.operation_states
            if s.duration_seconds is not None
        ]
        mean = sum(durations) / len(durations) if durations else self.default_operation_seconds
        remaining = sum(
            1
            for s in job.operation_states
            if s.status in (OperationStatus.PENDING, OperationStatus.PROCESSING)
        )
        return max(0.0, round(remaining * mean, 1))

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._tasks:
            return
        await self.recover()
        for i in range(self.worker_count):
            worker_id = f"worker-{i}-{uuid.uuid4().hex[:8]}"
            self._tasks.append(asyncio.create_task(self._worker(worker_id)))
        logger.info(f"Batch queue started with {self.worker_count} worker(s)")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Batch queue stopped")

    async def recover(self) -> None:
        """Reset jobs left processing by a previous run and re-enqueue pending ones."""
        for job in await self.records.jobs_with_status([JobStatus.PROCESSING]):
            if job.cancel_requested:
                job = await self.records.update_job(
                    job.id,
                    lambda j: transition(
                        j, JobStatus.CANCELLED, operation_states=_skip_pending(j)
                    ),
                )
                inc_job_finished(JobStatus.CANCELLED.value)
                self._publish(job, "job.cancelled")
                logger.warning(
                    "Cancelled stale processing job with a pending cancellation",
                    extra={"job_id": job.id},
                )
                continue
            await self.records.update_job(
                job.id,
                lambda j: transition(j, JobStatus.PENDING, lease_owner=None),
            )
            logger.warning("Re-queued stale processing job", extra={"job_id": job.id})

        pending = await self.records.jobs_with_status([JobStatus.PENDING])
        for job in pending:
            self._queue.put_nowait(job.id)
        if pending:
            logger.info(f"Recovered {len(pending)} pending job(s)")

    async def join(self) -> None:
        """Wait until every enqueued job id has been handled."""
        await self._queue.join()

    async def _worker(self, worker_id: str) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                await self.process_job(job_id, worker_id)
            except Exception:
                logger.exception(
                    "Worker failed to process job", extra={"job_id": job_id}
                )
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def process_job(self, job_id: str, worker_id: str) -> Optional[BatchJob]:
        job = await self.records.claim_job(job_id, worker_id)
        if job is None:
            logger.debug("Job not claimable, skipping", extra={"job_id": job_id})
            return None

        self._publish(job, "job.processing")
        logger.info(f"Job claimed by {worker_id}", extra={"job_id": job_id})

        try:
            return await async_retry_with_backoff(
                self._run_attempt,
                self.retry_config,
                (JobExecutionError,),
                job_id,
                before_retry=partial(self._before_retry, job_id),
            )
        except JobCancelled:
            return await self._finish(job_id, JobStatus.CANCELLED)
        except JobExecutionError as e:
            return await self._finish(job_id, JobStatus.FAILED, error_message=e.message)

    async def _before_retry(self, job_id: str, attempt: int, exc: Exception) -> None:
        job = await self.records.get_job(job_id)
        if job is not None and job.cancel_requested:
            raise JobCancelled()
        logger.info(
            f"Retrying job, attempt {attempt}",
            extra={"job_id": job_id, "attempt": attempt},
        )

    async def _run_attempt(self, job_id: str) -> BatchJob:
        job = await self.records.update_job(
            job_id,
            lambda j: transition(
                j,
                JobStatus.PROCESSING,
                attempts=j.attempts + 1,
                operation_states=[
                    OperationState(index=s.index, type=s.type) for s in j.operation_states
                ],
                results=[],
                result_refs=[],
            ),
        )
        inc_job_attempt()

        total = len(job.operations)
        outputs: dict[int, list[str]] = {}
        errors: list[str] = []

        for index, operation in enumerate(job.operations):
            current = await self.records.get_job(job_id)
            if current.cancel_requested:
                raise JobCancelled()

            await self._set_operation(
                job_id, index, status=OperationStatus.PROCESSING, started_at=utcnow()
            )
            self._publish(current, "operation.started", index)

            ctx = OperationContext(
                job_id=job_id,
                owner_id=job.owner_id,
                index=index,
                operation=operation,
                refs=resolve_refs(operation.document_refs, outputs),
            )
            try:
                result = await self.handlers.run(ctx)
            except OperationError as e:
                result = OperationResult(
                    index=index,
                    type=operation.type,
                    success=False,
                    failures=ctx.failures,
                    error=e.reason,
                )
            except Exception as e:
                message = str(e) or type(e).__name__
                await self._set_operation(
                    job_id,
                    index,
                    status=OperationStatus.FAILED,
                    finished_at=utcnow(),
                    error=message,
                )
                logger.error(
                    f"Operation {index} ({operation.type.value}) crashed: {message}",
                    extra={"job_id": job_id, "operation": operation.type.value},
                )
                raise JobExecutionError(job_id, message, operation_index=index) from e

            if not result.success:
                errors.append(f"{operation.type.value}: {result.error}")
            outputs[index] = result.output_refs
            job = await self._record_result(job_id, result, _percent(index + 1, total))
            self._publish(
                job,
                "operation.completed" if result.success else "operation.failed",
                index,
                result.error,
            )

        if not any(r.success for r in job.results):
            return await self._finish(
                job_id, JobStatus.FAILED, error_message="; ".join(errors)
            )
        return await self._finish(job_id, JobStatus.COMPLETED, progress=100)

    async def _set_operation(self, job_id: str, index: int, **fields: Any) -> BatchJob:
        def change(job: BatchJob) -> BatchJob:
            states = [s.model_copy() for s in job.operation_states]
            states[index] = states[index].model_copy(update=fields)
            return transition(job, job.status, operation_states=states)

        return await self.records.update_job(job_id, change)

    async def _record_result(
        self, job_id: str, result: OperationResult, progress: int
    ) -> BatchJob:
        def change(job: BatchJob) -> BatchJob:
            states = [s.model_copy() for s in job.operation_states]
            states[result.index] = states[result.index].model_copy(
                update={
                    "status": OperationStatus.COMPLETED
                    if result.success
                    else OperationStatus.FAILED,
                    "finished_at": utcnow(),
                    "error": result.error,
                }
            )
            return transition(
                job,
                job.status,
                operation_states=states,
                results=[*job.results, result],
                result_refs=[*job.result_refs, *result.output_refs],
                progress=max(job.progress, progress),
            )

        return await self.records.update_job(job_id, change)

    async def _finish(self, job_id: str, status: JobStatus, **changes: Any) -> BatchJob:
        job = await self.records.update_job(
            job_id,
            lambda j: transition(j, status, operation_states=_skip_pending(j), **changes),
        )
        inc_job_finished(status.value)
        self._publish(job, f"job.{status.value}", message=job.error_message)
        logger.info(
            f"Batch job {status.value} after {job.attempts} attempt(s)",
            extra={"job_id": job_id, "attempt": job.attempts},
        )
        return job

    def _publish(
        self,
        job: BatchJob,
        event_type: str,
        operation_index: Optional[int] = None,
        message: Optional[str] = None,
    ) -> None:
        self.bus.publish(
            JobEvent(
                job_id=job.id,
                type=event_type,
                status=job.status,
                progress=job.progress,
                operation_index=operation_index,
                message=message,
            )
        )


def _skip_pending(job: BatchJob) -> list[OperationState]:
    return [
        s.model_copy(update={"status": OperationStatus.SKIPPED})
        if s.status == OperationStatus.PENDING
        else s
        for s in job.operation_states
    ]


def _percent(done: int, total: int) -> int:
    """Completed share as a whole percentage, halves rounded up."""
    return math.floor(100 * done / total + 0.5)
