"""Job and document-result records.

The in-memory store is the source of truth while the process runs; the
JSON-file store additionally mirrors every change to disk so jobs survive
a restart. All mutations go through one asyncio lock.
"""

import asyncio
import json
import logging
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Optional

from pipeline.batch.models import BatchJob, JobStatus, transition, utcnow

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    def __init__(self):
        self._jobs: dict[str, BatchJob] = {}
        self._results: dict[str, dict] = {}
        self._lock = asyncio.Lock()

    # hooks for durable subclasses
    async def _job_changed(self, job: BatchJob) -> None:
        pass

    async def _result_saved(self, ref: str, record: dict) -> None:
        pass

    async def insert_job(self, job: BatchJob) -> BatchJob:
        async with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
            await self._job_changed(job)
        return job

    async def get_job(self, job_id: str) -> Optional[BatchJob]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def update_job(
        self, job_id: str, change: Callable[[BatchJob], BatchJob]
    ) -> BatchJob:
        """Apply change to the stored job atomically and return the new copy.

        Raises:
          KeyError: If the job does not exist.
          Exception: Whatever change raises; the stored job is left untouched.
        """
        async with self._lock:
            current = self._jobs[job_id]
            updated = change(current.model_copy(deep=True))
            self._jobs[job_id] = updated
            await self._job_changed(updated)
            return updated.model_copy(deep=True)

    async def claim_job(self, job_id: str, worker_id: str) -> Optional[BatchJob]:
        """Compare-and-set pending -> processing; None when not claimable."""
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING or job.cancel_requested:
                return None
            claimed = transition(
                job,
                JobStatus.PROCESSING,
                lease_owner=worker_id,
                started_at=job.started_at or utcnow(),
            )
            self._jobs[job_id] = claimed
            await self._job_changed(claimed)
            return claimed.model_copy(deep=True)

    async def list_jobs(
        self, owner_id: str, page: int = 1, limit: int = 20
    ) -> tuple[list[BatchJob], int]:
        owned = sorted(
            (j for j in self._jobs.values() if j.owner_id == owner_id),
            key=lambda j: j.created_at,
            reverse=True,
        )
        start = max(page - 1, 0) * limit
        return [j.model_copy(deep=True) for j in owned[start : start + limit]], len(owned)

    async def jobs_with_status(self, statuses: Iterable[JobStatus]) -> list[BatchJob]:
        wanted = set(statuses)
        jobs = [j for j in self._jobs.values() if j.status in wanted]
        jobs.sort(key=lambda j: j.created_at)
        return [j.model_copy(deep=True) for j in jobs]

    async def count_by_status(self) -> dict[JobStatus, int]:
        counts = {status: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status] += 1
        return counts

    async def save_result(self, ref: str, record: dict) -> None:
        async with self._lock:
            self._results[ref] = dict(record)
            await self._result_saved(ref, record)

    async def get_result(self, ref: str) -> Optional[dict]:
        record = self._results.get(ref)
        return dict(record) if record is not None else None


class JsonFileRecordStore(InMemoryRecordStore):
    """Mirrors records to `<root>/jobs/<id>.json` and `<root>/results/<ref>.json`."""

    def __init__(self, root: Path):
        super().__init__()
        self.jobs_dir = Path(root) / "jobs"
        self.results_dir = Path(root) / "results"
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        self.results_dir.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        for path in sorted(self.jobs_dir.glob("*.json")):
            try:
                job = BatchJob.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error(f"Skipping unreadable job record {path.name}: {e}")
                continue
            self._jobs[job.id] = job

        for path in sorted(self.results_dir.glob("*.json")):
            try:
                self._results[path.stem] = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.error(f"Skipping unreadable result record {path.name}: {e}")

        logger.info(
            f"Loaded {len(self._jobs)} job(s) and {len(self._results)} result(s) "
            f"from {self.jobs_dir.parent}"
        )

    @staticmethod
    def _write_atomic(path: Path, payload: str) -> None:
        tmp = path.with_suffix(".tmp")
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(path)

    async def _write(self, path: Path, payload: str) -> None:
        # still under the store lock, so writes land in mutation order
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, partial(self._write_atomic, path, payload))

    async def _job_changed(self, job: BatchJob) -> None:
        await self._write(
            self.jobs_dir / f"{job.id}.json", job.model_dump_json(by_alias=True)
        )

    async def _result_saved(self, ref: str, record: dict) -> None:
        await self._write(
            self.results_dir / f"{ref}.json",
            json.dumps(record, ensure_ascii=False, default=str),
        )
