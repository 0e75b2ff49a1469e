import asyncio
import logging
from typing import Optional

from pipeline.batch.models import JobEvent
from pipeline.core.config import EVENT_SUBSCRIBER_QUEUE_SIZE

logger = logging.getLogger(__name__)


class JobEventBus:
    """In-process fan-out of job events.

    Each subscriber gets a bounded queue; when it is full the oldest event is
    dropped so a slow consumer never blocks a worker. The latest event per job
    is kept for progress queries.
    """

    def __init__(self, queue_size: int = EVENT_SUBSCRIBER_QUEUE_SIZE):
        self.queue_size = queue_size
        self._subscribers: list[asyncio.Queue] = []
        self._latest: dict[str, JobEvent] = {}

    def publish(self, event: JobEvent) -> None:
        self._latest[event.job_id] = event
        logger.debug(
            f"Job event {event.type} progress={event.progress}",
            extra={"job_id": event.job_id},
        )
        for queue in self._subscribers:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def latest(self, job_id: str) -> Optional[JobEvent]:
        return self._latest.get(job_id)
