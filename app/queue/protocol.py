"""
Index Queue Protocol (Interface)
Defines contract for background index job queues
"""

from typing import Awaitable, Callable, Protocol, runtime_checkable

from app.queue.schemas import IndexJob

JobHandler = Callable[[IndexJob], Awaitable[None]]


@runtime_checkable
class IndexQueueProtocol(Protocol):
    """
    Fire-and-forget queue: enqueue never waits for the job to run.
    Failed jobs are retried with exponential backoff and end up in the
    dead-letter list once max_retries is reached.
    """

    def enqueue(self, job: IndexJob) -> IndexJob:
        """
        Assign a job_id and schedule the job

        Raises:
            QueueError: If the queue is not accepting jobs
        """
        ...

    def get_job(self, job_id: str) -> IndexJob | None:
        ...

    def dead_letters(self) -> list[IndexJob]:
        ...

    async def start(self) -> None:
        ...

    async def join(self) -> None:
        """Wait until every queued job and pending retry has finished."""
        ...

    async def stop(self) -> None:
        ...
