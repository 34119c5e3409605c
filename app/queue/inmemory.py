"""
Index Queue asyncio implementation

Process-local worker pool. Job state lives in memory; the embedding manifest
and re-index sweeps repair anything lost on restart.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from app.core.config import settings
from app.core.exceptions import QueueError
from app.core.logging import get_logger, metrics_counter
from app.queue.protocol import JobHandler
from app.queue.schemas import IndexJob, JobStatus

logger = get_logger(__name__)


class AsyncioIndexQueue:
    """Bounded asyncio worker pool with retry backoff and dead letter."""

    def __init__(
        self,
        handler: JobHandler,
        *,
        workers: int | None = None,
        completed_history: int | None = None,
    ) -> None:
        self._handler = handler
        self._worker_count = workers or settings.index_queue_workers
        self._completed_history = (
            completed_history if completed_history is not None else settings.index_queue_completed_history
        )
        self._completed_ids: deque[str] = deque()
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._jobs: dict[str, IndexJob] = {}
        self._dead_letter_ids: list[str] = []
        self._workers: list[asyncio.Task] = []
        self._retry_timers: set[asyncio.Task] = set()
        self._unsettled = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    @property
    def is_running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        if self._workers:
            return
        self._closed = False
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"index-worker-{index}")
            for index in range(self._worker_count)
        ]
        logger.info("index_queue_started", workers=self._worker_count)

    def enqueue(self, job: IndexJob) -> IndexJob:
        if self._closed:
            raise QueueError("Index queue is stopped")

        job_id = job.job_id or str(uuid4())
        prepared = job.model_copy(
            update={
                "job_id": job_id,
                "attempts": 0,
                "status": JobStatus.PENDING,
                "dead_letter_reason": None,
                "last_error": None,
                "next_retry_at": None,
            }
        )
        self._jobs[job_id] = prepared
        self._unsettled += 1
        self._idle.clear()
        self._queue.put_nowait(job_id)
        logger.debug(
            "index_job_enqueued",
            job_id=job_id,
            action=prepared.action.value,
            product_id=prepared.product_id,
        )
        return prepared

    def get_job(self, job_id: str) -> IndexJob | None:
        return self._jobs.get(job_id)

    def dead_letters(self) -> list[IndexJob]:
        return [self._jobs[job_id] for job_id in self._dead_letter_ids]

    async def join(self) -> None:
        """Wait until every enqueued job completed or was dead-lettered."""
        await self._idle.wait()

    async def stop(self) -> None:
        self._closed = True
        pending = [*self._workers, *self._retry_timers]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._workers = []
        self._retry_timers.clear()
        logger.info("index_queue_stopped")

    # Internal helpers -------------------------------------------------

    async def _worker(self, worker_index: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                await self._run(job_id)
            finally:
                self._queue.task_done()

    async def _run(self, job_id: str) -> None:
        job = self._jobs[job_id].model_copy(update={"status": JobStatus.RUNNING})
        self._jobs[job_id] = job

        try:
            await self._handler(job)
        except Exception as exc:  # noqa: BLE001 - any handler failure is retried
            self._mark_failed(job_id, str(exc) or exc.__class__.__name__)
        else:
            self._mark_success(job_id)

    def _mark_failed(self, job_id: str, error: str) -> IndexJob:
        job = self._jobs[job_id]
        attempts = job.attempts + 1
        delay_seconds = job.base_delay_seconds * (job.backoff_factor ** max(attempts - 1, 0))

        if attempts >= job.max_retries:
            updated = job.model_copy(
                update={
                    "attempts": attempts,
                    "status": JobStatus.DEAD_LETTER,
                    "last_error": error,
                    "next_retry_at": None,
                    "dead_letter_reason": error,
                }
            )
            self._jobs[job_id] = updated
            self._dead_letter_ids.append(job_id)
            self._settle()
            metrics_counter("index_job_dead_letter", action=job.action.value)
            logger.error(
                "index_job_dead_lettered",
                job_id=job_id,
                action=job.action.value,
                product_id=job.product_id,
                attempts=attempts,
                error=error,
            )
            return updated

        updated = job.model_copy(
            update={
                "attempts": attempts,
                "status": JobStatus.RETRYING,
                "last_error": error,
                "next_retry_at": datetime.now(timezone.utc) + timedelta(seconds=delay_seconds),
            }
        )
        self._jobs[job_id] = updated
        logger.warning(
            "index_job_retry_scheduled",
            job_id=job_id,
            product_id=job.product_id,
            attempts=attempts,
            delay_seconds=delay_seconds,
            error=error,
        )

        timer = asyncio.create_task(self._requeue_later(job_id, delay_seconds))
        self._retry_timers.add(timer)
        timer.add_done_callback(self._retry_timers.discard)
        return updated

    def _mark_success(self, job_id: str) -> IndexJob:
        job = self._jobs[job_id]
        updated = job.model_copy(
            update={
                "status": JobStatus.COMPLETED,
                "next_retry_at": None,
                "dead_letter_reason": None,
                "last_error": None,
            }
        )
        self._jobs[job_id] = updated
        self._settle()
        logger.debug("index_job_completed", job_id=job_id, product_id=job.product_id)
        self._forget_completed(job_id)
        return updated

    def _forget_completed(self, job_id: str) -> None:
        """Keep only the newest completed jobs; dead letters stay until restart."""
        self._completed_ids.append(job_id)
        while len(self._completed_ids) > self._completed_history:
            self._jobs.pop(self._completed_ids.popleft(), None)

    def _settle(self) -> None:
        self._unsettled -= 1
        if self._unsettled == 0:
            self._idle.set()

    async def _requeue_later(self, job_id: str, delay_seconds: float) -> None:
        await asyncio.sleep(delay_seconds)
        if not self._closed:
            self._queue.put_nowait(job_id)
