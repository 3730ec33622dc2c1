"""Background Processor — asyncio daemon that dispatches ready processing jobs."""

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta, timezone

from app.application.interfaces.processing_job_repository import ProcessingJobRepository
from app.application.services.processing_job_service import ProcessingJobService
from app.domain.entities.processing_job import ProcessingJob
from app.domain.job_state_machine import JobStatus

logger = logging.getLogger(__name__)

ServiceScope = Callable[[], AbstractAsyncContextManager[ProcessingJobService]]
RepositoryScope = Callable[[], AbstractAsyncContextManager[ProcessingJobRepository]]


class BackgroundProcessor:
    """Asyncio daemon that polls for ready jobs and runs each in its own task.

    Runs as an asyncio.Task inside FastAPI's lifespan. Every job gets a
    dedicated task and a dedicated service scope (and so its own database
    session), so one job's backoff sleep never holds up another. Ready jobs
    are PENDING ones plus RETRYING and FAILED ones idle for longer than
    ``idle_after``, i.e. whose owning worker is gone. An idle FAILED job
    (typically one the stale-job reaper failed) is resumed when
    ``resume_failed`` is set and the retry policy still allows it. Otherwise
    it is dead-lettered.
    """

    def __init__(
        self,
        service_scope: ServiceScope,
        repository_scope: RepositoryScope,
        poll_interval: float = 5,
        max_concurrency: int = 4,
        idle_after: timedelta = timedelta(minutes=1),
        resume_failed: bool = False,
    ) -> None:
        self._service_scope = service_scope
        self._repository_scope = repository_scope
        self._poll_interval = poll_interval
        self._max_concurrency = max(1, max_concurrency)
        self._idle_after = idle_after
        self._resume_failed = resume_failed
        self._running = False
        self._task: asyncio.Task | None = None
        self._in_flight: dict[str, asyncio.Task] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def start(self) -> None:
        """Start the background polling loop."""
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("BackgroundProcessor started (max %d concurrent jobs)", self._max_concurrency)

    async def stop(self) -> None:
        """Stop polling and cancel jobs still in flight.

        Cancelled jobs stay RUNNING or RETRYING in storage until the stale-job
        reaper reclaims them.
        """
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("BackgroundProcessor stopped")

    async def drain(self) -> None:
        """Wait until every dispatched job task has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("BackgroundProcessor polling error")

            await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> int:
        """Fetch ready jobs with a short-lived repository scope and dispatch them.

        Returns the number of jobs dispatched.
        """
        free = self._max_concurrency - len(self._in_flight)
        if free <= 0:
            return 0

        idle_cutoff = datetime.now(timezone.utc) - self._idle_after
        async with self._repository_scope() as repository:
            jobs = await repository.find_pending(limit=free, retrying_before=idle_cutoff)
            if len(jobs) < free:
                jobs += await repository.find_failed_jobs(idle_cutoff, limit=free - len(jobs))

        dispatched = 0
        for job in jobs:
            if job.id in self._in_flight:
                continue
            task = asyncio.create_task(self._run(job), name=f"processing-job-{job.id}")
            self._in_flight[job.id] = task
            task.add_done_callback(lambda _t, job_id=job.id: self._in_flight.pop(job_id, None))
            dispatched += 1

        if dispatched:
            logger.info("Dispatched %d processing job(s)", dispatched)
        return dispatched

    async def _run(self, job: ProcessingJob) -> None:
        """Execute one job inside its own service scope."""
        try:
            async with self._service_scope() as service:
                if job.status == JobStatus.FAILED:
                    resumed = await service.retry_job(job.id) if self._resume_failed else None
                    if resumed is None:
                        await service.dead_letter_failed_job(job.id)
                        return
                    job = resumed
                final = await service.execute_with_retry(job)
                logger.info("Job %s finished as %s", final.id, final.status.value)
        except asyncio.CancelledError:
            logger.warning("Job %s interrupted by shutdown", job.id)
            raise
        except Exception:
            logger.exception("Job %s crashed outside its retry loop", job.id)
