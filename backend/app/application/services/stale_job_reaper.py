"""Stale Job Reaper — periodically fails jobs abandoned by crashed workers."""

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta, timezone

from app.application.interfaces.processing_job_repository import ProcessingJobRepository

logger = logging.getLogger(__name__)

RepositoryScope = Callable[[], AbstractAsyncContextManager[ProcessingJobRepository]]


class StaleJobReaper:
    """Asyncio daemon that marks long-running RUNNING/RETRYING jobs as FAILED.

    A worker that dies mid-stage never reaches a terminal state, and its job
    would hold the document's "one active job" slot forever. Each sweep runs a
    single conditional update through the repository, so a job that completes
    at the same moment is left alone.
    """

    def __init__(
        self,
        repository_scope: RepositoryScope,
        stale_after: timedelta,
        interval_seconds: float = 60,
    ) -> None:
        self._repository_scope = repository_scope
        self._stale_after = stale_after
        self._interval = interval_seconds
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "StaleJobReaper started (stale after %s, every %ss)",
            self._stale_after,
            self._interval,
        )

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("StaleJobReaper stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("StaleJobReaper sweep error")

            await asyncio.sleep(self._interval)

    async def sweep(self, cutoff: datetime | None = None) -> int:
        """Fail every job stuck since before ``cutoff`` (default: now − stale_after)."""
        if cutoff is None:
            cutoff = datetime.now(timezone.utc) - self._stale_after

        async with self._repository_scope() as repository:
            count = await repository.mark_stale_jobs_as_failed(cutoff)

        if count:
            logger.warning("Marked %d stale job(s) as failed (cutoff %s)", count, cutoff.isoformat())
        else:
            logger.debug("No stale jobs before %s", cutoff.isoformat())
        return count
