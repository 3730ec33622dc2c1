"""Processing Job Service — drives jobs through their stages with retry and dead-lettering."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.application.interfaces.document_repository import DocumentRepository
from app.application.interfaces.processing_job_repository import ProcessingJobRepository
from app.application.interfaces.stage_handler import CHECKPOINT_KEYS
from app.application.services.dead_letter_service import DeadLetterService
from app.application.services.stage_registry import (
    PIPELINE_START_PROGRESS,
    PlannedStage,
    StageRegistry,
)
from app.domain.entities.document import Document
from app.domain.entities.processing_job import ProcessingJob
from app.domain.exceptions import ConfigurationError, EntityNotFoundError
from app.domain.job_state_machine import JobStatus
from app.domain.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

_STARTABLE = (JobStatus.PENDING, JobStatus.RETRYING)


class _ExecutionStopped(Exception):
    """Internal signal: the job left RUNNING underneath us (cancelled or reaped)."""

    def __init__(self, job: ProcessingJob):
        self.job = job
        super().__init__(job.status.value)


@dataclass(frozen=True)
class _AttemptOutcome:
    job: ProcessingJob
    # Set only when this attempt itself recorded the failure.
    error: str | None = None


class ProcessingJobService:
    """Orchestrates processing jobs.

    Every state change goes through the repository's compare-and-set
    ``transition`` so concurrent workers, cancellations and the stale-job
    reaper can never both win. Losing such a race is not an error: execution
    stops and the latest stored snapshot is returned.

    Stage handler exceptions never escape ``execute_with_retry``. They become
    FAILED → RETRYING transitions while the retry policy allows, and a
    dead-letter record plus DEAD_LETTER status once it does not.
    """

    def __init__(
        self,
        job_repository: ProcessingJobRepository,
        dead_letter_service: DeadLetterService | None,
        stage_registry: StageRegistry,
        document_repository: DocumentRepository,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if dead_letter_service is None:
            raise ConfigurationError(
                "ProcessingJobService requires a DeadLetterService; permanent failures "
                "would otherwise be lost"
            )
        self._job_repo = job_repository
        self._dead_letters = dead_letter_service
        self._registry = stage_registry
        self._documents = document_repository
        self._policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    # ── Queries ──────────────────────────────────────────────────────

    async def get_job(self, job_id: str) -> ProcessingJob:
        job = await self._job_repo.get_by_id(job_id)
        if job is None:
            raise EntityNotFoundError("ProcessingJob", job_id)
        return job

    async def list_document_jobs(self, document_id: str, limit: int = 100) -> list[ProcessingJob]:
        return await self._job_repo.get_by_document(document_id, limit=limit)

    # ── Commands ─────────────────────────────────────────────────────

    async def process_job(self, job_id: str) -> ProcessingJob:
        """Load a job by id and execute it."""
        return await self.execute_with_retry(await self.get_job(job_id))

    async def cancel_job(self, job_id: str, reason: str | None = None) -> ProcessingJob:
        """Cancel a PENDING, RUNNING or RETRYING job.

        Best effort: a stage already in flight runs to its end, but its result
        is discarded and no further stage starts.
        """
        current = await self.get_job(job_id)
        cancelled = await self._transition(current, current.cancel(reason))
        if cancelled is None:
            return await self.get_job(job_id)
        logger.info("Job %s cancelled%s", job_id, f": {reason}" if reason else "")
        return cancelled

    async def retry_job(self, job_id: str) -> ProcessingJob | None:
        """Move a FAILED job back to RETRYING.

        Returns None when the job does not exist, is not FAILED, or has used up
        its attempts.
        """
        job = await self._job_repo.get_by_id(job_id)
        if job is None:
            return None
        if job.status != JobStatus.FAILED or not self._policy.should_retry(job.attempt_count):
            logger.info(
                "Job %s is not retryable (status=%s, attempts=%d)",
                job_id,
                job.status.value,
                job.attempt_count,
            )
            return None
        return await self._transition(job, job.retry(self._policy.max_attempts))

    async def dead_letter_failed_job(self, job_id: str) -> ProcessingJob | None:
        """Record a dead letter for a FAILED job nobody will retry and move it to DEAD_LETTER.

        Returns None when the job does not exist or is no longer FAILED.
        """
        job = await self._job_repo.get_by_id(job_id)
        if job is None or job.status != JobStatus.FAILED:
            return None
        final = await self._dead_letter(job, job.error_message or "failed")
        logger.warning(
            "Job %s dead-lettered after %d attempt(s): %s",
            job_id,
            job.attempt_count,
            job.error_message,
        )
        return final

    async def execute_with_retry(self, job: ProcessingJob) -> ProcessingJob:
        """Run ``job`` to a final disposition and return the last stored snapshot.

        Raises ConfigurationError when a needed stage handler is missing (before
        any transition) and DeadLetterWriteError when the dead-letter sink
        rejects the record of an exhausted job.
        """
        plan = self._registry.plan(job.job_type)

        while True:
            current = await self._current(job)
            if current.status not in _STARTABLE:
                logger.info(
                    "Job %s is %s — nothing to execute", current.id, current.status.value
                )
                return current

            running = await self._transition(current, current.start())
            if running is None:
                return await self._current(job)

            logger.info(
                "Job %s (%s) attempt %d/%d started for document %s",
                running.id,
                running.job_type.value,
                running.attempt_count,
                self._policy.max_attempts,
                running.document_id,
            )

            outcome = await self._attempt(running, plan)
            if outcome.error is None:
                return outcome.job

            failed = outcome.job
            decision = self._policy.decide(failed.attempt_count)
            if not decision.should_retry:
                return await self._dead_letter(failed, outcome.error)

            retrying = await self._transition(failed, failed.retry(self._policy.max_attempts))
            if retrying is None:
                return await self._current(job)

            logger.warning(
                "Job %s failed on attempt %d: %s. Retrying in %.0f ms",
                failed.id,
                failed.attempt_count,
                outcome.error,
                decision.delay_ms,
            )
            await self._sleep(decision.delay_seconds)
            job = retrying

    # ── Attempt execution ────────────────────────────────────────────

    async def _attempt(self, job: ProcessingJob, plan: list[PlannedStage]) -> _AttemptOutcome:
        is_pipeline = len(plan) > 1
        results: dict[str, Any] = {}

        try:
            if is_pipeline:
                job = await self._record_progress(job, PIPELINE_START_PROGRESS, "Pipeline started")

            for stage in plan:
                job = await self._ensure_still_running(job)
                document = await self._load_document(job.document_id)
                logger.debug("Job %s running stage %s", job.id, stage.job_type.value)
                stage_result = await stage.handler(job, document)
                results[stage.job_type.value] = stage_result
                job = await self._after_stage(job, stage, stage_result, is_pipeline)
        except _ExecutionStopped as stopped:
            logger.info(
                "Job %s left RUNNING during execution (now %s); stopping",
                stopped.job.id,
                stopped.job.status.value,
            )
            return _AttemptOutcome(stopped.job)
        except Exception as exc:
            return await self._record_failure(job, exc)

        final_result = results if is_pipeline else results.get(plan[0].job_type.value)
        completed = await self._transition(job, job.complete(final_result))
        if completed is None:
            return _AttemptOutcome(await self._current(job))

        logger.info(
            "Job %s completed in %s ms after %d attempt(s)",
            completed.id,
            completed.execution_time_ms(),
            completed.attempt_count,
        )
        return _AttemptOutcome(completed)

    async def _after_stage(
        self,
        job: ProcessingJob,
        stage: PlannedStage,
        stage_result: dict[str, Any] | None,
        is_pipeline: bool,
    ) -> ProcessingJob:
        checkpoints = {
            key: stage_result[key]
            for key in CHECKPOINT_KEYS
            if isinstance(stage_result, dict) and stage_result.get(key) is not None
        }
        if not is_pipeline and not checkpoints:
            return job

        progress = stage.progress_after if is_pipeline else job.progress
        return await self._record_progress(
            job, progress, f"Stage {stage.job_type.value} completed", **checkpoints
        )

    async def _record_progress(
        self, job: ProcessingJob, progress: int, message: str, **checkpoints: int
    ) -> ProcessingJob:
        updated = await self._job_repo.update_progress(job.id, progress, message, **checkpoints)
        if updated is None:
            raise _ExecutionStopped(await self._current(job))
        return updated

    async def _ensure_still_running(self, job: ProcessingJob) -> ProcessingJob:
        latest = await self._current(job)
        if latest.status != JobStatus.RUNNING:
            raise _ExecutionStopped(latest)
        return latest

    async def _record_failure(self, job: ProcessingJob, exc: Exception) -> _AttemptOutcome:
        error = str(exc) or exc.__class__.__name__
        logger.exception("Job %s attempt %d failed", job.id, job.attempt_count)

        failed = await self._transition(job, job.fail(error))
        if failed is None:
            return _AttemptOutcome(await self._current(job))
        return _AttemptOutcome(failed, error=error)

    async def _dead_letter(self, job: ProcessingJob, error: str) -> ProcessingJob:
        await self._dead_letters.record(job, error_message=error, attempts=job.attempt_count)
        moved = await self._transition(job, job.mark_dead_letter())
        return moved or await self._current(job)

    # ── Helpers ──────────────────────────────────────────────────────

    async def _transition(
        self, current: ProcessingJob, target: ProcessingJob
    ) -> ProcessingJob | None:
        stored = await self._job_repo.transition(target, expected_status=current.status)
        if stored is None:
            logger.info(
                "Job %s: %s → %s lost to a concurrent update",
                current.id,
                current.status.value,
                target.status.value,
            )
        return stored

    async def _current(self, job: ProcessingJob) -> ProcessingJob:
        latest = await self._job_repo.get_by_id(job.id)
        if latest is None:
            raise EntityNotFoundError("ProcessingJob", job.id)
        return latest

    async def _load_document(self, document_id: str) -> Document:
        document = await self._documents.get_by_id(document_id)
        if document is None:
            raise EntityNotFoundError("Document", document_id)
        return document
