"""SQLAlchemy implementation of the ProcessingJobRepository."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.processing_job_repository import ProcessingJobRepository
from app.domain.entities.processing_job import (
    STALE_JOB_REASON,
    JobType,
    ProcessingJob,
    clamp_progress,
)
from app.domain.exceptions import DuplicateEntityError
from app.domain.job_state_machine import ACTIVE_STATUSES, REAPABLE_STATUSES, JobStatus
from app.infrastructure.database.models.processing_job_models import ProcessingJobModel

logger = logging.getLogger(__name__)

_DUPLICATE_STATUSES = (
    JobStatus.COMPLETED.value,
    JobStatus.RUNNING.value,
    JobStatus.PENDING.value,
)


class SQLAlchemyProcessingJobRepository(ProcessingJobRepository):
    """Concrete processing job repository backed by PostgreSQL via SQLAlchemy.

    Every write commits immediately so job snapshots are visible to other
    workers (and to the reaper) as soon as they are taken. Status changes are
    conditional UPDATEs keyed on the expected current status; a zero row
    count means another actor moved the job first.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def save(self, job: ProcessingJob) -> ProcessingJob:
        model = await self._session.get(ProcessingJobModel, job.id, populate_existing=True)
        try:
            if model is None:
                self._session.add(
                    ProcessingJobModel(
                        id=job.id,
                        document_id=job.document_id,
                        job_type=job.job_type.value,
                        **self._to_values(job),
                    )
                )
            else:
                for column, value in self._to_values(job).items():
                    setattr(model, column, value)
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise DuplicateEntityError(
                "ProcessingJob",
                "document_id/job_type",
                f"{job.document_id}/{job.job_type.value}",
            ) from exc
        return job

    async def get_by_id(self, job_id: str) -> ProcessingJob | None:
        result = await self._session.execute(
            select(ProcessingJobModel)
            .where(ProcessingJobModel.id == job_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_by_document(self, document_id: str, limit: int = 100) -> list[ProcessingJob]:
        result = await self._session.execute(
            select(ProcessingJobModel)
            .where(ProcessingJobModel.document_id == document_id)
            .order_by(ProcessingJobModel.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def find_active_by_document_and_type(
        self, document_id: str, job_type: JobType
    ) -> ProcessingJob | None:
        result = await self._session.execute(
            select(ProcessingJobModel)
            .where(
                ProcessingJobModel.document_id == document_id,
                ProcessingJobModel.job_type == job_type.value,
                ProcessingJobModel.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def find_duplicate_jobs(
        self, document_id: str, job_type: JobType, fingerprint: str
    ) -> list[ProcessingJob]:
        result = await self._session.execute(
            select(ProcessingJobModel)
            .where(
                ProcessingJobModel.document_id == document_id,
                ProcessingJobModel.job_type == job_type.value,
                ProcessingJobModel.content_hash == fingerprint,
                ProcessingJobModel.status.in_(_DUPLICATE_STATUSES),
            )
            .order_by(ProcessingJobModel.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def find_pending(
        self, limit: int = 10, retrying_before: datetime | None = None
    ) -> list[ProcessingJob]:
        condition = ProcessingJobModel.status == JobStatus.PENDING.value
        if retrying_before is not None:
            condition = or_(
                condition,
                and_(
                    ProcessingJobModel.status == JobStatus.RETRYING.value,
                    ProcessingJobModel.updated_at < retrying_before,
                ),
            )
        result = await self._session.execute(
            select(ProcessingJobModel)
            .where(condition)
            .order_by(ProcessingJobModel.created_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def find_failed_jobs(
        self, failed_before: datetime, limit: int = 10
    ) -> list[ProcessingJob]:
        result = await self._session.execute(
            select(ProcessingJobModel)
            .where(
                ProcessingJobModel.status == JobStatus.FAILED.value,
                ProcessingJobModel.updated_at < failed_before,
            )
            .order_by(ProcessingJobModel.created_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def transition(
        self, job: ProcessingJob, expected_status: JobStatus
    ) -> ProcessingJob | None:
        stmt = (
            update(ProcessingJobModel)
            .where(
                ProcessingJobModel.id == job.id,
                ProcessingJobModel.status == expected_status.value,
            )
            .values(**self._to_values(job))
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(stmt)
            await self._session.commit()
        except IntegrityError:
            # The target status is active and another active job holds the slot.
            await self._session.rollback()
            logger.info(
                "Job %s: %s → %s rejected by the active-job constraint",
                job.id,
                expected_status.value,
                job.status.value,
            )
            return None

        if result.rowcount == 0:
            return None
        return job

    async def update_progress(
        self,
        job_id: str,
        progress: int,
        message: str | None = None,
        last_processed_chunk_index: int | None = None,
        processed_chunks_count: int | None = None,
        processed_embeddings_count: int | None = None,
    ) -> ProcessingJob | None:
        values: dict[str, Any] = {
            "progress": clamp_progress(progress),
            "updated_at": datetime.now(timezone.utc),
        }
        if message is not None:
            values["progress_message"] = message
        if last_processed_chunk_index is not None:
            values["last_processed_chunk_index"] = last_processed_chunk_index
        if processed_chunks_count is not None:
            values["processed_chunks_count"] = processed_chunks_count
        if processed_embeddings_count is not None:
            values["processed_embeddings_count"] = processed_embeddings_count

        result = await self._session.execute(
            update(ProcessingJobModel)
            .where(
                ProcessingJobModel.id == job_id,
                ProcessingJobModel.status == JobStatus.RUNNING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()

        if result.rowcount == 0:
            return None
        return await self.get_by_id(job_id)

    async def mark_stale_jobs_as_failed(self, cutoff: datetime) -> int:
        now = datetime.now(timezone.utc)
        result = await self._session.execute(
            update(ProcessingJobModel)
            .where(
                ProcessingJobModel.status.in_([s.value for s in REAPABLE_STATUSES]),
                func.coalesce(ProcessingJobModel.started_at, ProcessingJobModel.created_at)
                < cutoff,
            )
            .values(
                status=JobStatus.FAILED.value,
                error_message=STALE_JOB_REASON,
                progress_message="Marked as failed due to timeout",
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()
        return result.rowcount

    # ── Mapping ──────────────────────────────────────────────────────

    @staticmethod
    def _to_values(job: ProcessingJob) -> dict[str, Any]:
        return {
            "status": job.status.value,
            "progress": job.progress,
            "attempt_count": job.attempt_count,
            "error_message": job.error_message,
            "content_hash": job.fingerprint,
            "job_details": dict(job.job_details),
            "result": job.result,
            "progress_message": job.progress_message,
            "last_processed_chunk_index": job.last_processed_chunk_index,
            "processed_chunks_count": job.processed_chunks_count,
            "processed_embeddings_count": job.processed_embeddings_count,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
            "created_at": job.created_at,
            "updated_at": job.updated_at,
        }

    @staticmethod
    def _to_domain(model: ProcessingJobModel) -> ProcessingJob:
        return ProcessingJob(
            id=model.id,
            document_id=model.document_id,
            job_type=JobType(model.job_type),
            status=JobStatus(model.status),
            progress=model.progress,
            attempt_count=model.attempt_count,
            error_message=model.error_message,
            job_details=dict(model.job_details or {}),
            result=model.result,
            progress_message=model.progress_message,
            last_processed_chunk_index=model.last_processed_chunk_index,
            processed_chunks_count=model.processed_chunks_count,
            processed_embeddings_count=model.processed_embeddings_count,
            started_at=_as_utc(model.started_at),
            completed_at=_as_utc(model.completed_at),
            created_at=_as_utc(model.created_at),
            updated_at=_as_utc(model.updated_at),
        )


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo on the way back; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
