"""In-memory fakes of the repository ports shared by the unit tests."""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from app.application.interfaces import (
    DeadLetterRepository,
    DocumentRepository,
    ProcessingJobRepository,
)
from app.domain.entities import DeadLetterRecord, Document, JobType, ProcessingJob, clamp_progress
from app.domain.entities.processing_job import STALE_JOB_REASON
from app.domain.exceptions import DuplicateEntityError
from app.domain.job_state_machine import REAPABLE_STATUSES, JobStatus


class FakeProcessingJobRepository(ProcessingJobRepository):
    """In-memory fake that mirrors the compare-and-set and one-active-job rules."""

    def __init__(self):
        self.jobs: dict[str, ProcessingJob] = {}
        self.transitions: list[tuple[JobStatus, JobStatus]] = []
        self.progress_updates: list[int] = []
        self.save_calls = 0

    def _conflicts(self, job: ProcessingJob) -> bool:
        if not job.is_active:
            return False
        return any(
            other.id != job.id
            and other.document_id == job.document_id
            and other.job_type == job.job_type
            and other.is_active
            for other in self.jobs.values()
        )

    async def save(self, job: ProcessingJob) -> ProcessingJob:
        self.save_calls += 1
        if self._conflicts(job):
            raise DuplicateEntityError(
                "ProcessingJob", "document_id/job_type", f"{job.document_id}/{job.job_type.value}"
            )
        self.jobs[job.id] = job
        return job

    async def get_by_id(self, job_id: str) -> ProcessingJob | None:
        return self.jobs.get(job_id)

    async def get_by_document(self, document_id: str, limit: int = 100) -> list[ProcessingJob]:
        jobs = [j for j in self.jobs.values() if j.document_id == document_id]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)[:limit]

    async def find_active_by_document_and_type(
        self, document_id: str, job_type: JobType
    ) -> ProcessingJob | None:
        for job in self.jobs.values():
            if job.document_id == document_id and job.job_type == job_type and job.is_active:
                return job
        return None

    async def find_duplicate_jobs(
        self, document_id: str, job_type: JobType, fingerprint: str
    ) -> list[ProcessingJob]:
        statuses = {JobStatus.COMPLETED, JobStatus.RUNNING, JobStatus.PENDING}
        jobs = [
            j
            for j in self.jobs.values()
            if j.document_id == document_id
            and j.job_type == job_type
            and j.fingerprint == fingerprint
            and j.status in statuses
        ]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    async def find_pending(
        self, limit: int = 10, retrying_before: datetime | None = None
    ) -> list[ProcessingJob]:
        ready = [
            j
            for j in self.jobs.values()
            if j.status == JobStatus.PENDING
            or (
                retrying_before is not None
                and j.status == JobStatus.RETRYING
                and j.updated_at < retrying_before
            )
        ]
        return sorted(ready, key=lambda j: j.created_at)[:limit]

    async def find_failed_jobs(
        self, failed_before: datetime, limit: int = 10
    ) -> list[ProcessingJob]:
        failed = [
            j
            for j in self.jobs.values()
            if j.status == JobStatus.FAILED and j.updated_at < failed_before
        ]
        return sorted(failed, key=lambda j: j.created_at)[:limit]

    async def transition(
        self, job: ProcessingJob, expected_status: JobStatus
    ) -> ProcessingJob | None:
        stored = self.jobs.get(job.id)
        if stored is None or stored.status != expected_status or self._conflicts(job):
            return None
        self.jobs[job.id] = job
        self.transitions.append((expected_status, job.status))
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
        stored = self.jobs.get(job_id)
        if stored is None or stored.status != JobStatus.RUNNING:
            return None
        updated = stored.update_progress(progress, message).record_checkpoint(
            last_processed_chunk_index, processed_chunks_count, processed_embeddings_count
        )
        self.jobs[job_id] = updated
        self.progress_updates.append(clamp_progress(progress))
        return updated

    async def mark_stale_jobs_as_failed(self, cutoff: datetime) -> int:
        now = datetime.now(timezone.utc)
        count = 0
        for job in list(self.jobs.values()):
            if job.status in REAPABLE_STATUSES and (job.started_at or job.created_at) < cutoff:
                self.jobs[job.id] = replace(
                    job,
                    status=JobStatus.FAILED,
                    error_message=STALE_JOB_REASON,
                    completed_at=now,
                    updated_at=now,
                )
                count += 1
        return count


class FakeDeadLetterRepository(DeadLetterRepository):
    """In-memory dead-letter store; set ``fail_with`` to make writes blow up."""

    def __init__(self):
        self.records: list[DeadLetterRecord] = []
        self.save_calls = 0
        self.fail_with: Exception | None = None

    async def save(self, record: DeadLetterRecord) -> DeadLetterRecord:
        self.save_calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        self.records.append(record)
        return record

    async def find_all(self, skip: int = 0, limit: int = 20) -> list[DeadLetterRecord]:
        ordered = sorted(self.records, key=lambda r: r.created_at, reverse=True)
        return ordered[skip : skip + limit]

    async def count(self) -> int:
        return len(self.records)

    async def clear(self) -> int:
        removed = len(self.records)
        self.records.clear()
        return removed


class FakeDocumentRepository(DocumentRepository):
    def __init__(self):
        self.documents: dict[str, Document] = {}

    def add(self, document: Document) -> Document:
        self.documents[document.id] = document
        return document

    async def get_by_id(self, document_id: str) -> Document | None:
        return self.documents.get(document_id)


@pytest.fixture
def job_repo() -> FakeProcessingJobRepository:
    return FakeProcessingJobRepository()


@pytest.fixture
def dead_letter_repo() -> FakeDeadLetterRepository:
    return FakeDeadLetterRepository()


@pytest.fixture
def document_repo() -> FakeDocumentRepository:
    repo = FakeDocumentRepository()
    repo.add(
        Document(
            id="doc-1",
            filename="report.pdf",
            mime_type="application/pdf",
            storage_key="uploads/report.pdf",
        )
    )
    return repo
