"""Job Deduplication Service — idempotent creation of processing jobs."""

import logging
import uuid
from typing import Any

from app.application.interfaces.processing_job_repository import ProcessingJobRepository
from app.domain.content_hash import generate_content_hash
from app.domain.entities.processing_job import FINGERPRINT_KEY, JobType, ProcessingJob
from app.domain.exceptions import DuplicateEntityError

logger = logging.getLogger(__name__)


class JobDeduplicationService:
    """Creates PENDING jobs unless an equivalent one already exists.

    With a content fingerprint in ``job_details`` a repeated request for the
    same (document, job type, content) returns the existing COMPLETED, RUNNING
    or PENDING job untouched. Without one, deduplication is skipped, though
    the repository still allows only one active job per (document, job type).
    """

    def __init__(self, job_repository: ProcessingJobRepository) -> None:
        self._job_repo = job_repository

    async def create_job_with_deduplication(
        self,
        document_id: str,
        job_type: JobType,
        job_details: dict[str, Any] | None = None,
    ) -> ProcessingJob:
        details = dict(job_details or {})
        fingerprint = details.get(FINGERPRINT_KEY)

        if fingerprint:
            duplicates = await self._job_repo.find_duplicate_jobs(
                document_id, job_type, str(fingerprint)
            )
            if duplicates:
                existing = duplicates[0]
                logger.info(
                    "Reusing job %s (%s) for document %s — fingerprint %s already seen",
                    existing.id,
                    existing.status.value,
                    document_id,
                    str(fingerprint)[:12],
                )
                return existing

        job = ProcessingJob(
            id=str(uuid.uuid4()),
            document_id=document_id,
            job_type=job_type,
            job_details=details,
            progress_message="Job created",
        )

        try:
            saved = await self._job_repo.save(job)
        except DuplicateEntityError:
            active = await self._job_repo.find_active_by_document_and_type(document_id, job_type)
            if active is None:
                raise
            logger.info(
                "Document %s already has active %s job %s — returning it",
                document_id,
                job_type.value,
                active.id,
            )
            return active

        logger.info("Created %s job %s for document %s", job_type.value, saved.id, document_id)
        return saved

    async def create_job_for_content(
        self,
        document_id: str,
        job_type: JobType,
        content: str | bytes,
        job_details: dict[str, Any] | None = None,
    ) -> ProcessingJob:
        """Fingerprint ``content`` and create the job with deduplication."""
        details = dict(job_details or {})
        details[FINGERPRINT_KEY] = generate_content_hash(content)
        return await self.create_job_with_deduplication(document_id, job_type, details)
