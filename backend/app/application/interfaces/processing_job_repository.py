"""Abstract repository interface (port) for processing jobs."""

from abc import ABC, abstractmethod
from datetime import datetime

from app.domain.entities.processing_job import JobType, ProcessingJob
from app.domain.job_state_machine import JobStatus


class ProcessingJobRepository(ABC):
    """Port for processing job persistence — implemented in the infrastructure layer.

    Implementations must make ``transition``, ``update_progress`` and
    ``mark_stale_jobs_as_failed`` atomic compare-and-set operations, and must
    reject a second active job for the same (document, job type) with
    DuplicateEntityError.
    """

    @abstractmethod
    async def save(self, job: ProcessingJob) -> ProcessingJob:
        """Insert a new job or overwrite an existing one unconditionally."""
        ...

    @abstractmethod
    async def get_by_id(self, job_id: str) -> ProcessingJob | None:
        """Retrieve a single job by ID."""
        ...

    @abstractmethod
    async def get_by_document(self, document_id: str, limit: int = 100) -> list[ProcessingJob]:
        """Retrieve jobs for a document, most recent first."""
        ...

    @abstractmethod
    async def find_active_by_document_and_type(
        self, document_id: str, job_type: JobType
    ) -> ProcessingJob | None:
        """Return the PENDING/RUNNING/RETRYING job for the pair, if any."""
        ...

    @abstractmethod
    async def find_duplicate_jobs(
        self, document_id: str, job_type: JobType, fingerprint: str
    ) -> list[ProcessingJob]:
        """Jobs with the same fingerprint in COMPLETED, RUNNING or PENDING, newest first."""
        ...

    @abstractmethod
    async def find_pending(
        self, limit: int = 10, retrying_before: datetime | None = None
    ) -> list[ProcessingJob]:
        """Retrieve jobs ready to run, ordered by creation time (FIFO).

        PENDING jobs always qualify; RETRYING jobs only when ``retrying_before``
        is given and they were last updated before it.
        """
        ...

    @abstractmethod
    async def find_failed_jobs(
        self, failed_before: datetime, limit: int = 10
    ) -> list[ProcessingJob]:
        """FAILED jobs last updated before ``failed_before``, oldest first.

        These are failures no worker moved on from, such as jobs the stale-job
        reaper failed.
        """
        ...

    @abstractmethod
    async def transition(
        self, job: ProcessingJob, expected_status: JobStatus
    ) -> ProcessingJob | None:
        """Persist ``job`` only if the stored status still equals ``expected_status``.

        Returns the stored snapshot, or None when another actor changed the job
        first (or the move would break the one-active-job rule).
        """
        ...

    @abstractmethod
    async def update_progress(
        self,
        job_id: str,
        progress: int,
        message: str | None = None,
        last_processed_chunk_index: int | None = None,
        processed_chunks_count: int | None = None,
        processed_embeddings_count: int | None = None,
    ) -> ProcessingJob | None:
        """Update progress and checkpoints of a RUNNING job; None if it is not running."""
        ...

    @abstractmethod
    async def mark_stale_jobs_as_failed(self, cutoff: datetime) -> int:
        """Fail RUNNING/RETRYING jobs started (or created) before ``cutoff``. Returns the count."""
        ...
