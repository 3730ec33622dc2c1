"""Domain entity for processing jobs — immutable snapshots of pipeline work."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from app.domain.exceptions import InvalidTransitionError
from app.domain.job_state_machine import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JobStatus,
    ensure_transition,
)

# Key in ``job_details`` holding the content fingerprint used for deduplication.
FINGERPRINT_KEY = "content_hash"

# Error message the stale-job reaper writes onto abandoned jobs.
STALE_JOB_REASON = "timeout"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobType(str, Enum):
    """Kinds of work a processing job can carry out for a document."""

    TEXT_EXTRACTION = "text_extraction"
    CHUNKING = "chunking"
    EMBEDDING_GENERATION = "embedding_generation"
    FULL_PROCESSING = "full_processing"
    REPROCESSING = "reprocessing"


@dataclass(frozen=True)
class ProcessingJob:
    """One unit of document-processing work and a snapshot of its progress.

    Snapshots are never mutated in place. Every lifecycle method validates the
    current status against the transition table and returns a new instance,
    or raises InvalidTransitionError. Retries reuse the same ``id``.
    """

    id: str
    document_id: str
    job_type: JobType
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    attempt_count: int = 0
    error_message: str | None = None
    job_details: dict[str, Any] = field(default_factory=dict)
    result: dict[str, Any] | None = None
    progress_message: str | None = None
    last_processed_chunk_index: int | None = None
    processed_chunks_count: int = 0
    processed_embeddings_count: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def fingerprint(self) -> str | None:
        value = self.job_details.get(FINGERPRINT_KEY)
        return str(value) if value else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def execution_time_ms(self) -> int | None:
        """Milliseconds between start and completion (or now, while still running)."""
        if self.started_at is None:
            return None
        end = self.completed_at or _utcnow()
        return int((end - self.started_at).total_seconds() * 1000)

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> "ProcessingJob":
        """PENDING/RETRYING → RUNNING, counting one more attempt."""
        self._check(JobStatus.RUNNING)
        now = _utcnow()
        return replace(
            self,
            status=JobStatus.RUNNING,
            attempt_count=self.attempt_count + 1,
            started_at=now,
            completed_at=None,
            progress_message=f"Attempt {self.attempt_count + 1} started",
            updated_at=now,
        )

    def update_progress(self, progress: int, message: str | None = None) -> "ProcessingJob":
        """Record progress while RUNNING; values outside [0, 100] are clamped."""
        if self.status != JobStatus.RUNNING:
            raise InvalidTransitionError(
                self.id, self.status.value, self.status.value, "progress requires running"
            )
        return replace(
            self,
            progress=clamp_progress(progress),
            progress_message=message if message is not None else self.progress_message,
            updated_at=_utcnow(),
        )

    def record_checkpoint(
        self,
        last_processed_chunk_index: int | None = None,
        processed_chunks_count: int | None = None,
        processed_embeddings_count: int | None = None,
    ) -> "ProcessingJob":
        """Store resumability markers for a long multi-chunk stage."""
        if self.status != JobStatus.RUNNING:
            raise InvalidTransitionError(
                self.id, self.status.value, self.status.value, "checkpoints require running"
            )
        return replace(
            self,
            last_processed_chunk_index=(
                last_processed_chunk_index
                if last_processed_chunk_index is not None
                else self.last_processed_chunk_index
            ),
            processed_chunks_count=(
                processed_chunks_count
                if processed_chunks_count is not None
                else self.processed_chunks_count
            ),
            processed_embeddings_count=(
                processed_embeddings_count
                if processed_embeddings_count is not None
                else self.processed_embeddings_count
            ),
            updated_at=_utcnow(),
        )

    def complete(self, result: dict[str, Any] | None = None) -> "ProcessingJob":
        self._check(JobStatus.COMPLETED)
        now = _utcnow()
        return replace(
            self,
            status=JobStatus.COMPLETED,
            progress=100,
            result=result,
            completed_at=now,
            progress_message="Job completed successfully",
            updated_at=now,
        )

    def fail(self, reason: str) -> "ProcessingJob":
        self._check(JobStatus.FAILED)
        now = _utcnow()
        return replace(
            self,
            status=JobStatus.FAILED,
            error_message=reason,
            completed_at=now,
            progress_message=f"Failed: {reason[:100]}",
            updated_at=now,
        )

    def cancel(self, reason: str | None = None) -> "ProcessingJob":
        self._check(JobStatus.CANCELLED)
        now = _utcnow()
        return replace(
            self,
            status=JobStatus.CANCELLED,
            error_message=reason if reason is not None else self.error_message,
            completed_at=now,
            progress_message="Job cancelled",
            updated_at=now,
        )

    def retry(self, max_attempts: int | None = None) -> "ProcessingJob":
        """FAILED → RETRYING under the same id.

        ``started_at`` and the chunk/embedding checkpoints survive so a resumed
        stage can skip units it already processed.
        """
        self._check(JobStatus.RETRYING)
        if max_attempts is not None and self.attempt_count >= max_attempts:
            raise InvalidTransitionError(
                self.id,
                self.status.value,
                JobStatus.RETRYING.value,
                f"attempt limit {max_attempts} reached",
            )
        return replace(
            self,
            status=JobStatus.RETRYING,
            progress=0,
            error_message=None,
            result=None,
            completed_at=None,
            progress_message="Job queued for retry",
            updated_at=_utcnow(),
        )

    def mark_dead_letter(self, reason: str | None = None) -> "ProcessingJob":
        """Final disposition once retries are exhausted."""
        self._check(JobStatus.DEAD_LETTER)
        now = _utcnow()
        return replace(
            self,
            status=JobStatus.DEAD_LETTER,
            error_message=reason if reason is not None else self.error_message,
            completed_at=now,
            progress_message="Moved to dead-letter queue",
            updated_at=now,
        )

    def _check(self, target: JobStatus) -> None:
        ensure_transition(self.id, self.status, target)


def clamp_progress(progress: int) -> int:
    """Clamp a progress value to the inclusive range [0, 100]."""
    return max(0, min(100, int(progress)))
