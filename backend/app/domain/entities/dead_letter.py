"""Domain entity for dead-letter records — the audit trail of permanently failed jobs."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.domain.entities.processing_job import ProcessingJob


@dataclass(frozen=True)
class DeadLetterRecord:
    """A job that exhausted its retries. Written once and never updated."""

    job_id: str
    document_id: str
    job_type: str
    attempts: int
    payload: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_job(cls, job: ProcessingJob, error_message: str, attempts: int) -> "DeadLetterRecord":
        return cls(
            job_id=job.id,
            document_id=job.document_id,
            job_type=job.job_type.value,
            attempts=attempts,
            payload=dict(job.job_details),
            error_message=error_message,
        )
