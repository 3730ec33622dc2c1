"""Pydantic schemas for the processing jobs and dead-letter API."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from app.domain.content_hash import is_valid_hash
from app.domain.entities.processing_job import JobType
from app.domain.job_state_machine import JobStatus


# ── Processing Job Schemas ───────────────────────────────────────────


class CreateProcessingJobRequest(BaseModel):
    """Request body for creating (or reusing) a processing job.

    Supply either a precomputed ``content_hash`` or the raw ``content`` to be
    fingerprinted. Without either, no content deduplication takes place.
    """

    document_id: str = Field(min_length=1, max_length=36)
    job_type: JobType
    job_details: dict[str, Any] = Field(default_factory=dict)
    content_hash: str | None = Field(default=None, min_length=64, max_length=64)
    content: str | None = None

    @field_validator("content_hash")
    @classmethod
    def validate_content_hash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not is_valid_hash(value):
            raise ValueError("content_hash must be a hex-encoded SHA-256 digest")
        return value.lower()


class CancelJobRequest(BaseModel):
    """Optional body for cancelling a job."""

    reason: str | None = Field(default=None, max_length=1000)


class ProcessingJobResponse(BaseModel):
    """Processing Job representation returned to clients."""

    id: str
    document_id: str
    job_type: JobType
    status: JobStatus
    progress: int
    attempt_count: int
    progress_message: str | None = None
    error_message: str | None = None
    job_details: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] | None = None
    last_processed_chunk_index: int | None = None
    processed_chunks_count: int = 0
    processed_embeddings_count: int = 0
    execution_time_ms: int | None = None
    created_at: str
    updated_at: str
    started_at: str | None = None
    completed_at: str | None = None


# ── Dead Letter Schemas ──────────────────────────────────────────────


class DeadLetterResponse(BaseModel):
    """A permanently failed job as stored in the dead-letter queue."""

    id: str
    job_id: str
    document_id: str
    job_type: str
    attempts: int
    error_message: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: str


class DeadLetterPageResponse(BaseModel):
    """One page of dead-letter records, newest first."""

    page: int
    limit: int
    total: int
    data: list[DeadLetterResponse]
