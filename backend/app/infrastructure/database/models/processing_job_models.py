"""SQLAlchemy ORM models for processing jobs and the dead-letter store."""

import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.domain.job_state_machine import ACTIVE_STATUSES
from app.infrastructure.database.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")

_ACTIVE_VALUES = sorted(status.value for status in ACTIVE_STATUSES)


def _generate_uuid() -> str:
    return str(uuid.uuid4())


class ProcessingJobModel(Base):
    """One processing job; the row is overwritten in place across retries."""

    __tablename__ = "processing_jobs"

    id = Column(String(36), primary_key=True, default=_generate_uuid)
    document_id = Column(String(36), nullable=False, index=True)
    job_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    progress = Column(Integer, nullable=False, default=0)
    attempt_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    content_hash = Column(String(64), nullable=True, index=True)
    job_details = Column(JSONType, nullable=False, default=dict)
    result = Column(JSONType, nullable=True)
    progress_message = Column(Text, nullable=True)
    last_processed_chunk_index = Column(Integer, nullable=True)
    processed_chunks_count = Column(Integer, nullable=False, default=0)
    processed_embeddings_count = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_jobs_status_created", "status", "created_at"),
        Index("idx_jobs_document_type_status", "document_id", "job_type", "status"),
        # At most one PENDING/RUNNING/RETRYING job per document and job type.
        Index(
            "uq_jobs_active_document_type",
            "document_id",
            "job_type",
            unique=True,
            postgresql_where=status.in_(_ACTIVE_VALUES),
            sqlite_where=status.in_(_ACTIVE_VALUES),
        ),
    )


class DeadLetterModel(Base):
    """Append-only record of a job that exhausted its retries."""

    __tablename__ = "dead_letters"

    id = Column(String(36), primary_key=True, default=_generate_uuid)
    job_id = Column(String(36), nullable=False, index=True)
    document_id = Column(String(36), nullable=False)
    job_type = Column(String(30), nullable=False)
    payload = Column(JSONType, nullable=True)
    error_message = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
