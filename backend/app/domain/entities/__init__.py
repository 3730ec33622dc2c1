from .processing_job import FINGERPRINT_KEY, JobType, ProcessingJob, clamp_progress
from .dead_letter import DeadLetterRecord
from .document import Document
from app.domain.job_state_machine import JobStatus

__all__ = [
    "FINGERPRINT_KEY",
    "JobType",
    "JobStatus",
    "ProcessingJob",
    "clamp_progress",
    "DeadLetterRecord",
    "Document",
]
