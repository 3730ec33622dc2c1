from .processing_job import (
    CancelJobRequest,
    CreateProcessingJobRequest,
    DeadLetterPageResponse,
    DeadLetterResponse,
    ProcessingJobResponse,
)

__all__ = [
    "CancelJobRequest",
    "CreateProcessingJobRequest",
    "DeadLetterPageResponse",
    "DeadLetterResponse",
    "ProcessingJobResponse",
]
