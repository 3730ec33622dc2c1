from .document_models import DocumentModel
from .processing_job_models import DeadLetterModel, ProcessingJobModel

__all__ = [
    "DocumentModel",
    "DeadLetterModel",
    "ProcessingJobModel",
]
