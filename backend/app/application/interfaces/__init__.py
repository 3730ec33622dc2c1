from .processing_job_repository import ProcessingJobRepository
from .dead_letter_repository import DeadLetterRepository
from .document_repository import DocumentRepository
from .stage_handler import CHECKPOINT_KEYS, StageHandler

__all__ = [
    "ProcessingJobRepository",
    "DeadLetterRepository",
    "DocumentRepository",
    "StageHandler",
    "CHECKPOINT_KEYS",
]
