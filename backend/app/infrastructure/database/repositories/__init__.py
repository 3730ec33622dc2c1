from .dead_letter_repository import SQLAlchemyDeadLetterRepository
from .document_repository import SQLAlchemyDocumentRepository
from .processing_job_repository import SQLAlchemyProcessingJobRepository

__all__ = [
    "SQLAlchemyDeadLetterRepository",
    "SQLAlchemyDocumentRepository",
    "SQLAlchemyProcessingJobRepository",
]
