from .dead_letter_service import DeadLetterPage, DeadLetterService
from .job_deduplication_service import JobDeduplicationService
from .stage_registry import StageRegistry
from .processing_job_service import ProcessingJobService
from .stale_job_reaper import StaleJobReaper
from .background_processor import BackgroundProcessor

__all__ = [
    "DeadLetterPage",
    "DeadLetterService",
    "JobDeduplicationService",
    "StageRegistry",
    "ProcessingJobService",
    "StaleJobReaper",
    "BackgroundProcessor",
]
