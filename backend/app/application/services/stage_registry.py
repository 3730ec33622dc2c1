"""Stage Registry — maps job types to the stage handlers that carry them out."""

import logging
from dataclasses import dataclass

from app.application.interfaces.stage_handler import StageHandler
from app.domain.entities.processing_job import JobType
from app.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Job types that are executed directly by a single registered handler.
STAGE_TYPES: tuple[JobType, ...] = (
    JobType.TEXT_EXTRACTION,
    JobType.CHUNKING,
    JobType.EMBEDDING_GENERATION,
)

# Composite job types run these stages in order.
PIPELINES: dict[JobType, tuple[JobType, ...]] = {
    JobType.FULL_PROCESSING: STAGE_TYPES,
    JobType.REPROCESSING: STAGE_TYPES,
}

# Progress recorded before the first stage and after each stage of a pipeline.
PIPELINE_START_PROGRESS = 10
PIPELINE_STAGE_PROGRESS: dict[JobType, int] = {
    JobType.TEXT_EXTRACTION: 30,
    JobType.CHUNKING: 60,
    JobType.EMBEDDING_GENERATION: 90,
}


@dataclass(frozen=True)
class PlannedStage:
    """One step of a job's execution plan."""

    job_type: JobType
    handler: StageHandler
    progress_after: int


class StageRegistry:
    """Holds one handler per stage type and expands job types into execution plans."""

    def __init__(self, handlers: dict[JobType, StageHandler] | None = None) -> None:
        self._handlers: dict[JobType, StageHandler] = {}
        for job_type, handler in (handlers or {}).items():
            self.register(job_type, handler)

    def register(self, job_type: JobType, handler: StageHandler) -> None:
        if job_type not in STAGE_TYPES:
            raise ConfigurationError(
                f"{job_type.value} is a composite job type; register its stages instead"
            )
        self._handlers[job_type] = handler
        logger.debug("Registered stage handler for %s", job_type.value)

    def missing(self) -> list[JobType]:
        return [job_type for job_type in STAGE_TYPES if job_type not in self._handlers]

    @property
    def is_complete(self) -> bool:
        return not self.missing()

    def validate(self) -> None:
        """Fail fast when any stage has no handler."""
        missing = self.missing()
        if missing:
            names = ", ".join(job_type.value for job_type in missing)
            raise ConfigurationError(f"No stage handler registered for: {names}")

    def plan(self, job_type: JobType) -> list[PlannedStage]:
        """Return the stages to run for ``job_type``, in order."""
        if job_type in PIPELINES:
            return [
                PlannedStage(stage, self._require(stage), PIPELINE_STAGE_PROGRESS[stage])
                for stage in PIPELINES[job_type]
            ]
        return [PlannedStage(job_type, self._require(job_type), 100)]

    def _require(self, job_type: JobType) -> StageHandler:
        handler = self._handlers.get(job_type)
        if handler is None:
            raise ConfigurationError(f"No stage handler registered for {job_type.value}")
        return handler
