"""Dead Letter Service — records permanently failed jobs and lists them for operators."""

import logging
from dataclasses import dataclass

from app.application.interfaces.dead_letter_repository import DeadLetterRepository
from app.domain.entities.dead_letter import DeadLetterRecord
from app.domain.entities.processing_job import ProcessingJob
from app.domain.exceptions import DeadLetterWriteError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


@dataclass(frozen=True)
class DeadLetterPage:
    page: int
    limit: int
    total: int
    data: list[DeadLetterRecord]


class DeadLetterService:
    """Application service in front of the dead-letter repository.

    ``record`` is the last line of defence for a job that already failed for
    good, so a failed write is never swallowed: it is logged at CRITICAL and
    re-raised as DeadLetterWriteError.
    """

    def __init__(self, repository: DeadLetterRepository) -> None:
        self._repository = repository

    async def record(
        self, job: ProcessingJob, error_message: str, attempts: int
    ) -> DeadLetterRecord:
        """Write the dead-letter entry for ``job``. Call exactly once per exhausted job."""
        entry = DeadLetterRecord.from_job(job, error_message=error_message, attempts=attempts)
        try:
            saved = await self._repository.save(entry)
        except Exception as exc:
            logger.critical(
                "Dead-letter write failed for job %s (document=%s, attempts=%d): %s",
                job.id,
                job.document_id,
                attempts,
                exc,
            )
            raise DeadLetterWriteError(job.id, exc) from exc

        logger.error(
            "Job %s moved to dead-letter after %d attempt(s): %s",
            job.id,
            attempts,
            error_message,
        )
        return saved

    async def list_dead_letters(
        self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE
    ) -> DeadLetterPage:
        """Paginated listing; a page below 1 becomes 1, a limit below 1 the default."""
        safe_page = page if page >= 1 else 1
        safe_limit = limit if limit >= 1 else DEFAULT_PAGE_SIZE
        skip = (safe_page - 1) * safe_limit

        records = await self._repository.find_all(skip=skip, limit=safe_limit)
        total = await self._repository.count()
        return DeadLetterPage(page=safe_page, limit=safe_limit, total=total, data=records)

    async def count(self) -> int:
        return await self._repository.count()

    async def clear(self) -> int:
        removed = await self._repository.clear()
        logger.warning("Dead-letter store cleared (%d record(s) removed)", removed)
        return removed
