"""SQLAlchemy implementation of the DeadLetterRepository."""

from datetime import timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.dead_letter_repository import DeadLetterRepository
from app.domain.entities.dead_letter import DeadLetterRecord
from app.infrastructure.database.models.processing_job_models import DeadLetterModel


class SQLAlchemyDeadLetterRepository(DeadLetterRepository):
    """Append-only dead-letter store backed by the ``dead_letters`` table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def save(self, record: DeadLetterRecord) -> DeadLetterRecord:
        self._session.add(
            DeadLetterModel(
                id=record.id,
                job_id=record.job_id,
                document_id=record.document_id,
                job_type=record.job_type,
                payload=dict(record.payload),
                error_message=record.error_message,
                attempts=record.attempts,
                created_at=record.created_at,
            )
        )
        await self._session.commit()
        return record

    async def find_all(self, skip: int = 0, limit: int = 20) -> list[DeadLetterRecord]:
        result = await self._session.execute(
            select(DeadLetterModel)
            .order_by(DeadLetterModel.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(DeadLetterModel))
        return result.scalar_one()

    async def clear(self) -> int:
        result = await self._session.execute(delete(DeadLetterModel))
        await self._session.commit()
        return result.rowcount

    @staticmethod
    def _to_domain(model: DeadLetterModel) -> DeadLetterRecord:
        created_at = model.created_at
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return DeadLetterRecord(
            id=model.id,
            job_id=model.job_id,
            document_id=model.document_id,
            job_type=model.job_type,
            attempts=model.attempts,
            payload=dict(model.payload or {}),
            error_message=model.error_message,
            created_at=created_at,
        )
