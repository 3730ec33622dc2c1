"""SQLAlchemy implementation of the DocumentRepository."""

from datetime import timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces.document_repository import DocumentRepository
from app.domain.entities.document import Document
from app.infrastructure.database.models.document_models import DocumentModel


class SQLAlchemyDocumentRepository(DocumentRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, document_id: str) -> Document | None:
        result = await self._session.execute(
            select(DocumentModel)
            .where(DocumentModel.id == document_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        created_at = model.created_at
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return Document(
            id=model.id,
            filename=model.filename,
            mime_type=model.mime_type,
            storage_key=model.storage_key,
            extracted_text=model.extracted_text,
            text_hash=model.text_hash,
            created_at=created_at,
        )
