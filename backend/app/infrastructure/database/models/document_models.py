"""SQLAlchemy ORM model for ingested documents (read side used by the job engine)."""

import uuid

from sqlalchemy import Column, DateTime, String, Text, func

from app.infrastructure.database.base import Base


def _generate_uuid() -> str:
    return str(uuid.uuid4())


class DocumentModel(Base):
    """An uploaded document. Stage handlers fill in the extracted text."""

    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_generate_uuid)
    filename = Column(String(500), nullable=False)
    mime_type = Column(String(255), nullable=False)
    storage_key = Column(String(1000), nullable=False)
    extracted_text = Column(Text, nullable=True)
    text_hash = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
