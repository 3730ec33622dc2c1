from .base import Base
from .session import engine, async_session_factory, dispose_engine, get_db_session
from .models import DeadLetterModel, DocumentModel, ProcessingJobModel

__all__ = [
    "Base",
    "engine",
    "async_session_factory",
    "dispose_engine",
    "get_db_session",
    "DeadLetterModel",
    "DocumentModel",
    "ProcessingJobModel",
]
