"""Abstract repository interface (port) for reading documents."""

from abc import ABC, abstractmethod

from app.domain.entities.document import Document


class DocumentRepository(ABC):
    """Port for loading the document a processing job works on."""

    @abstractmethod
    async def get_by_id(self, document_id: str) -> Document | None:
        ...
