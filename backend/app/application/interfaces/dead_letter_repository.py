"""Abstract repository interface (port) for the dead-letter store."""

from abc import ABC, abstractmethod

from app.domain.entities.dead_letter import DeadLetterRecord


class DeadLetterRepository(ABC):
    """Append-only store of permanently failed jobs.

    There is no update or per-record delete; ``clear`` exists for test and
    operations resets only.
    """

    @abstractmethod
    async def save(self, record: DeadLetterRecord) -> DeadLetterRecord:
        ...

    @abstractmethod
    async def find_all(self, skip: int = 0, limit: int = 20) -> list[DeadLetterRecord]:
        """Records newest first."""
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    @abstractmethod
    async def clear(self) -> int:
        """Delete every record. Returns the number removed."""
        ...
