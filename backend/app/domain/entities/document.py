"""Read-only view of an ingested document, as handed to pipeline stage handlers."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class Document:
    """An uploaded document whose content the processing pipeline works on.

    The engine never writes documents; stage handlers own any updates
    (extracted text, chunks, embeddings) through their own collaborators.
    """

    id: str
    filename: str
    mime_type: str
    storage_key: str
    extracted_text: str | None = None
    text_hash: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_extracted_text(self) -> bool:
        return bool(self.extracted_text and self.text_hash)
