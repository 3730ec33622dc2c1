"""Contract for the pipeline stages (text extraction, chunking, embedding)."""

from collections.abc import Awaitable, Callable
from typing import Any

from app.domain.entities.document import Document
from app.domain.entities.processing_job import ProcessingJob

# A stage handler receives the running job snapshot and its document, and
# returns an optional result payload. Raising means the attempt failed.
#
# Results may carry the checkpoint keys below; the orchestrator persists them
# so a retried stage can resume where the previous attempt stopped.
StageHandler = Callable[[ProcessingJob, Document], Awaitable[dict[str, Any] | None]]

CHECKPOINT_KEYS = (
    "last_processed_chunk_index",
    "processed_chunks_count",
    "processed_embeddings_count",
)
