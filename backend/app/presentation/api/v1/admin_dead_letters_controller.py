"""Admin API controller — dead-letter queue inspection."""

from fastapi import APIRouter, Depends, Query

from app.application.schemas.processing_job import DeadLetterPageResponse, DeadLetterResponse
from app.application.services.dead_letter_service import DEFAULT_PAGE_SIZE, DeadLetterService
from app.domain.entities.dead_letter import DeadLetterRecord
from app.infrastructure.dependencies import get_dead_letter_service

router = APIRouter(prefix="/admin", tags=["Admin"])


def _record_to_response(record: DeadLetterRecord) -> DeadLetterResponse:
    return DeadLetterResponse(
        id=record.id,
        job_id=record.job_id,
        document_id=record.document_id,
        job_type=record.job_type,
        attempts=record.attempts,
        error_message=record.error_message,
        payload=record.payload,
        created_at=record.created_at.isoformat(),
    )


@router.get("/dead-letters", response_model=DeadLetterPageResponse)
async def list_dead_letters(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE, le=100),
    service: DeadLetterService = Depends(get_dead_letter_service),
) -> DeadLetterPageResponse:
    """List permanently failed jobs, newest first."""
    result = await service.list_dead_letters(page=page, limit=limit)
    return DeadLetterPageResponse(
        page=result.page,
        limit=result.limit,
        total=result.total,
        data=[_record_to_response(r) for r in result.data],
    )
