"""Processing Jobs API controller — creation, inspection, cancel and retry."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.application.schemas.processing_job import (
    CancelJobRequest,
    CreateProcessingJobRequest,
    ProcessingJobResponse,
)
from app.application.services.job_deduplication_service import JobDeduplicationService
from app.application.services.processing_job_service import ProcessingJobService
from app.domain.entities.processing_job import FINGERPRINT_KEY, ProcessingJob
from app.domain.exceptions import EntityNotFoundError, InvalidTransitionError
from app.infrastructure.dependencies import (
    get_job_deduplication_service,
    get_processing_job_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Processing Jobs"])


# ── Helpers ──────────────────────────────────────────────────────────


def _job_to_response(job: ProcessingJob) -> ProcessingJobResponse:
    """Map a ProcessingJob domain entity to its API response."""
    return ProcessingJobResponse(
        id=job.id,
        document_id=job.document_id,
        job_type=job.job_type,
        status=job.status,
        progress=job.progress,
        attempt_count=job.attempt_count,
        progress_message=job.progress_message,
        error_message=job.error_message,
        job_details=job.job_details,
        result=job.result,
        last_processed_chunk_index=job.last_processed_chunk_index,
        processed_chunks_count=job.processed_chunks_count,
        processed_embeddings_count=job.processed_embeddings_count,
        execution_time_ms=job.execution_time_ms(),
        created_at=job.created_at.isoformat(),
        updated_at=job.updated_at.isoformat(),
        started_at=job.started_at.isoformat() if job.started_at else None,
        completed_at=job.completed_at.isoformat() if job.completed_at else None,
    )


# ── Jobs ─────────────────────────────────────────────────────────────


@router.post(
    "/processing-jobs",
    response_model=ProcessingJobResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_processing_job(
    request: CreateProcessingJobRequest,
    service: JobDeduplicationService = Depends(get_job_deduplication_service),
) -> ProcessingJobResponse:
    """Create a PENDING job, or return the equivalent job that already exists."""
    details = dict(request.job_details)
    if request.content_hash:
        details[FINGERPRINT_KEY] = request.content_hash

    try:
        if request.content is not None:
            job = await service.create_job_for_content(
                request.document_id, request.job_type, request.content, details
            )
        else:
            job = await service.create_job_with_deduplication(
                request.document_id, request.job_type, details
            )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _job_to_response(job)


@router.get("/processing-jobs/{job_id}", response_model=ProcessingJobResponse)
async def get_processing_job(
    job_id: str,
    service: ProcessingJobService = Depends(get_processing_job_service),
) -> ProcessingJobResponse:
    """Get a single processing job by ID."""
    try:
        job = await service.get_job(job_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _job_to_response(job)


@router.get("/documents/{document_id}/processing-jobs", response_model=list[ProcessingJobResponse])
async def list_document_jobs(
    document_id: str,
    service: ProcessingJobService = Depends(get_processing_job_service),
) -> list[ProcessingJobResponse]:
    """List a document's processing jobs, newest first."""
    jobs = await service.list_document_jobs(document_id)
    return [_job_to_response(j) for j in jobs]


@router.post("/processing-jobs/{job_id}/cancel", response_model=ProcessingJobResponse)
async def cancel_processing_job(
    job_id: str,
    request: CancelJobRequest | None = None,
    service: ProcessingJobService = Depends(get_processing_job_service),
) -> ProcessingJobResponse:
    """Cancel a PENDING, RUNNING or RETRYING job."""
    reason = request.reason if request else None
    try:
        job = await service.cancel_job(job_id, reason)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _job_to_response(job)


@router.post("/processing-jobs/{job_id}/retry", response_model=ProcessingJobResponse)
async def retry_processing_job(
    job_id: str,
    service: ProcessingJobService = Depends(get_processing_job_service),
) -> ProcessingJobResponse:
    """Queue a FAILED job for another attempt under the same ID."""
    try:
        current = await service.get_job(job_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    job = await service.retry_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=409,
            detail=(
                f"Job {job_id} cannot be retried "
                f"(status={current.status.value}, attempts={current.attempt_count})"
            ),
        )
    return _job_to_response(job)
