"""FastAPI dependency injection — wires infrastructure to application layer."""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.application.interfaces.processing_job_repository import ProcessingJobRepository
from app.application.services import (
    DeadLetterService,
    JobDeduplicationService,
    ProcessingJobService,
    StageRegistry,
)
from app.domain.retry_policy import RetryPolicy
from app.infrastructure.database.session import async_session_factory, get_db_session
from app.infrastructure.database.repositories import (
    SQLAlchemyDeadLetterRepository,
    SQLAlchemyDocumentRepository,
    SQLAlchemyProcessingJobRepository,
)


def build_processing_job_service(
    session: AsyncSession, stage_registry: StageRegistry
) -> ProcessingJobService:
    """Wire a ProcessingJobService and its collaborators onto one session."""
    return ProcessingJobService(
        job_repository=SQLAlchemyProcessingJobRepository(session),
        dead_letter_service=DeadLetterService(SQLAlchemyDeadLetterRepository(session)),
        stage_registry=stage_registry,
        document_repository=SQLAlchemyDocumentRepository(session),
        retry_policy=RetryPolicy.from_settings(get_settings()),
    )


# ── Background scopes (one session per scope) ────────────────────────


@asynccontextmanager
async def job_repository_scope() -> AsyncIterator[ProcessingJobRepository]:
    """Short-lived repository for polling and reaping outside a request."""
    async with async_session_factory() as session:
        yield SQLAlchemyProcessingJobRepository(session)


def job_service_scope(stage_registry: StageRegistry):
    """Return a factory of ProcessingJobService scopes bound to ``stage_registry``."""

    @asynccontextmanager
    async def scope() -> AsyncIterator[ProcessingJobService]:
        async with async_session_factory() as session:
            yield build_processing_job_service(session, stage_registry)

    return scope


# ── Request-scoped providers ─────────────────────────────────────────


def get_stage_registry(request: Request) -> StageRegistry:
    """The registry configured at startup, or an empty one when none was supplied."""
    registry = getattr(request.app.state, "stage_registry", None)
    return registry if registry is not None else StageRegistry()


async def get_processing_job_service(
    session: AsyncSession = Depends(get_db_session),
    stage_registry: StageRegistry = Depends(get_stage_registry),
) -> AsyncGenerator[ProcessingJobService, None]:
    """Provides a ProcessingJobService with its repositories wired up."""
    yield build_processing_job_service(session, stage_registry)


async def get_job_deduplication_service(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[JobDeduplicationService, None]:
    """Provides a JobDeduplicationService with the job repository wired up."""
    yield JobDeduplicationService(SQLAlchemyProcessingJobRepository(session))


async def get_dead_letter_service(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[DeadLetterService, None]:
    """Provides a DeadLetterService with its repository wired up."""
    yield DeadLetterService(SQLAlchemyDeadLetterRepository(session))
