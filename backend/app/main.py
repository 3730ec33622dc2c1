"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.infrastructure.database import Base, dispose_engine, engine
from app.application.interfaces.stage_handler import StageHandler
from app.application.services import BackgroundProcessor, StageRegistry, StaleJobReaper
from app.domain.entities.processing_job import JobType
from app.infrastructure.dependencies import job_repository_scope, job_service_scope
from app.infrastructure.logging.log_config import setup_logging
from app.presentation.api.router import router as api_router

logger = logging.getLogger(__name__)


async def _ensure_database_exists() -> None:
    """Create the PostgreSQL database if it does not yet exist.

    Connects to the default ``postgres`` maintenance database, checks for the
    target database name, and issues ``CREATE DATABASE`` when missing.
    """
    from urllib.parse import urlparse

    import asyncpg

    settings = get_settings()
    if not settings.database_url.startswith("postgresql"):
        return

    parsed = urlparse(settings.database_url)
    db_name = parsed.path.lstrip("/")
    if not db_name:
        return

    maintenance_url = settings.database_url.rsplit("/", 1)[0] + "/postgres"

    try:
        conn = await asyncpg.connect(maintenance_url)
        try:
            exists = await conn.fetchval(
                "SELECT 1 FROM pg_database WHERE datname = $1", db_name
            )
            if not exists:
                # CREATE DATABASE cannot run inside a transaction block
                await conn.execute(f'CREATE DATABASE "{db_name}"')
                logger.info("Created database '%s'", db_name)
            else:
                logger.debug("Database '%s' already exists", db_name)
        finally:
            await conn.close()
    except Exception as exc:
        logger.warning("Could not auto-create database '%s': %s", db_name, exc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan — create tables, start the reaper and the job dispatcher."""
    settings = get_settings()
    setup_logging()

    # 0. Ensure the PostgreSQL database exists (auto-create if missing)
    await _ensure_database_exists()

    # 1. Create all database tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # 2. Start the stale-job reaper
    reaper = StaleJobReaper(
        repository_scope=job_repository_scope,
        stale_after=timedelta(minutes=settings.stale_job_timeout_minutes),
        interval_seconds=settings.stale_job_sweep_interval_seconds,
    )
    await reaper.start()

    # 3. Start the background processor once every stage has a handler
    registry: StageRegistry = app.state.stage_registry
    processor = None
    if registry.is_complete:
        processor = BackgroundProcessor(
            service_scope=job_service_scope(registry),
            repository_scope=job_repository_scope,
            poll_interval=settings.job_poll_interval_seconds,
            max_concurrency=settings.job_max_concurrency,
            resume_failed=settings.job_resume_failed,
        )
        await processor.start()
    else:
        logger.warning(
            "Job processing disabled; no stage handler for: %s",
            ", ".join(job_type.value for job_type in registry.missing()),
        )
    app.state.background_processor = processor

    yield

    # Shutdown
    if processor is not None:
        await processor.stop()
    await reaper.stop()
    app.state.background_processor = None
    await dispose_engine()


def create_app(stage_handlers: dict[JobType, StageHandler] | None = None) -> FastAPI:
    """Factory function that builds and configures the FastAPI application.

    ``stage_handlers`` maps each single-stage job type to the coroutine that
    performs it. A partial mapping raises ConfigurationError. Without one the
    API still serves job state but nothing is executed.
    """
    settings = get_settings()

    registry = StageRegistry(stage_handlers)
    if stage_handlers is not None:
        registry.validate()

    app = FastAPI(
        title=settings.app_title,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.stage_registry = registry
    app.state.background_processor = None

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8020,
        reload=True,
    )
