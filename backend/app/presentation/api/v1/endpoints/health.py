"""Health check endpoint — no dependencies, always available."""

from fastapi import APIRouter, Request

from app.config import get_settings

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Returns the current application health status."""
    settings = get_settings()
    processor = getattr(request.app.state, "background_processor", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.app_env,
        "job_processing": "enabled" if processor is not None else "disabled",
    }
