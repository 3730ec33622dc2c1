"""V1 API router — aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from app.presentation.api.v1.endpoints.health import router as health_router
from app.presentation.api.v1.processing_jobs_controller import router as processing_jobs_router
from app.presentation.api.v1.admin_dead_letters_controller import router as admin_router

router = APIRouter(prefix="/v1")
router.include_router(health_router)
router.include_router(processing_jobs_router)
router.include_router(admin_router)
