"""API endpoints for the placement pipeline."""

from fastapi import APIRouter

from placement_api.schemas.base import ERROR_RESPONSES

from .health import router as health_router
from .stages import router as stages_router
from .results import router as results_router
from .progress import router as progress_router
from .audit_logs import router as audit_logs_router

# Create main API router
api_router = APIRouter()

# Include all routers
api_router.include_router(health_router, prefix="/health", tags=["Health"])
api_router.include_router(stages_router, prefix="/drives", tags=["Stages"], responses=ERROR_RESPONSES)
api_router.include_router(results_router, prefix="/drives", tags=["Results"], responses=ERROR_RESPONSES)
api_router.include_router(progress_router, prefix="/drives", tags=["Progress"], responses=ERROR_RESPONSES)
api_router.include_router(audit_logs_router, prefix="/audit-logs", tags=["Audit Logs"], responses=ERROR_RESPONSES)

__all__ = ["api_router"]
