"""Health check endpoints for monitoring."""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from placement_api.config.settings import settings
from placement_api.config.database import get_db
from placement_api.services.audit import AuditLogger, get_audit_logger

logger = structlog.get_logger()
router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: str
    database: str
    audit_outbox: int


def check_database(db: Session) -> tuple[str, str | None]:
    """Check database connectivity."""
    try:
        result = db.execute(text("SELECT 1"))
        result.fetchone()
        return "connected", None
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        return "disconnected", str(e)


@router.get("", response_model=HealthResponse)
@router.get("/", response_model=HealthResponse)
async def health_check(
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
) -> HealthResponse:
    """
    Basic health check endpoint.

    Reports database connectivity and how many audit entries are waiting
    to be retried. Parked audit entries degrade the status without making
    the service unhealthy.
    """
    db_status, _ = check_database(db)
    pending = audit.pending_count

    if db_status != "connected":
        overall_status = "unhealthy"
    elif pending:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthResponse(
        status=overall_status,
        version=settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        database=db_status,
        audit_outbox=pending,
    )


@router.get("/live")
async def liveness_check() -> dict:
    """Liveness probe. Returns 200 if the service process is alive."""
    return {"alive": True}
