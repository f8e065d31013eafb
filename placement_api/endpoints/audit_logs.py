"""Audit log listing endpoint."""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from placement_api.config.database import get_db
from placement_api.middleware.error_handler import ValidationAPIError
from placement_api.models import AuditAction, AuditLog
from placement_api.schemas.audit import AuditLogResponse
from placement_api.schemas.base import PaginatedResponse, PaginationMeta
from placement_api.services.rbac import FACULTY, require_role

logger = structlog.get_logger()
router = APIRouter()


@router.get("", response_model=PaginatedResponse[AuditLogResponse])
async def list_audit_logs(
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    drive_id: Optional[int] = Query(None, alias="driveId"),
    performed_by: Optional[str] = Query(None, alias="performedBy"),
    action: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    user: dict = Depends(require_role([FACULTY])),
):
    """List audit entries, newest first."""
    query = db.query(AuditLog)

    # Filters
    if drive_id is not None:
        query = query.filter(AuditLog.drive_id == drive_id)
    if performed_by:
        query = query.filter(AuditLog.performed_by == performed_by)
    if action:
        if action not in {a.value for a in AuditAction}:
            raise ValidationAPIError(f"Unknown audit action: {action}", field="action")
        query = query.filter(AuditLog.action == action)
    if date_from:
        query = query.filter(AuditLog.created_at >= date_from)
    if date_to:
        query = query.filter(AuditLog.created_at <= date_to)

    # Count total
    total = query.count()

    logs = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return PaginatedResponse[AuditLogResponse](
        data=[AuditLogResponse.model_validate(log) for log in logs],
        meta=PaginationMeta.for_page(page, per_page, total),
    )
