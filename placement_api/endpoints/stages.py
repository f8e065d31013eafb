"""Stage catalog endpoints: the ordered stages of a drive."""

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from placement_api.config.database import get_db
from placement_api.middleware.error_handler import ValidationAPIError
from placement_api.models import AuditAction, Drive, DriveStage
from placement_api.schemas.stages import (
    StageCreate,
    StageUpdate,
    StageReorderRequest,
    StageResponse,
    StageListResponse,
)
from placement_api.services.access import load_drive, load_drive_for, load_stage
from placement_api.services.audit import AuditLogger, get_audit_logger
from placement_api.services.progress_tracker import commit_progress, sync_stage_orders
from placement_api.services.rbac import (
    STAFF_ROLES,
    actor_from_user,
    request_context,
    require_authenticated,
    require_role,
)

logger = structlog.get_logger()
router = APIRouter()


def _set_active(drive: Drive, stage: DriveStage) -> None:
    for other in drive.stages:
        other.is_active = other is stage
    drive.current_active_stage = stage


def _stage_list(drive: Drive) -> StageListResponse:
    return StageListResponse(
        drive_id=drive.id,
        stages_enabled=bool(drive.stages_enabled),
        current_active_stage_id=drive.current_active_stage_id,
        stages=[StageResponse.model_validate(s) for s in drive.stages],
    )


@router.get("/{drive_id}/stages", response_model=StageListResponse)
async def list_stages(
    drive_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_authenticated),
):
    """List a drive's stages in pipeline order."""
    drive = load_drive(db, drive_id)
    return _stage_list(drive)


@router.post("/{drive_id}/stages", response_model=StageResponse, status_code=201)
async def create_stage(
    drive_id: int,
    data: StageCreate,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    user: dict = Depends(require_role(STAFF_ROLES)),
):
    """Add a stage, appended or inserted at ``position``."""
    drive = load_drive_for(db, drive_id, user)

    stage = DriveStage(
        stage_name=data.stage_name,
        stage_type=data.stage_type.value,
        description=data.description,
        cutoff_type=data.cutoff.type,
        cutoff_value=data.cutoff.value,
        cutoff_total_marks=data.cutoff.total_marks,
        scheduled_date=data.scheduled_date,
        location=data.location,
        mode=data.mode.value,
        instructions=data.instructions,
        is_active=False,
    )

    if data.position is not None and data.position <= len(drive.stages):
        drive.stages.insert(data.position - 1, stage)
        sync_stage_orders(db, drive)
    else:
        drive.stages.append(stage)
    drive.stages_enabled = True

    if data.is_active:
        _set_active(drive, stage)

    commit_progress(db)
    db.refresh(stage)

    logger.info("Stage created", drive_id=drive.id, stage_id=stage.id, order=stage.order)

    audit.record(
        AuditAction.STAGE_CREATED,
        actor_from_user(user),
        drive_id=drive.id,
        stage_id=stage.id,
        details={"stage_name": stage.stage_name, "stage_type": stage.stage_type, "order": stage.order},
        context=request_context(request),
    )
    return StageResponse.model_validate(stage)


@router.put("/{drive_id}/stages/order", response_model=StageListResponse)
async def reorder_stages(
    drive_id: int,
    data: StageReorderRequest,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    user: dict = Depends(require_role(STAFF_ROLES)),
):
    """Replace the stage sequence. Every stage must be listed exactly once."""
    drive = load_drive_for(db, drive_id, user)

    current_ids = [s.id for s in drive.stages]
    if sorted(data.stage_ids) != sorted(current_ids):
        raise ValidationAPIError(
            "stageIds must list every stage of the drive exactly once",
            field="stageIds",
        )

    position = {stage_id: index for index, stage_id in enumerate(data.stage_ids)}
    drive.stages.sort(key=lambda s: position[s.id])
    drive.stages.reorder()
    sync_stage_orders(db, drive)
    commit_progress(db)

    logger.info("Stages reordered", drive_id=drive.id, order=data.stage_ids)

    audit.record(
        AuditAction.STAGE_MODIFIED,
        actor_from_user(user),
        drive_id=drive.id,
        details={"reordered": True, "previous": current_ids, "current": data.stage_ids},
        context=request_context(request),
    )
    return _stage_list(drive)


@router.get("/{drive_id}/stages/{stage_id}", response_model=StageResponse)
async def get_stage(
    drive_id: int,
    stage_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_authenticated),
):
    """Get one stage."""
    drive = load_drive(db, drive_id)
    return StageResponse.model_validate(load_stage(db, drive, stage_id))


@router.patch("/{drive_id}/stages/{stage_id}", response_model=StageResponse)
async def update_stage(
    drive_id: int,
    stage_id: int,
    data: StageUpdate,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    user: dict = Depends(require_role(STAFF_ROLES)),
):
    """Update a stage's attributes, cutoff rule or active flag."""
    drive = load_drive_for(db, drive_id, user)
    stage = load_stage(db, drive, stage_id)

    changes = data.model_dump(exclude_unset=True)
    cutoff = changes.pop("cutoff", None)
    is_active = changes.pop("is_active", None)

    for field, value in changes.items():
        if hasattr(value, "value"):
            value = value.value
        setattr(stage, field, value)

    if cutoff is not None:
        stage.cutoff_type = data.cutoff.type
        stage.cutoff_value = data.cutoff.value
        stage.cutoff_total_marks = data.cutoff.total_marks

    if is_active:
        _set_active(drive, stage)
    elif is_active is False:
        stage.is_active = False
        if drive.current_active_stage_id == stage.id:
            drive.current_active_stage = None

    db.commit()
    db.refresh(stage)

    logger.info("Stage updated", drive_id=drive.id, stage_id=stage.id, fields=list(data.model_fields_set))

    audit.record(
        AuditAction.STAGE_MODIFIED,
        actor_from_user(user),
        drive_id=drive.id,
        stage_id=stage.id,
        details={"fields": sorted(data.model_fields_set)},
        context=request_context(request),
    )
    return StageResponse.model_validate(stage)
