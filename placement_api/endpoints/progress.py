"""Candidate progress endpoints."""

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from placement_api.config.database import get_db
from placement_api.middleware.error_handler import ConflictError, ForbiddenError, NotFoundError
from placement_api.models import AuditAction, EntryStatus, OverallStatus, StageProgress
from placement_api.schemas.progress import (
    DriveProgressResponse,
    EliminatedStudent,
    HistoryEntryResponse,
    ManualProgressRequest,
    ManualProgressResponse,
    ProgressResponse,
    SelectedStudent,
    StageGroup,
    StageGroupStudent,
    StageRef,
)
from placement_api.services.access import load_drive, load_drive_for, load_stage
from placement_api.services.audit import AuditLogger, get_audit_logger
from placement_api.services.progress_tracker import ProgressTracker, commit_progress
from placement_api.services.rbac import (
    EMPLOYER,
    STAFF_ROLES,
    STUDENT,
    actor_from_user,
    request_context,
    require_authenticated,
    require_role,
)

logger = structlog.get_logger()
router = APIRouter()


@router.get("/{drive_id}/progress", response_model=DriveProgressResponse)
async def drive_progress(
    drive_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_role(STAFF_ROLES)),
):
    """Every candidate's progress in a drive, grouped by current stage."""
    drive = load_drive_for(db, drive_id, user)

    progress_list = (
        db.query(StageProgress)
        .filter(StageProgress.drive_id == drive.id)
        .order_by(StageProgress.current_stage_order.desc(), StageProgress.created_at)
        .all()
    )

    def by_status(status: OverallStatus) -> list[StageProgress]:
        return [p for p in progress_list if p.overall_status == status.value]

    grouped = []
    for stage in drive.stages:
        students = [
            StageGroupStudent(
                id=p.student.id,
                student_id=p.student.student_id,
                student_name=p.student.full_name,
                branch=p.student.branch,
                overall_status=p.overall_status,
                history=[HistoryEntryResponse.model_validate(h) for h in p.history],
            )
            for p in progress_list
            if p.current_stage_id == stage.id
        ]
        grouped.append(StageGroup(stage=StageRef.model_validate(stage), students=students))

    eliminated = by_status(OverallStatus.ELIMINATED)
    selected = by_status(OverallStatus.SELECTED)

    return DriveProgressResponse(
        total=len(progress_list),
        active=len(by_status(OverallStatus.ACTIVE)),
        on_hold=len(by_status(OverallStatus.ON_HOLD)),
        eliminated=len(eliminated),
        selected=len(selected),
        grouped_by_stage=grouped,
        eliminated_students=[
            EliminatedStudent(
                id=p.student.id,
                student_id=p.student.student_id,
                student_name=p.student.full_name,
                eliminated_at=p.eliminated_at,
                eliminated_reason=p.eliminated_reason,
            )
            for p in eliminated
        ],
        selected_students=[
            SelectedStudent(
                id=p.student.id,
                student_id=p.student.student_id,
                student_name=p.student.full_name,
                selected_at=p.selected_at,
            )
            for p in selected
        ],
    )


@router.get("/{drive_id}/progress/students/{student_id}", response_model=ProgressResponse)
async def student_progress(
    drive_id: int,
    student_id: int,
    db: Session = Depends(get_db),
    user: dict = Depends(require_authenticated),
):
    """One candidate's progress and stage history. Students may only see their own."""
    role = str(user.get("role", "")).lower()
    if role == STUDENT:
        if str(user.get("sub")) != str(student_id):
            raise ForbiddenError("Access denied")
        drive = load_drive(db, drive_id)
    else:
        drive = load_drive_for(db, drive_id, user)

    progress = ProgressTracker(db).get(drive.id, student_id)
    if progress is None:
        raise NotFoundError("Progress", student_id, message="No progress found for this student")

    return ProgressResponse.model_validate(progress)


@router.post("/{drive_id}/progress", response_model=ManualProgressResponse)
async def manual_progress(
    drive_id: int,
    data: ManualProgressRequest,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    user: dict = Depends(require_role([EMPLOYER])),
):
    """
    Move the listed candidates to a later stage.

    Candidates without a progress record, already eliminated or selected,
    or already at or beyond the target are reported in ``errors``.
    """
    drive = load_drive_for(db, drive_id, user)
    try:
        target = load_stage(db, drive, data.target_stage_id)
    except NotFoundError:
        raise NotFoundError("Stage", data.target_stage_id, message="Target stage not found")

    tracker = ProgressTracker(db)
    updated = []
    errors = []

    for student_id in data.student_ids:
        progress = tracker.get(drive.id, student_id, for_update=True)
        if progress is None:
            errors.append(f"No progress found for student {student_id}")
            continue
        try:
            tracker.progress_to_stage(progress, target, EntryStatus.PASSED, notes=data.reason)
        except ConflictError as e:
            errors.append(f"Failed to progress student {student_id}: {e.message}")
            continue
        updated.append(student_id)

    commit_progress(db)

    logger.info(
        "Manual progression",
        drive_id=drive.id,
        target_stage_id=target.id,
        updated=len(updated),
        errors=len(errors),
    )

    if updated:
        audit.record(
            AuditAction.STAGE_PROGRESSION,
            actor_from_user(user),
            drive_id=drive.id,
            stage_id=target.id,
            affected_students=updated,
            details={"manual": True, "target_stage": target.stage_name, "reason": data.reason},
            context=request_context(request),
        )

    return ManualProgressResponse(updated=len(updated), errors=errors or None)
