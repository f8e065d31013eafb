"""Stage result endpoints: ingestion, preview, publication and candidate view."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.orm import Session

from placement_api.config.database import get_db
from placement_api.config.settings import settings
from placement_api.middleware.error_handler import ForbiddenError, MalformedInputError, NotFoundError
from placement_api.models import Application, Student, StageResult
from placement_api.schemas.results import (
    IngestionResponse,
    ManualResultRequest,
    ManualResultResponse,
    MyResult,
    MyResultResponse,
    NextStageInfo,
    PreviewResponse,
    PreviewResultItem,
    PreviewStatistics,
    PublishRequest,
    PublishResponse,
    ResultSummaryResponse,
)
from placement_api.services.access import load_drive, load_drive_for, load_stage
from placement_api.services.audit import AuditLogger, get_audit_logger
from placement_api.services.cutoff import Verdict
from placement_api.services.ingestion import ResultIngestor
from placement_api.services.progress_tracker import ProgressTracker
from placement_api.services.publication import PublicationCoordinator
from placement_api.services.rbac import (
    STAFF_ROLES,
    STUDENT,
    actor_from_user,
    request_context,
    require_role,
)

logger = structlog.get_logger()
router = APIRouter()


@router.post("/{drive_id}/results/upload", response_model=IngestionResponse)
async def upload_results(
    drive_id: int,
    request: Request,
    stage_id: int = Form(..., alias="stageId"),
    file: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    user: dict = Depends(require_role(STAFF_ROLES)),
):
    """
    Upload a CSV or Excel file of results for one stage.

    Rows that cannot be matched to a student or an application are
    reported in ``errors``; the rest are stored.
    """
    if file is None or not file.filename:
        raise MalformedInputError("No file uploaded")

    drive = load_drive_for(db, drive_id, user)
    stage = load_stage(db, drive, stage_id)

    # One byte past the limit is enough to reject the file
    content = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    ingestor = ResultIngestor(db, audit)
    report = ingestor.ingest_file(
        drive, stage, file.filename, content,
        actor_from_user(user), request_context(request),
    )

    return IngestionResponse(
        processed_count=report.processed_count,
        total_count=report.total_count,
        results=[ResultSummaryResponse.model_validate(s) for s in report.results],
        errors=report.errors or None,
    )


@router.post("/{drive_id}/results/manual", response_model=ManualResultResponse)
async def manual_result(
    drive_id: int,
    data: ManualResultRequest,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    user: dict = Depends(require_role(STAFF_ROLES)),
):
    """Enter one student's result by hand."""
    drive = load_drive_for(db, drive_id, user)
    stage = load_stage(db, drive, data.stage_id)

    ingestor = ResultIngestor(db, audit)
    summary = ingestor.manual_entry(
        drive, stage, data.student_id, data.marks_obtained,
        actor_from_user(user), remarks=data.remarks, context=request_context(request),
    )
    return ManualResultResponse(result=ResultSummaryResponse.model_validate(summary))


@router.get("/{drive_id}/results/preview", response_model=PreviewResponse)
async def preview_results(
    drive_id: int,
    stage_id: int = Query(..., alias="stageId"),
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    user: dict = Depends(require_role(STAFF_ROLES)),
):
    """Statistics and every result of a stage, before or after publishing."""
    drive = load_drive_for(db, drive_id, user)
    stage = load_stage(db, drive, stage_id)

    stats, results = PublicationCoordinator(db, audit).preview(drive, stage)

    return PreviewResponse(
        stage_id=stage.id,
        stage_name=stage.stage_name,
        statistics=PreviewStatistics(**stats),
        results=[
            PreviewResultItem(
                id=r.id,
                student_id=r.student.student_id,
                student_name=r.student.full_name,
                branch=r.student.branch,
                email=r.student.university_email,
                marks_obtained=r.marks_obtained,
                total_marks=r.total_marks,
                percentage=r.percentage,
                verdict=r.verdict,
                remarks=r.remarks,
                published=r.published,
            )
            for r in results
        ],
    )


@router.post("/{drive_id}/results/publish", response_model=PublishResponse)
async def publish_results(
    drive_id: int,
    data: PublishRequest,
    request: Request,
    db: Session = Depends(get_db),
    audit: AuditLogger = Depends(get_audit_logger),
    user: dict = Depends(require_role(STAFF_ROLES)),
):
    """Publish a stage's results and move candidates along the pipeline."""
    drive = load_drive_for(db, drive_id, user)
    stage = load_stage(db, drive, data.stage_id)

    report = PublicationCoordinator(db, audit).publish(
        drive, stage, actor_from_user(user),
        remarks=data.remarks, context=request_context(request),
    )

    return PublishResponse(
        published_count=report.published_count,
        qualified_count=report.qualified_count,
        not_qualified_count=report.not_qualified_count,
        newly_published=report.newly_published,
        generation=report.generation,
        advanced_count=len(report.advanced),
        eliminated_count=len(report.eliminated),
        selected_count=len(report.selected),
        errors=report.errors or None,
    )


@router.get("/{drive_id}/results/me", response_model=MyResultResponse)
async def my_result(
    drive_id: int,
    stage_id: int = Query(..., alias="stageId"),
    db: Session = Depends(get_db),
    user: dict = Depends(require_role([STUDENT])),
):
    """
    A student's own result for a stage.

    Unpublished results are reported as not found, exactly like missing ones.
    """
    drive = load_drive(db, drive_id)
    student = db.get(Student, int(user["sub"])) if str(user["sub"]).isdigit() else None
    if student is None:
        raise NotFoundError("Student", user["sub"])

    application = (
        db.query(Application)
        .filter(Application.drive_id == drive.id, Application.student_id == student.id)
        .first()
    )
    if application is None:
        raise ForbiddenError("You have not applied to this drive")

    result = (
        db.query(StageResult)
        .filter(
            StageResult.drive_id == drive.id,
            StageResult.student_id == student.id,
            StageResult.stage_id == stage_id,
            StageResult.published.is_(True),
        )
        .first()
    )
    if result is None:
        raise NotFoundError("Result", stage_id, message="Result not yet published or not found")

    stage = result.stage
    qualified = result.verdict == Verdict.QUALIFIED.value

    next_stage = None
    progress = ProgressTracker(db).get(drive.id, student.id)
    current = progress.current_stage if progress is not None else None
    if qualified and current is not None and current.order > stage.order:
        next_stage = NextStageInfo(
            stage_name=current.stage_name,
            stage_type=current.stage_type,
            scheduled_date=current.scheduled_date,
            location=current.location,
        )

    if qualified:
        message = "Congratulations! You have qualified for the next round."
    elif result.verdict == Verdict.NOT_QUALIFIED.value:
        message = "Unfortunately, you did not qualify for the next round."
    else:
        message = "Your result is awaiting a decision."

    return MyResultResponse(
        result=MyResult(
            marks_obtained=result.marks_obtained,
            total_marks=result.total_marks,
            percentage=round(result.percentage, 2) if result.percentage is not None else None,
            verdict=result.verdict,
            stage_name=stage.stage_name,
            cutoff_type=stage.cutoff_type,
            cutoff_value=stage.cutoff_value,
            published_at=result.published_at,
        ),
        next_stage=next_stage,
        message=message,
    )
