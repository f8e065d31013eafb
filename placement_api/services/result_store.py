"""Result store: one evaluated result per (drive, student, stage)."""

import json
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from placement_api.config.settings import settings
from placement_api.models import Application, ApplicationStatus, DriveStage, StageResult, Student
from placement_api.services.cutoff import Verdict
from placement_api.services.rbac import Actor

logger = structlog.get_logger()


# Candidate-visible application status for each verdict; Pending leaves it as is
APPLICATION_STATUS_FOR_VERDICT = {
    Verdict.QUALIFIED.value: ApplicationStatus.SHORTLISTED.value,
    Verdict.NOT_QUALIFIED.value: ApplicationStatus.REJECTED.value,
}


def projected_application_status(verdict: str, current_status: str) -> str:
    """Application status the candidate will see once ``verdict`` takes effect."""
    return APPLICATION_STATUS_FOR_VERDICT.get(verdict, current_status)


def apply_verdict_to_application(application: Application, verdict: str) -> str:
    """Move an application's status according to a verdict. Returns the new status."""
    new_status = projected_application_status(verdict, application.status)
    if new_status != application.status:
        logger.info(
            "Application status changed",
            application_id=application.id,
            from_status=application.status,
            to_status=new_status,
        )
        application.status = new_status
    return new_status


class ResultStore:
    """
    Reads and writes ``StageResult`` rows.

    Re-submitting a result for an existing (drive, student, stage) triple
    overwrites the row in place and makes it unpublished again.
    """

    def __init__(self, db: Session, status_on_evaluation: Optional[bool] = None):
        self.db = db
        if status_on_evaluation is None:
            status_on_evaluation = settings.APPLICATION_STATUS_ON_EVALUATION
        self.status_on_evaluation = status_on_evaluation

    def find(self, drive_id: int, student_id: int, stage_id: int) -> Optional[StageResult]:
        return (
            self.db.query(StageResult)
            .filter(
                StageResult.drive_id == drive_id,
                StageResult.student_id == student_id,
                StageResult.stage_id == stage_id,
            )
            .first()
        )

    def count_results(self, drive_id: int, student_id: int, stage_id: int) -> int:
        return (
            self.db.query(StageResult)
            .filter(
                StageResult.drive_id == drive_id,
                StageResult.student_id == student_id,
                StageResult.stage_id == stage_id,
            )
            .count()
        )

    def for_stage(self, drive_id: int, stage_id: int, for_update: bool = False) -> list[StageResult]:
        query = self.db.query(StageResult).filter(
            StageResult.drive_id == drive_id,
            StageResult.stage_id == stage_id,
        )
        if for_update:
            query = query.with_for_update()
        return query.order_by(StageResult.id).all()

    def upsert_result(
        self,
        application: Application,
        student: Student,
        stage: DriveStage,
        marks_obtained: float,
        total_marks: float,
        verdict: Verdict,
        evaluator: Actor,
        upload_method: str,
        remarks: Optional[str] = None,
        source_row: Optional[dict[str, Any]] = None,
    ) -> tuple[StageResult, bool]:
        """
        Create or overwrite the result of ``student`` at ``stage``.

        Returns:
            (result, created)
        """
        values = {
            "application_id": application.id,
            "marks_obtained": marks_obtained,
            "total_marks": total_marks,
            "verdict": verdict.value,
            "remarks": remarks,
            "evaluated_by": evaluator.id,
            "evaluator_role": evaluator.label,
            "evaluated_at": datetime.now(timezone.utc),
            "upload_method": upload_method,
            "published": False,
            "published_at": None,
            "source_row": json.dumps(source_row, default=str) if source_row else None,
        }

        result = self.find(stage.drive_id, student.id, stage.id)
        created = result is None

        if created:
            result = StageResult(drive_id=stage.drive_id, student_id=student.id, stage_id=stage.id, **values)
            try:
                with self.db.begin_nested():
                    self.db.add(result)
            except IntegrityError:
                # Another writer inserted the same triple first; last write wins
                logger.info(
                    "Result inserted concurrently, overwriting",
                    drive_id=stage.drive_id,
                    student_id=student.id,
                    stage_id=stage.id,
                )
                result = self.find(stage.drive_id, student.id, stage.id)
                created = False

        if not created:
            for key, value in values.items():
                setattr(result, key, value)

        if self.status_on_evaluation:
            apply_verdict_to_application(application, verdict.value)

        logger.debug(
            "Result stored",
            result_id=result.id,
            student_id=student.id,
            stage_id=stage.id,
            verdict=verdict.value,
            created=created,
        )
        return result, created
