"""Result ingestion: bulk files and manual entries for one stage."""

from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from placement_api.config.settings import settings
from placement_api.middleware.error_handler import (
    ConflictError,
    NotFoundError,
    ValidationAPIError,
)
from placement_api.models import (
    Application,
    AuditAction,
    Drive,
    DriveStage,
    Student,
    UploadMethod,
)
from placement_api.services.audit import AuditLogger
from placement_api.services.cutoff import evaluate, compute_percentage
from placement_api.services.parsers import ParsedRow, parse_result_file, upload_method_for
from placement_api.services.progress_tracker import ProgressTracker
from placement_api.services.rbac import Actor, RequestContext
from placement_api.services.result_store import ResultStore, projected_application_status

logger = structlog.get_logger()


class RowError(Exception):
    """A single row could not be ingested; the batch continues."""


@dataclass
class ResultSummary:
    """One accepted result as reported back to the uploader."""

    result_id: int
    student_pk: int
    student_id: str
    student_name: str
    marks_obtained: float
    total_marks: float
    percentage: Optional[float]
    verdict: str
    application_status: str
    overwritten: bool = False


@dataclass
class IngestionReport:
    processed_count: int = 0
    total_count: int = 0
    results: list[ResultSummary] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class ResultIngestor:
    """
    Turns uploaded rows into stored, evaluated results.

    Each row is resolved to a student and that student's application to
    the drive, evaluated against the stage's cutoff rule and written to
    the result store. Bulk uploads collect row failures and carry on;
    manual entries fail on the first problem.
    """

    def __init__(
        self,
        db: Session,
        audit: AuditLogger,
        status_on_evaluation: Optional[bool] = None,
        allow_after_terminal: Optional[bool] = None,
    ):
        self.db = db
        self.audit = audit
        self.store = ResultStore(db, status_on_evaluation=status_on_evaluation)
        self.tracker = ProgressTracker(db)
        if allow_after_terminal is None:
            allow_after_terminal = settings.ALLOW_RESULTS_AFTER_TERMINAL
        self.allow_after_terminal = allow_after_terminal

    @staticmethod
    def total_marks_for(stage: DriveStage) -> float:
        return stage.cutoff_total_marks or settings.DEFAULT_TOTAL_MARKS

    def ingest_file(
        self,
        drive: Drive,
        stage: DriveStage,
        filename: str,
        content: bytes,
        actor: Actor,
        context: Optional[RequestContext] = None,
    ) -> IngestionReport:
        """
        Ingest a bulk result file.

        Raises:
            ValidationAPIError: file too large
            MalformedInputError: unsupported type, unreadable file, missing columns
        """
        if len(content) > settings.MAX_UPLOAD_BYTES:
            raise ValidationAPIError(
                f"File exceeds the {settings.MAX_UPLOAD_BYTES} byte upload limit",
                field="file",
            )

        method = upload_method_for(filename)
        rows = parse_result_file(filename, content)
        total_marks = self.total_marks_for(stage)

        report = IngestionReport(total_count=len(rows))
        for row in rows:
            try:
                summary = self._ingest_row(drive, stage, row, total_marks, actor, method.value)
            except RowError as e:
                report.errors.append(str(e))
                continue
            report.results.append(summary)

        report.processed_count = len(report.results)
        self.db.commit()

        logger.info(
            "Results ingested",
            drive_id=drive.id,
            stage_id=stage.id,
            filename=filename,
            total=report.total_count,
            processed=report.processed_count,
            errors=len(report.errors),
        )

        self.audit.record(
            AuditAction.BULK_UPLOAD,
            actor,
            drive_id=drive.id,
            stage_id=stage.id,
            affected_students=[s.student_pk for s in report.results],
            details={
                "file_name": filename,
                "upload_method": method.value,
                "total_rows": report.total_count,
                "processed_rows": report.processed_count,
                "errors": len(report.errors),
            },
            context=context,
        )
        self._audit_overwrites(drive, stage, actor, report.results, context)
        return report

    def manual_entry(
        self,
        drive: Drive,
        stage: DriveStage,
        student_external_id: str,
        marks_obtained: float,
        actor: Actor,
        remarks: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> ResultSummary:
        """
        Record one candidate's result.

        Raises:
            NotFoundError: unknown student, or no application to this drive
            ValidationAPIError: marks out of range
            ConflictError: candidate already eliminated or selected
        """
        total_marks = self.total_marks_for(stage)
        if marks_obtained < 0 or marks_obtained > total_marks:
            raise ValidationAPIError(
                f"Marks must be between 0 and {total_marks:g}",
                field="marksObtained",
            )

        student = self._find_student(student_external_id)
        if student is None:
            raise NotFoundError("Student", student_external_id)

        application = self._find_application(drive, student)
        if application is None:
            raise NotFoundError(
                "Application",
                student_external_id,
                message="Student has not applied to this drive",
            )

        blocked = self._terminal_status(drive, student)
        if blocked:
            raise ConflictError(
                f"Student {student_external_id} is already {blocked} in this drive",
                details={"student_id": student_external_id, "overall_status": blocked},
            )

        summary = self._store(
            application, student, stage, marks_obtained, total_marks, actor,
            UploadMethod.MANUAL.value, remarks=remarks,
            source_row={"studentId": student_external_id, "marksObtained": marks_obtained, "remarks": remarks},
        )
        self.db.commit()

        logger.info(
            "Manual result saved",
            drive_id=drive.id,
            stage_id=stage.id,
            student_id=student.id,
            verdict=summary.verdict,
        )

        self.audit.record(
            AuditAction.MANUAL_ENTRY,
            actor,
            drive_id=drive.id,
            stage_id=stage.id,
            affected_students=[student.id],
            details={
                "student_id": student_external_id,
                "marks_obtained": marks_obtained,
                "verdict": summary.verdict,
            },
            context=context,
        )
        self._audit_overwrites(drive, stage, actor, [summary], context)
        return summary

    def _ingest_row(
        self,
        drive: Drive,
        stage: DriveStage,
        row: ParsedRow,
        total_marks: float,
        actor: Actor,
        upload_method: str,
    ) -> ResultSummary:
        if not row.student_id:
            raise RowError(f"Row {row.row_number}: missing student ID")
        if row.marks_obtained < 0:
            raise RowError(f"Row {row.row_number}: marks cannot be negative for student {row.student_id}")
        if row.marks_obtained > total_marks:
            raise RowError(
                f"Row {row.row_number}: marks {row.marks_obtained:g} exceed total {total_marks:g} "
                f"for student {row.student_id}"
            )

        student = self._find_student(row.student_id)
        if student is None:
            raise RowError(f"Student ID {row.student_id} not found")

        application = self._find_application(drive, student)
        if application is None:
            raise RowError(f"Student {row.student_id} has not applied to this drive")

        blocked = self._terminal_status(drive, student)
        if blocked:
            raise RowError(f"Student {row.student_id} is already {blocked} in this drive")

        return self._store(
            application, student, stage, row.marks_obtained, total_marks, actor,
            upload_method, source_row=row.raw,
        )

    def _store(
        self,
        application: Application,
        student: Student,
        stage: DriveStage,
        marks_obtained: float,
        total_marks: float,
        actor: Actor,
        upload_method: str,
        remarks: Optional[str] = None,
        source_row: Optional[dict] = None,
    ) -> ResultSummary:
        verdict = evaluate(marks_obtained, total_marks, stage.cutoff_rule)
        result, created = self.store.upsert_result(
            application, student, stage, marks_obtained, total_marks, verdict, actor,
            upload_method, remarks=remarks, source_row=source_row,
        )
        return ResultSummary(
            result_id=result.id,
            student_pk=student.id,
            student_id=student.student_id,
            student_name=student.full_name,
            marks_obtained=marks_obtained,
            total_marks=total_marks,
            percentage=compute_percentage(marks_obtained, total_marks),
            verdict=verdict.value,
            application_status=projected_application_status(verdict.value, application.status),
            overwritten=not created,
        )

    def _find_student(self, external_id: str) -> Optional[Student]:
        return self.db.query(Student).filter(Student.student_id == str(external_id).strip()).first()

    def _find_application(self, drive: Drive, student: Student) -> Optional[Application]:
        return (
            self.db.query(Application)
            .filter(Application.drive_id == drive.id, Application.student_id == student.id)
            .first()
        )

    def _terminal_status(self, drive: Drive, student: Student) -> Optional[str]:
        """Overall status if the candidate's pipeline has ended and new results are refused."""
        if self.allow_after_terminal:
            return None
        progress = self.tracker.get(drive.id, student.id)
        if progress is not None and progress.is_terminal:
            return progress.overall_status
        return None

    def _audit_overwrites(
        self,
        drive: Drive,
        stage: DriveStage,
        actor: Actor,
        summaries: list[ResultSummary],
        context: Optional[RequestContext],
    ) -> None:
        overwritten = [s for s in summaries if s.overwritten]
        if not overwritten:
            return
        self.audit.record(
            AuditAction.RESULT_MODIFIED,
            actor,
            drive_id=drive.id,
            stage_id=stage.id,
            affected_students=[s.student_pk for s in overwritten],
            details={"student_ids": [s.student_id for s in overwritten], "count": len(overwritten)},
            context=context,
        )
