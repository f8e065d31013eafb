"""Publication coordinator: preview and publish a stage's results."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.orm import Session

from placement_api.config.settings import settings
from placement_api.middleware.error_handler import NothingToPublishError, TerminalStateError
from placement_api.models import (
    Application,
    ApplicationStatus,
    AuditAction,
    Drive,
    DriveStage,
    ResultPublication,
    StageResult,
)
from placement_api.services.audit import AuditLogger
from placement_api.services.cutoff import Verdict
from placement_api.services.progress_tracker import Outcome, ProgressTracker, commit_progress
from placement_api.services.rbac import Actor, RequestContext
from placement_api.services.result_store import ResultStore, apply_verdict_to_application

logger = structlog.get_logger()


def compute_statistics(results: list[StageResult], stage: DriveStage) -> dict[str, Any]:
    """Aggregate statistics over a stage's results."""
    marks = [r.marks_obtained for r in results]
    return {
        "total_candidates": len(results),
        "qualified": sum(1 for r in results if r.verdict == Verdict.QUALIFIED.value),
        "not_qualified": sum(1 for r in results if r.verdict == Verdict.NOT_QUALIFIED.value),
        "pending": sum(1 for r in results if r.verdict == Verdict.PENDING.value),
        "cutoff_type": stage.cutoff_type,
        "cutoff_value": stage.cutoff_value if stage.cutoff_value is not None else 0,
        "average_marks": round(sum(marks) / len(marks), 2) if marks else 0,
        "highest_marks": max(marks) if marks else 0,
        "lowest_marks": min(marks) if marks else 0,
    }


def _percentage_key(result: StageResult) -> float:
    return result.percentage if result.percentage is not None else -1.0


@dataclass
class PublishReport:
    """Outcome of one publish call."""

    published_count: int = 0
    qualified_count: int = 0
    not_qualified_count: int = 0
    newly_published: int = 0
    generation: int = 0
    advanced: list[int] = field(default_factory=list)
    eliminated: list[int] = field(default_factory=list)
    selected: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class PublicationCoordinator:
    """
    Makes a stage's results visible and applies their progress transitions.

    Publishing is idempotent: only results published for the first time
    (or re-ingested since the last publish) drive transitions and
    application status changes. The stage row is locked for the duration
    so concurrent publishes of one stage run one after the other.
    """

    def __init__(
        self,
        db: Session,
        audit: AuditLogger,
        status_on_evaluation: Optional[bool] = None,
    ):
        self.db = db
        self.audit = audit
        self.store = ResultStore(db, status_on_evaluation=status_on_evaluation)
        self.tracker = ProgressTracker(db)

    def preview(self, drive: Drive, stage: DriveStage) -> tuple[dict[str, Any], list[StageResult]]:
        """Statistics and every result of the stage, best percentage first."""
        results = self.store.for_stage(drive.id, stage.id)
        results.sort(key=_percentage_key, reverse=True)
        return compute_statistics(results, stage), results

    def publish(
        self,
        drive: Drive,
        stage: DriveStage,
        actor: Actor,
        remarks: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> PublishReport:
        """
        Publish the stage's results.

        Raises:
            NothingToPublishError: the stage has no results
            ConcurrentUpdateError: a candidate's progress changed underneath
        """
        self.db.query(DriveStage).filter(DriveStage.id == stage.id).with_for_update().one()

        results = self.store.for_stage(drive.id, stage.id, for_update=True)
        if not results:
            raise NothingToPublishError(drive.id, stage.id)

        now = datetime.now(timezone.utc)
        report = PublishReport(published_count=len(results))
        next_stage = drive.next_stage_after(stage)

        try:
            for result in results:
                if result.published:
                    continue
                result.published = True
                result.published_at = now
                report.newly_published += 1
                self._apply_transition(drive, stage, result, report)

            stats = compute_statistics(results, stage)
            report.qualified_count = stats["qualified"]
            report.not_qualified_count = stats["not_qualified"]

            publication = self._upsert_publication(drive, stage, actor, now, stats, remarks)
            report.generation = publication.generation

            if next_stage is not None:
                self._advance_active_stage(drive, stage, next_stage)

            commit_progress(self.db)
        except Exception as e:
            self.db.rollback()
            logger.error("Publish failed", drive_id=drive.id, stage_id=stage.id, error=str(e))
            self.audit.record(
                AuditAction.RESULT_PUBLISHED,
                actor,
                drive_id=drive.id,
                stage_id=stage.id,
                details={"remarks": remarks},
                context=context,
                success=False,
                error_message=str(e),
            )
            raise

        logger.info(
            "Stage published",
            drive_id=drive.id,
            stage_id=stage.id,
            generation=report.generation,
            published=report.published_count,
            newly_published=report.newly_published,
            advanced=len(report.advanced),
            eliminated=len(report.eliminated),
            selected=len(report.selected),
            errors=len(report.errors),
        )
        self._audit(drive, stage, actor, results, report, remarks, context)
        return report

    def _apply_transition(self, drive: Drive, stage: DriveStage, result: StageResult, report: PublishReport) -> None:
        if result.verdict == Verdict.PENDING.value:
            return

        try:
            if result.verdict == Verdict.QUALIFIED.value:
                outcome = self.tracker.record_pass(drive, stage, result)
            else:
                outcome = self.tracker.record_fail(drive, stage, result)
        except TerminalStateError as e:
            report.errors.append(f"Student {result.student_id}: {e.message}")
            return

        if outcome is Outcome.ADVANCED:
            report.advanced.append(result.student_id)
        elif outcome is Outcome.ELIMINATED:
            report.eliminated.append(result.student_id)
        elif outcome is Outcome.SELECTED:
            report.selected.append(result.student_id)

        application = self.db.get(Application, result.application_id)
        if outcome is Outcome.SELECTED:
            application.status = ApplicationStatus.SELECTED.value
        elif not self.store.status_on_evaluation:
            apply_verdict_to_application(application, result.verdict)

    def _upsert_publication(
        self,
        drive: Drive,
        stage: DriveStage,
        actor: Actor,
        published_at: datetime,
        stats: dict[str, Any],
        remarks: Optional[str],
    ) -> ResultPublication:
        publication = (
            self.db.query(ResultPublication)
            .filter(ResultPublication.drive_id == drive.id, ResultPublication.stage_id == stage.id)
            .first()
        )
        if publication is None:
            publication = ResultPublication(drive_id=drive.id, stage_id=stage.id, generation=0)
            self.db.add(publication)

        publication.published_by = actor.id
        publication.publisher_role = actor.label
        publication.published_at = published_at
        publication.is_published = True
        publication.generation = (publication.generation or 0) + 1
        publication.remarks = remarks
        publication.total_students = stats["total_candidates"]
        publication.qualified = stats["qualified"]
        publication.not_qualified = stats["not_qualified"]
        publication.pending = stats["pending"]
        publication.cutoff_type = stats["cutoff_type"]
        publication.cutoff_value = stats["cutoff_value"]
        publication.average_marks = stats["average_marks"]
        publication.highest_marks = stats["highest_marks"]
        publication.lowest_marks = stats["lowest_marks"]
        publication.notifications_sent = False
        publication.notifications_sent_at = None
        return publication

    def _advance_active_stage(self, drive: Drive, stage: DriveStage, next_stage: DriveStage) -> None:
        current = drive.current_active_stage
        if current is not None and current.order > stage.order:
            return
        if current is not None:
            current.is_active = False
        stage.is_active = False
        next_stage.is_active = True
        drive.current_active_stage = next_stage

    def _audit(
        self,
        drive: Drive,
        stage: DriveStage,
        actor: Actor,
        results: list[StageResult],
        report: PublishReport,
        remarks: Optional[str],
        context: Optional[RequestContext],
    ) -> None:
        self.audit.record(
            AuditAction.RESULT_PUBLISHED,
            actor,
            drive_id=drive.id,
            stage_id=stage.id,
            affected_students=[r.student_id for r in results],
            details={
                "qualified": report.qualified_count,
                "not_qualified": report.not_qualified_count,
                "total_published": report.published_count,
                "newly_published": report.newly_published,
                "generation": report.generation,
                "remarks": remarks,
                "errors": len(report.errors),
            },
            context=context,
        )

        transitions = [
            (AuditAction.STAGE_PROGRESSION, report.advanced),
            (AuditAction.STUDENT_ELIMINATED, report.eliminated),
            (AuditAction.STUDENT_SELECTED, report.selected),
        ]
        for action, students in transitions:
            if students:
                self.audit.record(
                    action,
                    actor,
                    drive_id=drive.id,
                    stage_id=stage.id,
                    affected_students=students,
                    details={"stage_name": stage.stage_name, "generation": report.generation},
                    context=context,
                )
