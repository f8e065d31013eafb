"""Progress tracker: the per-candidate stage state machine.

States are Active, On Hold, Eliminated and Selected; the last two are
terminal. A candidate's StageProgress row is created lazily on the first
transition, with a history that starts at the stage just completed.

Every transition runs on a row loaded FOR UPDATE and is flushed with an
optimistic version check, so concurrent writers on the same candidate
either serialise or fail with ConcurrentUpdateError.
"""

import enum
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from placement_api.middleware.error_handler import ConcurrentUpdateError, ConflictError, TerminalStateError
from placement_api.models import (
    Drive,
    DriveStage,
    EntryStatus,
    OverallStatus,
    StageHistoryEntry,
    StageProgress,
    StageResult,
)

logger = structlog.get_logger()


class Outcome(str, enum.Enum):
    ADVANCED = "advanced"
    ELIMINATED = "eliminated"
    SELECTED = "selected"
    UNCHANGED = "unchanged"


def elimination_reason(stage: DriveStage) -> str:
    return f"Did not qualify in {stage.stage_name}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def commit_progress(db: Session) -> None:
    """Commit, turning a failed version check into ConcurrentUpdateError."""
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning("Progress version conflict", error=str(e))
        raise ConcurrentUpdateError("StageProgress", "batch")


def sync_stage_orders(db: Session, drive: Drive) -> int:
    """
    Copy each candidate's current stage position after the drive's stages
    were inserted or reordered. Returns the number of records updated.
    """
    updated = 0
    records = (
        db.query(StageProgress)
        .filter(StageProgress.drive_id == drive.id, StageProgress.current_stage_id.isnot(None))
        .with_for_update()
        .all()
    )
    for progress in records:
        if progress.current_stage_order != progress.current_stage.order:
            progress.current_stage_order = progress.current_stage.order
            updated += 1
    if updated:
        logger.info("Progress stage positions updated", drive_id=drive.id, count=updated)
    return updated


class ProgressTracker:
    """Applies stage transitions to StageProgress records."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, drive_id: int, student_id: int, for_update: bool = False) -> Optional[StageProgress]:
        query = self.db.query(StageProgress).filter(
            StageProgress.drive_id == drive_id,
            StageProgress.student_id == student_id,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    # ------------------------------------------------------------------
    # State machine transitions on an existing record
    # ------------------------------------------------------------------

    def progress_to_stage(
        self,
        progress: StageProgress,
        next_stage: DriveStage,
        entry_status: EntryStatus = EntryStatus.PASSED,
        result_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> None:
        """
        Close the open history entry and open one for ``next_stage``.

        Raises:
            TerminalStateError: candidate already eliminated or selected
            ConflictError: ``next_stage`` is not after the current stage
        """
        if progress.is_terminal:
            raise TerminalStateError(progress.student_id, progress.overall_status)
        if next_stage.order <= progress.current_order:
            raise ConflictError(
                f"Cannot move from stage {progress.current_order} to stage {next_stage.order}",
                details={"student_id": progress.student_id, "target_order": next_stage.order},
            )

        now = _now()
        self._close_open_entry(progress, entry_status, now, result_id)
        progress.history.append(StageHistoryEntry(
            stage_id=next_stage.id,
            stage_name=next_stage.stage_name,
            entered_at=now,
            status=EntryStatus.IN_PROGRESS.value,
            notes=notes,
        ))
        progress.current_stage = next_stage
        progress.current_stage_order = next_stage.order
        if progress.overall_status == OverallStatus.ON_HOLD.value:
            progress.overall_status = OverallStatus.ACTIVE.value

    def eliminate(self, progress: StageProgress, reason: str, result_id: Optional[int] = None) -> bool:
        """Mark the candidate Eliminated. Returns False if already eliminated."""
        if progress.overall_status == OverallStatus.ELIMINATED.value:
            return False
        if progress.is_terminal:
            raise TerminalStateError(progress.student_id, progress.overall_status)

        now = _now()
        self._close_open_entry(progress, EntryStatus.FAILED, now, result_id)
        progress.overall_status = OverallStatus.ELIMINATED.value
        progress.eliminated_at = now
        progress.eliminated_reason = reason
        return True

    def select_student(self, progress: StageProgress, result_id: Optional[int] = None) -> bool:
        """Mark the candidate Selected. Returns False if already selected."""
        if progress.overall_status == OverallStatus.SELECTED.value:
            return False
        if progress.is_terminal:
            raise TerminalStateError(progress.student_id, progress.overall_status)

        now = _now()
        self._close_open_entry(progress, EntryStatus.PASSED, now, result_id)
        progress.overall_status = OverallStatus.SELECTED.value
        progress.selected_at = now
        return True

    def _close_open_entry(
        self,
        progress: StageProgress,
        status: EntryStatus,
        at: datetime,
        result_id: Optional[int],
    ) -> None:
        entry = progress.open_entry
        if entry is None:
            return
        entry.exited_at = at
        entry.status = status.value
        if result_id is not None and entry.result_id is None:
            entry.result_id = result_id

    # ------------------------------------------------------------------
    # Publish-driven transitions
    # ------------------------------------------------------------------

    def record_pass(self, drive: Drive, stage: DriveStage, result: StageResult) -> Outcome:
        """
        Apply a Qualified result: advance to the next stage, or select the
        candidate when ``stage`` is the last one.

        Transitions already applied (target equals the open entry, or lies
        behind the current stage) are skipped.
        """
        next_stage = drive.next_stage_after(stage)
        progress = self.get(drive.id, result.student_id, for_update=True)

        if progress is None:
            progress = self._create(drive, stage, result, passed=True, next_stage=next_stage)
            if progress is not None:
                outcome = Outcome.ADVANCED if next_stage else Outcome.SELECTED
                self._log(outcome, progress, stage, next_stage)
                return outcome
            progress = self.get(drive.id, result.student_id, for_update=True)

        if next_stage is None:
            if self.select_student(progress, result_id=result.id):
                self._log(Outcome.SELECTED, progress, stage, None)
                return Outcome.SELECTED
            return Outcome.UNCHANGED

        if progress.is_terminal:
            raise TerminalStateError(progress.student_id, progress.overall_status)

        open_entry = progress.open_entry
        if open_entry is not None and open_entry.stage_id == next_stage.id:
            return Outcome.UNCHANGED
        if next_stage.order <= progress.current_order:
            return Outcome.UNCHANGED

        self.progress_to_stage(progress, next_stage, EntryStatus.PASSED, result_id=result.id)
        self._log(Outcome.ADVANCED, progress, stage, next_stage)
        return Outcome.ADVANCED

    def record_fail(self, drive: Drive, stage: DriveStage, result: StageResult) -> Outcome:
        """Apply a Not Qualified result: eliminate the candidate."""
        progress = self.get(drive.id, result.student_id, for_update=True)

        if progress is None:
            progress = self._create(drive, stage, result, passed=False)
            if progress is not None:
                self._log(Outcome.ELIMINATED, progress, stage, None)
                return Outcome.ELIMINATED
            progress = self.get(drive.id, result.student_id, for_update=True)

        if self.eliminate(progress, elimination_reason(stage), result_id=result.id):
            self._log(Outcome.ELIMINATED, progress, stage, None)
            return Outcome.ELIMINATED
        return Outcome.UNCHANGED

    def _create(
        self,
        drive: Drive,
        stage: DriveStage,
        result: StageResult,
        passed: bool,
        next_stage: Optional[DriveStage] = None,
    ) -> Optional[StageProgress]:
        """
        Create a progress record whose history starts at ``stage``.

        Returns None if another writer created the record first; the caller
        then reloads it and applies the transition normally.
        """
        now = _now()
        progress = StageProgress(
            drive_id=drive.id,
            student_id=result.student_id,
            application_id=result.application_id,
            current_stage=stage,
            current_stage_order=stage.order,
            overall_status=OverallStatus.ACTIVE.value,
        )
        progress.history.append(StageHistoryEntry(
            stage_id=stage.id,
            stage_name=stage.stage_name,
            entered_at=now,
            exited_at=now,
            status=(EntryStatus.PASSED if passed else EntryStatus.FAILED).value,
            result_id=result.id,
        ))

        if not passed:
            progress.overall_status = OverallStatus.ELIMINATED.value
            progress.eliminated_at = now
            progress.eliminated_reason = elimination_reason(stage)
        elif next_stage is not None:
            progress.history.append(StageHistoryEntry(
                stage_id=next_stage.id,
                stage_name=next_stage.stage_name,
                entered_at=now,
                status=EntryStatus.IN_PROGRESS.value,
            ))
            progress.current_stage = next_stage
            progress.current_stage_order = next_stage.order
        else:
            progress.overall_status = OverallStatus.SELECTED.value
            progress.selected_at = now

        # The savepoint also flushes pending updates to other candidates
        try:
            with self.db.begin_nested():
                self.db.add(progress)
        except StaleDataError as e:
            logger.warning("Progress version conflict", drive_id=drive.id, error=str(e))
            raise ConcurrentUpdateError("StageProgress", "batch")
        except IntegrityError:
            logger.info(
                "Progress created concurrently, reloading",
                drive_id=drive.id,
                student_id=result.student_id,
            )
            return None
        return progress

    def _log(
        self,
        outcome: Outcome,
        progress: StageProgress,
        stage: DriveStage,
        next_stage: Optional[DriveStage],
    ) -> None:
        messages = {
            Outcome.ADVANCED: "Candidate advanced",
            Outcome.ELIMINATED: "Candidate eliminated",
            Outcome.SELECTED: "Candidate selected",
        }
        logger.info(
            messages[outcome],
            drive_id=progress.drive_id,
            student_id=progress.student_id,
            stage=stage.stage_name,
            next_stage=next_stage.stage_name if next_stage else None,
        )
