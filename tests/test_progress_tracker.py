"""Tests for the per-candidate stage state machine."""

import pytest

from placement_api.middleware.error_handler import (
    ConcurrentUpdateError,
    ConflictError,
    TerminalStateError,
)
from placement_api.models import DriveStage, EntryStatus, OverallStatus, StageProgress
from placement_api.services.progress_tracker import Outcome, ProgressTracker, commit_progress, sync_stage_orders


def history_of(progress):
    return [(h.stage_name, h.status) for h in progress.history]


@pytest.fixture
def tracker(db):
    return ProgressTracker(db)


@pytest.fixture
def advanced(db, seed, tracker, result_factory):
    """S001 passed Aptitude and is in progress at Technical."""
    result, _ = result_factory(code="S001", marks=80, stage_index=0)
    tracker.record_pass(seed.drive, seed.stages[0], result)
    db.commit()
    return tracker.get(seed.drive.id, seed.students["S001"].id)


class TestLazyCreation:
    """The first transition creates the progress record."""

    def test_pass_creates_record_at_next_stage(self, db, seed, tracker, result_factory):
        result, _ = result_factory(code="S001", marks=80)

        outcome = tracker.record_pass(seed.drive, seed.stages[0], result)
        db.commit()

        progress = tracker.get(seed.drive.id, seed.students["S001"].id)
        assert outcome is Outcome.ADVANCED
        assert progress.overall_status == OverallStatus.ACTIVE.value
        assert progress.current_stage_id == seed.stages[1].id
        assert progress.current_stage_order == 2
        assert history_of(progress) == [
            ("Aptitude", EntryStatus.PASSED.value),
            ("Technical", EntryStatus.IN_PROGRESS.value),
        ]
        assert progress.history[0].result_id == result.id
        assert progress.history[0].exited_at is not None
        assert progress.history[1].exited_at is None

    def test_fail_creates_eliminated_record(self, db, seed, tracker, result_factory):
        result, _ = result_factory(code="S002", marks=20)

        outcome = tracker.record_fail(seed.drive, seed.stages[0], result)
        db.commit()

        progress = tracker.get(seed.drive.id, seed.students["S002"].id)
        assert outcome is Outcome.ELIMINATED
        assert progress.overall_status == OverallStatus.ELIMINATED.value
        assert progress.eliminated_reason == "Did not qualify in Aptitude"
        assert progress.eliminated_at is not None
        assert progress.current_stage_order == 1
        assert history_of(progress) == [("Aptitude", EntryStatus.FAILED.value)]

    def test_pass_at_final_stage_selects(self, db, seed, tracker, result_factory):
        result, _ = result_factory(code="S003", marks=90, stage_index=2)

        outcome = tracker.record_pass(seed.drive, seed.stages[2], result)
        db.commit()

        progress = tracker.get(seed.drive.id, seed.students["S003"].id)
        assert outcome is Outcome.SELECTED
        assert progress.overall_status == OverallStatus.SELECTED.value
        assert progress.selected_at is not None
        assert history_of(progress) == [("HR", EntryStatus.PASSED.value)]

    def test_history_positions_are_contiguous(self, advanced):
        assert [h.position for h in advanced.history] == [0, 1]


class TestPublishTransitions:
    """record_pass / record_fail on an existing record."""

    def test_full_pipeline_ends_selected(self, db, seed, tracker, result_factory, advanced):
        technical, _ = result_factory(code="S001", marks=40, stage_index=1)
        assert tracker.record_pass(seed.drive, seed.stages[1], technical) is Outcome.ADVANCED

        hr, _ = result_factory(code="S001", marks=75, stage_index=2)
        assert tracker.record_pass(seed.drive, seed.stages[2], hr) is Outcome.SELECTED
        db.commit()

        progress = tracker.get(seed.drive.id, seed.students["S001"].id)
        assert progress.overall_status == OverallStatus.SELECTED.value
        assert progress.current_stage_order == 3
        assert history_of(progress) == [
            ("Aptitude", EntryStatus.PASSED.value),
            ("Technical", EntryStatus.PASSED.value),
            ("HR", EntryStatus.PASSED.value),
        ]
        assert progress.history[1].result_id == technical.id
        assert progress.history[2].result_id == hr.id

    def test_repeated_pass_is_unchanged(self, db, seed, tracker, result_factory, advanced):
        result, _ = result_factory(code="S001", marks=80, stage_index=0)

        outcome = tracker.record_pass(seed.drive, seed.stages[0], result)
        db.commit()

        assert outcome is Outcome.UNCHANGED
        assert len(advanced.history) == 2

    def test_fail_at_current_stage_eliminates(self, db, seed, tracker, result_factory, advanced):
        result, _ = result_factory(code="S001", marks=10, stage_index=1)

        outcome = tracker.record_fail(seed.drive, seed.stages[1], result)
        db.commit()

        assert outcome is Outcome.ELIMINATED
        assert advanced.overall_status == OverallStatus.ELIMINATED.value
        assert advanced.eliminated_reason == "Did not qualify in Technical"
        assert history_of(advanced)[-1] == ("Technical", EntryStatus.FAILED.value)
        assert advanced.history[-1].result_id == result.id

    def test_repeated_fail_is_unchanged(self, db, seed, tracker, result_factory):
        result, _ = result_factory(code="S002", marks=20)
        tracker.record_fail(seed.drive, seed.stages[0], result)
        db.commit()

        assert tracker.record_fail(seed.drive, seed.stages[0], result) is Outcome.UNCHANGED

    def test_pass_after_elimination_is_refused(self, db, seed, tracker, result_factory):
        failed, _ = result_factory(code="S002", marks=20)
        tracker.record_fail(seed.drive, seed.stages[0], failed)
        db.commit()

        technical, _ = result_factory(code="S002", marks=45, stage_index=1)
        with pytest.raises(TerminalStateError) as exc_info:
            tracker.record_pass(seed.drive, seed.stages[1], technical)

        assert exc_info.value.details["overall_status"] == OverallStatus.ELIMINATED.value

    def test_fail_after_selection_is_refused(self, db, seed, tracker, result_factory):
        passed, _ = result_factory(code="S003", marks=90, stage_index=2)
        tracker.record_pass(seed.drive, seed.stages[2], passed)
        db.commit()

        failed, _ = result_factory(code="S003", marks=10, stage_index=2)
        with pytest.raises(TerminalStateError):
            tracker.record_fail(seed.drive, seed.stages[2], failed)


class TestManualTransitions:
    """progress_to_stage, eliminate and select_student."""

    def test_progress_to_later_stage(self, db, seed, tracker, advanced):
        tracker.progress_to_stage(advanced, seed.stages[2], notes="Fast-tracked")
        db.commit()

        assert advanced.current_stage_id == seed.stages[2].id
        assert advanced.current_stage_order == 3
        assert history_of(advanced) == [
            ("Aptitude", EntryStatus.PASSED.value),
            ("Technical", EntryStatus.PASSED.value),
            ("HR", EntryStatus.IN_PROGRESS.value),
        ]
        assert advanced.history[-1].notes == "Fast-tracked"

    def test_progress_with_skipped_status(self, db, seed, tracker, advanced):
        tracker.progress_to_stage(advanced, seed.stages[2], EntryStatus.SKIPPED)

        assert advanced.history[1].status == EntryStatus.SKIPPED.value

    @pytest.mark.parametrize("stage_index", [0, 1])
    def test_progress_backwards_or_in_place_is_refused(self, seed, tracker, advanced, stage_index):
        with pytest.raises(ConflictError):
            tracker.progress_to_stage(advanced, seed.stages[stage_index])

        assert len(advanced.history) == 2

    def test_progress_from_on_hold_reactivates(self, db, seed, tracker, advanced):
        advanced.overall_status = OverallStatus.ON_HOLD.value
        db.commit()

        tracker.progress_to_stage(advanced, seed.stages[2])

        assert advanced.overall_status == OverallStatus.ACTIVE.value

    def test_progress_after_elimination_is_refused(self, db, seed, tracker, advanced):
        tracker.eliminate(advanced, "No show")
        db.commit()

        with pytest.raises(TerminalStateError):
            tracker.progress_to_stage(advanced, seed.stages[2])

    def test_eliminate_is_idempotent(self, db, tracker, advanced):
        assert tracker.eliminate(advanced, "No show") is True
        assert tracker.eliminate(advanced, "No show again") is False
        assert advanced.eliminated_reason == "No show"

    def test_select_is_idempotent(self, db, tracker, advanced):
        assert tracker.select_student(advanced) is True
        assert tracker.select_student(advanced) is False
        assert history_of(advanced)[-1] == ("Technical", EntryStatus.PASSED.value)

    def test_eliminate_after_selection_is_refused(self, tracker, advanced):
        tracker.select_student(advanced)

        with pytest.raises(TerminalStateError):
            tracker.eliminate(advanced, "Changed our mind")


class TestStageSequenceChanges:
    """Transitions after the drive's stages were inserted or reordered."""

    def test_inserted_stage_does_not_reopen_current_stage(self, db, seed, tracker, advanced):
        technical = seed.stages[1]
        seed.drive.stages.insert(1, DriveStage(stage_name="Coding", stage_type="Coding Round", cutoff_type="none"))
        db.commit()
        assert technical.order == 3

        with pytest.raises(ConflictError):
            tracker.progress_to_stage(advanced, technical)

        assert history_of(advanced) == [
            ("Aptitude", EntryStatus.PASSED.value),
            ("Technical", EntryStatus.IN_PROGRESS.value),
        ]

    def test_advance_after_reorder_is_applied(self, db, seed, tracker, advanced, result_factory):
        aptitude, technical, hr = seed.stages
        seed.drive.stages.sort(key=lambda s: [technical, aptitude, hr].index(s))
        seed.drive.stages.reorder()
        db.commit()
        assert technical.order == 1
        assert seed.drive.next_stage_after(technical) is aptitude

        result, _ = result_factory(code="S001", marks=40, stage_index=1)
        outcome = tracker.record_pass(seed.drive, technical, result)
        db.commit()

        assert outcome is Outcome.ADVANCED
        assert advanced.current_stage_id == aptitude.id
        assert advanced.current_stage_order == 2

    def test_sync_stage_orders_copies_new_positions(self, db, seed, advanced):
        seed.drive.stages.insert(0, DriveStage(stage_name="Registration", stage_type="Other", cutoff_type="none"))

        assert sync_stage_orders(db, seed.drive) == 1
        db.commit()

        assert advanced.current_stage_order == 3
        assert sync_stage_orders(db, seed.drive) == 0


class TestVersioning:
    """Optimistic version checks on the progress row."""

    def test_version_increments_on_change(self, db, seed, tracker, advanced):
        version = advanced.version

        tracker.progress_to_stage(advanced, seed.stages[2])
        commit_progress(db)

        assert advanced.version == version + 1

    def test_stale_write_raises_concurrent_update(self, db, session_factory, seed, advanced):
        progress_id = advanced.id

        other = session_factory()
        try:
            theirs = other.get(StageProgress, progress_id)
            theirs.final_remarks = "Updated elsewhere"
            other.commit()
        finally:
            other.close()

        advanced.final_remarks = "Updated here"
        with pytest.raises(ConcurrentUpdateError):
            commit_progress(db)

    def test_stale_write_flushed_by_lazy_creation(self, db, session_factory, seed, tracker, advanced, result_factory):
        progress_id = advanced.id
        result, _ = result_factory(code="S004", marks=80)
        tracker.progress_to_stage(advanced, seed.stages[2])

        other = session_factory()
        try:
            theirs = other.get(StageProgress, progress_id)
            theirs.final_remarks = "Updated elsewhere"
            other.commit()
        finally:
            other.close()

        with pytest.raises(ConcurrentUpdateError):
            tracker.record_pass(seed.drive, seed.stages[0], result)
