"""Tests for stage preview and publication."""

import json

import pytest

from placement_api.middleware.error_handler import ConcurrentUpdateError, NothingToPublishError
from placement_api.models import (
    ApplicationStatus,
    AuditAction,
    AuditLog,
    EntryStatus,
    OverallStatus,
    ResultPublication,
    StageProgress,
    StageResult,
)
from placement_api.services.ingestion import ResultIngestor
from placement_api.services.progress_tracker import ProgressTracker
from placement_api.services.publication import PublicationCoordinator, compute_statistics


@pytest.fixture
def upload(db, seed, audit_logger, staff_actor, csv_file):
    """Ingest (student code, marks) rows for a stage."""
    def _upload(stage_index, rows):
        ingestor = ResultIngestor(db, audit_logger, status_on_evaluation=False)
        return ingestor.ingest_file(seed.drive, seed.stages[stage_index], "results.csv", csv_file(rows), staff_actor)
    return _upload


@pytest.fixture
def coordinator(db, audit_logger):
    return PublicationCoordinator(db, audit_logger, status_on_evaluation=False)


@pytest.fixture
def publish(seed, coordinator, staff_actor):
    def _publish(stage_index, remarks=None):
        return coordinator.publish(seed.drive, seed.stages[stage_index], staff_actor, remarks=remarks)
    return _publish


def progress_for(db, seed, code):
    db.expire_all()
    return ProgressTracker(db).get(seed.drive.id, seed.students[code].id)


def history_of(progress):
    return [(h.stage_name, h.status) for h in progress.history]


APTITUDE_ROWS = [("S001", 80), ("S002", 40), ("S003", 70)]


class TestPublish:
    """First publication of a stage."""

    def test_report_counts(self, seed, upload, publish):
        upload(0, APTITUDE_ROWS)

        report = publish(0)

        assert report.published_count == 3
        assert report.newly_published == 3
        assert report.qualified_count == 2
        assert report.not_qualified_count == 1
        assert report.generation == 1
        assert sorted(report.advanced) == sorted([seed.students["S001"].id, seed.students["S003"].id])
        assert report.eliminated == [seed.students["S002"].id]
        assert report.selected == []
        assert report.errors == []

    def test_results_become_visible(self, db, upload, publish):
        upload(0, APTITUDE_ROWS)

        publish(0)

        db.expire_all()
        results = db.query(StageResult).all()
        assert all(r.published for r in results)
        assert all(r.published_at is not None for r in results)

    def test_qualified_candidate_advances(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)

        publish(0)

        progress = progress_for(db, seed, "S001")
        assert progress.overall_status == OverallStatus.ACTIVE.value
        assert progress.current_stage_order == 2
        assert progress.current_stage_id == seed.stages[1].id
        assert history_of(progress) == [
            ("Aptitude", EntryStatus.PASSED.value),
            ("Technical", EntryStatus.IN_PROGRESS.value),
        ]

    def test_failed_candidate_is_eliminated(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)

        publish(0)

        progress = progress_for(db, seed, "S002")
        assert progress.overall_status == OverallStatus.ELIMINATED.value
        assert progress.eliminated_reason == "Did not qualify in Aptitude"
        assert history_of(progress) == [("Aptitude", EntryStatus.FAILED.value)]

    def test_deferred_application_statuses_change_on_publish(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)
        db.expire_all()
        assert seed.applications["S001"].status == ApplicationStatus.APPLIED.value

        publish(0)

        db.expire_all()
        assert seed.applications["S001"].status == ApplicationStatus.SHORTLISTED.value
        assert seed.applications["S002"].status == ApplicationStatus.REJECTED.value
        assert seed.applications["S004"].status == ApplicationStatus.APPLIED.value

    def test_active_stage_moves_forward(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)

        publish(0)

        db.expire_all()
        assert seed.drive.current_active_stage_id == seed.stages[1].id
        assert [s.is_active for s in seed.drive.stages] == [False, True, False]

    def test_publication_record(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)

        publish(0, remarks="Round one")

        publication = db.query(ResultPublication).one()
        assert publication.drive_id == seed.drive.id
        assert publication.stage_id == seed.stages[0].id
        assert publication.is_published is True
        assert publication.published_by == "emp-1"
        assert publication.publisher_role == "Employer"
        assert publication.remarks == "Round one"
        assert publication.total_students == 3
        assert publication.qualified == 2
        assert publication.not_qualified == 1
        assert publication.pending == 0
        assert publication.cutoff_type == "percentage"
        assert publication.cutoff_value == 60
        assert publication.average_marks == pytest.approx(63.33)
        assert publication.highest_marks == 80
        assert publication.lowest_marks == 40
        assert publication.notifications_sent is False

    def test_nothing_to_publish(self, seed, coordinator, staff_actor):
        with pytest.raises(NothingToPublishError):
            coordinator.publish(seed.drive, seed.stages[0], staff_actor)

    def test_pending_verdicts_do_not_transition(self, db, seed, upload, publish):
        seed.stages[0].cutoff_type = "none"
        db.commit()
        upload(0, APTITUDE_ROWS)

        report = publish(0)

        assert report.newly_published == 3
        assert report.advanced == []
        assert report.eliminated == []
        db.expire_all()
        assert db.query(StageProgress).count() == 0
        assert db.query(ResultPublication).one().pending == 3
        assert seed.applications["S001"].status == ApplicationStatus.APPLIED.value


class TestStatusOnEvaluation:
    """Default policy: application status moves when results are evaluated."""

    def test_status_set_before_publish_and_kept(self, db, seed, audit_logger, staff_actor, csv_file):
        ingestor = ResultIngestor(db, audit_logger)
        ingestor.ingest_file(seed.drive, seed.stages[0], "results.csv", csv_file(APTITUDE_ROWS), staff_actor)

        db.expire_all()
        assert seed.applications["S001"].status == ApplicationStatus.SHORTLISTED.value
        assert seed.applications["S002"].status == ApplicationStatus.REJECTED.value

        PublicationCoordinator(db, audit_logger).publish(seed.drive, seed.stages[0], staff_actor)

        db.expire_all()
        assert seed.applications["S001"].status == ApplicationStatus.SHORTLISTED.value
        assert seed.applications["S002"].status == ApplicationStatus.REJECTED.value

    def test_final_stage_still_selects(self, db, seed, audit_logger, staff_actor, csv_file):
        ingestor = ResultIngestor(db, audit_logger)
        coordinator = PublicationCoordinator(db, audit_logger)
        for stage_index, marks in ((0, 70), (1, 45), (2, 55)):
            stage = seed.stages[stage_index]
            ingestor.ingest_file(seed.drive, stage, "results.csv", csv_file([("S001", marks)]), staff_actor)
            coordinator.publish(seed.drive, stage, staff_actor)

        db.expire_all()
        assert seed.applications["S001"].status == ApplicationStatus.SELECTED.value


class TestRepublish:
    """Publishing a stage again is idempotent."""

    def test_republish_keeps_one_publication(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)
        publish(0)

        report = publish(0)

        assert report.generation == 2
        assert report.newly_published == 0
        assert report.advanced == []
        assert report.eliminated == []
        db.expire_all()
        assert db.query(ResultPublication).count() == 1
        assert db.query(ResultPublication).one().generation == 2

    def test_republish_does_not_duplicate_history(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)
        publish(0)

        publish(0)

        assert len(progress_for(db, seed, "S001").history) == 2
        assert len(progress_for(db, seed, "S002").history) == 1

    def test_republish_does_not_move_active_stage_back(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)
        publish(0)
        upload(1, [("S001", 35)])
        publish(1)

        publish(0)

        db.expire_all()
        assert seed.drive.current_active_stage_id == seed.stages[2].id

    def test_late_result_is_published_on_republish(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)
        publish(0)
        upload(0, [("S004", 90)])

        report = publish(0)

        assert report.published_count == 4
        assert report.newly_published == 1
        assert report.advanced == [seed.students["S004"].id]

    def test_corrected_result_for_eliminated_candidate_is_reported(self, db, seed, upload, publish, audit_logger,
                                                                  staff_actor, csv_file):
        upload(0, APTITUDE_ROWS)
        publish(0)
        ingestor = ResultIngestor(db, audit_logger, allow_after_terminal=True)
        ingestor.ingest_file(seed.drive, seed.stages[0], "fix.csv", csv_file([("S002", 75)]), staff_actor)

        report = publish(0)

        student_pk = seed.students["S002"].id
        assert report.newly_published == 1
        assert report.errors == [f"Student {student_pk}: Candidate is already Eliminated in this drive"]
        assert progress_for(db, seed, "S002").overall_status == OverallStatus.ELIMINATED.value


class TestFullPipeline:
    """A candidate passing every stage is selected."""

    def test_selected_after_final_stage(self, db, seed, upload, publish):
        upload(0, [("S001", 80)])
        publish(0)
        upload(1, [("S001", 45)])
        publish(1)
        upload(2, [("S001", 55)])

        report = publish(2)

        assert report.selected == [seed.students["S001"].id]
        progress = progress_for(db, seed, "S001")
        assert progress.overall_status == OverallStatus.SELECTED.value
        assert progress.selected_at is not None
        assert history_of(progress) == [
            ("Aptitude", EntryStatus.PASSED.value),
            ("Technical", EntryStatus.PASSED.value),
            ("HR", EntryStatus.PASSED.value),
        ]
        assert seed.applications["S001"].status == ApplicationStatus.SELECTED.value
        assert seed.drive.current_active_stage_id == seed.stages[2].id


class TestPublishAudit:
    """Audit entries written by publish."""

    def test_publish_and_transitions_are_audited(self, db, seed, upload, publish):
        upload(0, APTITUDE_ROWS)

        publish(0)

        db.expire_all()
        actions = {log.action: log for log in db.query(AuditLog).all()}
        published = actions[AuditAction.RESULT_PUBLISHED.value]
        assert published.success is True
        assert published.affected_count == 3
        assert json.loads(published.details)["generation"] == 1

        progression = actions[AuditAction.STAGE_PROGRESSION.value]
        assert progression.affected_count == 2
        eliminated = actions[AuditAction.STUDENT_ELIMINATED.value]
        assert json.loads(eliminated.affected_students) == [seed.students["S002"].id]
        assert AuditAction.STUDENT_SELECTED.value not in actions

    def test_failed_publish_is_rolled_back_and_audited(self, db, seed, upload, coordinator, staff_actor,
                                                       monkeypatch):
        upload(0, APTITUDE_ROWS)

        def fail(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(coordinator, "_upsert_publication", fail)

        with pytest.raises(RuntimeError):
            coordinator.publish(seed.drive, seed.stages[0], staff_actor)

        db.expire_all()
        assert db.query(ResultPublication).count() == 0
        assert db.query(StageProgress).count() == 0
        assert not any(r.published for r in db.query(StageResult).all())
        failed = (
            db.query(AuditLog)
            .filter(AuditLog.action == AuditAction.RESULT_PUBLISHED.value)
            .one()
        )
        assert failed.success is False
        assert failed.error_message == "disk full"

    def test_version_conflict_mid_batch_is_a_concurrent_update(self, db, seed, session_factory, upload, publish,
                                                                 coordinator, staff_actor, monkeypatch):
        upload(0, [("S001", 80)])
        publish(0)
        upload(1, [("S001", 45), ("S004", 45)])
        progress_id = progress_for(db, seed, "S001").id
        progress_to_stage = coordinator.tracker.progress_to_stage

        def progress_then_update_elsewhere(progress, *args, **kwargs):
            progress_to_stage(progress, *args, **kwargs)
            other = session_factory()
            try:
                other.get(StageProgress, progress_id).final_remarks = "Updated elsewhere"
                other.commit()
            finally:
                other.close()

        monkeypatch.setattr(coordinator.tracker, "progress_to_stage", progress_then_update_elsewhere)

        with pytest.raises(ConcurrentUpdateError):
            coordinator.publish(seed.drive, seed.stages[1], staff_actor)

        failed = (
            db.query(AuditLog)
            .filter(AuditLog.action == AuditAction.RESULT_PUBLISHED.value, AuditLog.success.is_(False))
            .one()
        )
        assert failed.stage_id == seed.stages[1].id


class TestPreview:
    """Tests for preview and statistics."""

    def test_preview_sorted_by_percentage(self, seed, upload, coordinator):
        upload(0, APTITUDE_ROWS)

        stats, results = coordinator.preview(seed.drive, seed.stages[0])

        assert [r.marks_obtained for r in results] == [80, 70, 40]
        assert stats["total_candidates"] == 3
        assert stats["qualified"] == 2
        assert stats["not_qualified"] == 1
        assert stats["average_marks"] == pytest.approx(63.33)

    def test_preview_does_not_publish(self, db, seed, upload, coordinator):
        upload(0, APTITUDE_ROWS)

        coordinator.preview(seed.drive, seed.stages[0])

        assert db.query(ResultPublication).count() == 0
        assert not any(r.published for r in db.query(StageResult).all())

    def test_statistics_of_empty_stage(self, seed):
        stats = compute_statistics([], seed.stages[0])

        assert stats["total_candidates"] == 0
        assert stats["average_marks"] == 0
        assert stats["highest_marks"] == 0
        assert stats["cutoff_value"] == 60
