"""StageResult model: one evaluated outcome per (drive, student, stage)."""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, ForeignKey, Index
from sqlalchemy import event, func, UniqueConstraint
from sqlalchemy.orm import relationship

from placement_api.config.database import Base
from placement_api.services.cutoff import Verdict, compute_percentage


class UploadMethod(str, enum.Enum):
    CSV = "CSV"
    EXCEL = "Excel"
    MANUAL = "Manual"


class StageResult(Base):
    """
    Evaluated result of one student at one stage of a drive.

    Re-submission overwrites the row in place; rows are never deleted by
    the pipeline. Students can only read rows with ``published`` set.
    """

    __tablename__ = "stage_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    drive_id = Column(Integer, ForeignKey("drives.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    application_id = Column(Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)
    stage_id = Column(Integer, ForeignKey("drive_stages.id", ondelete="CASCADE"), nullable=False)

    # Scores
    marks_obtained = Column(Float, nullable=False)
    total_marks = Column(Float, nullable=False)
    percentage = Column(Float, nullable=True)  # Derived, see _sync_percentage
    verdict = Column(String(20), nullable=False, default=Verdict.PENDING.value)
    remarks = Column(Text, nullable=True)

    # Who evaluated and how
    evaluated_by = Column(String(64), nullable=True)
    evaluator_role = Column(String(20), nullable=True)  # Employer, Faculty, Admin
    evaluated_at = Column(DateTime, nullable=True)
    upload_method = Column(String(10), nullable=False)

    # Visibility
    published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime, nullable=True)

    # Raw source row (JSON) for audit/debugging
    source_row = Column(Text, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("drive_id", "student_id", "stage_id", name="uq_stage_results_drive_student_stage"),
        Index("idx_stage_results_drive_stage", "drive_id", "stage_id"),
        Index("idx_stage_results_drive_published", "drive_id", "published"),
        Index("idx_stage_results_student_published", "student_id", "published"),
    )

    # Relationships
    student = relationship("Student")
    application = relationship("Application")
    stage = relationship("DriveStage")

    def __repr__(self) -> str:
        return f"<StageResult(id={self.id}, student={self.student_id}, stage={self.stage_id}, verdict={self.verdict})>"


@event.listens_for(StageResult, "before_insert")
@event.listens_for(StageResult, "before_update")
def _sync_percentage(mapper, connection, target: StageResult) -> None:
    target.percentage = compute_percentage(target.marks_obtained, target.total_marks)
