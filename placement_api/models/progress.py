"""StageProgress model: per-candidate state machine within a drive."""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from sqlalchemy import func, UniqueConstraint
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from placement_api.config.database import Base


class OverallStatus(str, enum.Enum):
    ACTIVE = "Active"
    ELIMINATED = "Eliminated"
    SELECTED = "Selected"
    ON_HOLD = "On Hold"


TERMINAL_STATUSES = {OverallStatus.ELIMINATED.value, OverallStatus.SELECTED.value}


class EntryStatus(str, enum.Enum):
    IN_PROGRESS = "In Progress"
    PASSED = "Passed"
    FAILED = "Failed"
    SKIPPED = "Skipped"


class StageProgress(Base):
    """
    Where a candidate stands in a drive's pipeline.

    One row per (drive, student), created lazily on the first transition.
    ``version`` is checked on every update so two writers cannot both
    apply a transition read from the same state.
    """

    __tablename__ = "stage_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    drive_id = Column(Integer, ForeignKey("drives.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    application_id = Column(Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)

    current_stage_id = Column(Integer, ForeignKey("drive_stages.id", ondelete="SET NULL"), nullable=True)
    current_stage_order = Column(Integer, nullable=False, default=0)

    overall_status = Column(String(20), nullable=False, default=OverallStatus.ACTIVE.value)
    eliminated_at = Column(DateTime, nullable=True)
    eliminated_reason = Column(Text, nullable=True)
    selected_at = Column(DateTime, nullable=True)
    final_remarks = Column(Text, nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("drive_id", "student_id", name="uq_stage_progress_drive_student"),
        Index("idx_stage_progress_drive_status", "drive_id", "overall_status"),
        Index("idx_stage_progress_current_stage", "current_stage_id"),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    student = relationship("Student")
    current_stage = relationship("DriveStage")
    history = relationship(
        "StageHistoryEntry",
        back_populates="progress",
        order_by="StageHistoryEntry.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.overall_status in TERMINAL_STATUSES

    @property
    def current_order(self) -> int:
        """Position of the current stage in the drive's sequence as it is now."""
        if self.current_stage is not None:
            return self.current_stage.order
        return self.current_stage_order

    @property
    def open_entry(self):
        """The last history entry if it has not been exited yet."""
        if self.history and self.history[-1].exited_at is None:
            return self.history[-1]
        return None

    def __repr__(self) -> str:
        return f"<StageProgress(id={self.id}, student={self.student_id}, status={self.overall_status})>"


class StageHistoryEntry(Base):
    """Append-only record of a candidate's time in one stage."""

    __tablename__ = "stage_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    progress_id = Column(Integer, ForeignKey("stage_progress.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)

    stage_id = Column(Integer, ForeignKey("drive_stages.id", ondelete="SET NULL"), nullable=True)
    stage_name = Column(String(255), nullable=True)
    entered_at = Column(DateTime, nullable=False)
    exited_at = Column(DateTime, nullable=True)
    status = Column(String(20), nullable=False, default=EntryStatus.IN_PROGRESS.value)
    result_id = Column(Integer, ForeignKey("stage_results.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_stage_history_progress", "progress_id", "position"),
    )

    progress = relationship("StageProgress", back_populates="history")

    def __repr__(self) -> str:
        return f"<StageHistoryEntry(stage={self.stage_name}, status={self.status})>"
