"""ResultPublication model: the publish record of one stage."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, ForeignKey, Index
from sqlalchemy import func, UniqueConstraint
from sqlalchemy.orm import relationship

from placement_api.config.database import Base


class ResultPublication(Base):
    """
    One row per (drive, stage), overwritten on every publish.

    The statistics columns are a snapshot of the stage's results at the
    time of the latest publish.
    """

    __tablename__ = "result_publications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    drive_id = Column(Integer, ForeignKey("drives.id", ondelete="CASCADE"), nullable=False)
    stage_id = Column(Integer, ForeignKey("drive_stages.id", ondelete="CASCADE"), nullable=False)

    published_by = Column(String(64), nullable=False)
    publisher_role = Column(String(20), nullable=False)  # Employer, Faculty, Admin
    published_at = Column(DateTime, nullable=False)
    is_published = Column(Boolean, nullable=False, default=True)
    generation = Column(Integer, nullable=False, default=0)  # Number of publishes so far
    remarks = Column(Text, nullable=True)

    # Statistics snapshot
    total_students = Column(Integer, nullable=False, default=0)
    qualified = Column(Integer, nullable=False, default=0)
    not_qualified = Column(Integer, nullable=False, default=0)
    pending = Column(Integer, nullable=False, default=0)
    cutoff_type = Column(String(20), nullable=True)
    cutoff_value = Column(Float, nullable=True)
    average_marks = Column(Float, nullable=True)
    highest_marks = Column(Float, nullable=True)
    lowest_marks = Column(Float, nullable=True)

    # Candidate notification delivery is handled by the notifications service
    notifications_sent = Column(Boolean, nullable=False, default=False)
    notifications_sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("drive_id", "stage_id", name="uq_result_publications_drive_stage"),
        Index("idx_result_publications_drive_published", "drive_id", "is_published"),
    )

    stage = relationship("DriveStage")

    def __repr__(self) -> str:
        return f"<ResultPublication(drive={self.drive_id}, stage={self.stage_id}, generation={self.generation})>"
