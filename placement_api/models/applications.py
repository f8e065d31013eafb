"""Application model for candidate applications to drives."""

import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy import func, UniqueConstraint
from sqlalchemy.orm import relationship

from placement_api.config.database import Base


class ApplicationStatus(str, enum.Enum):
    APPLIED = "Applied"
    SHORTLISTED = "Shortlisted"
    REJECTED = "Rejected"
    SELECTED = "Selected"


class Application(Base):
    """
    A student's application to a drive.

    Created by the candidate-facing service; the pipeline only writes
    ``status`` as results are evaluated/published.
    """

    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    drive_id = Column(Integer, ForeignKey("drives.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)

    status = Column(String(20), nullable=False, default=ApplicationStatus.APPLIED.value)
    notes = Column(Text, nullable=True)

    applied_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("drive_id", "student_id", name="uq_applications_drive_student"),
    )

    # Relationships
    drive = relationship("Drive", back_populates="applications")
    student = relationship("Student", back_populates="applications")

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, drive={self.drive_id}, status={self.status})>"
