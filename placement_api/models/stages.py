"""DriveStage model: one gated step of a drive's pipeline."""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, ForeignKey, Index
from sqlalchemy import func
from sqlalchemy.orm import relationship

from placement_api.config.database import Base
from placement_api.services.cutoff import CutoffRule


class StageType(str, enum.Enum):
    APTITUDE_TEST = "Aptitude Test"
    TECHNICAL_INTERVIEW = "Technical Interview"
    HR_INTERVIEW = "HR Interview"
    GROUP_DISCUSSION = "Group Discussion"
    CODING_ROUND = "Coding Round"
    MANAGERIAL_ROUND = "Managerial Round"
    FINAL_SELECTION = "Final Selection"
    OTHER = "Other"


class StageMode(str, enum.Enum):
    ONLINE = "Online"
    OFFLINE = "Offline"
    HYBRID = "Hybrid"


class DriveStage(Base):
    """
    One evaluation stage of a drive.

    ``order`` is maintained by the owning drive's ordered ``stages``
    collection and is unique and contiguous within a drive.
    """

    __tablename__ = "drive_stages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    drive_id = Column(Integer, ForeignKey("drives.id", ondelete="CASCADE"), nullable=False)

    stage_name = Column(String(255), nullable=False)
    stage_type = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)

    # Cutoff rule: percentage | marks | none
    cutoff_type = Column(String(20), nullable=False, default="percentage")
    cutoff_value = Column(Float, nullable=True)
    cutoff_total_marks = Column(Float, nullable=True)

    # Scheduling
    scheduled_date = Column(DateTime, nullable=True)
    location = Column(String(255), nullable=True)
    mode = Column(String(20), nullable=False, default=StageMode.OFFLINE.value)
    instructions = Column(Text, nullable=True)

    is_active = Column(Boolean, default=False)
    order = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    __table_args__ = (
        Index("idx_drive_stages_drive_order", "drive_id", "order"),
        Index("idx_drive_stages_drive_active", "drive_id", "is_active"),
    )

    # Relationships
    drive = relationship("Drive", back_populates="stages", foreign_keys=[drive_id])

    @property
    def cutoff_rule(self) -> CutoffRule:
        return CutoffRule(
            kind=self.cutoff_type,
            threshold=self.cutoff_value,
            total_marks=self.cutoff_total_marks,
        )

    def __repr__(self) -> str:
        return f"<DriveStage(id={self.id}, drive={self.drive_id}, order={self.order}, name={self.stage_name})>"
