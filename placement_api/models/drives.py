"""Drive model for recruitment events."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy import func
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from placement_api.config.database import Base


class Drive(Base):
    """
    A recruitment drive.

    Drives are created by employers/faculty elsewhere; the pipeline reads the
    ordered stage list and moves the active-stage pointer on publish.
    """

    __tablename__ = "drives"

    id = Column(Integer, primary_key=True, autoincrement=True)
    drive_code = Column(String(64), nullable=False, unique=True)

    company_name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=False)
    active = Column(Boolean, default=True)

    # Posted by faculty or by an employer (account ids from the accounts service)
    posted_by = Column(String(64), nullable=True)
    posted_by_employer = Column(String(64), nullable=True)

    # Stage-based pipeline
    stages_enabled = Column(Boolean, default=False)
    current_active_stage_id = Column(
        Integer,
        ForeignKey("drive_stages.id", ondelete="SET NULL", use_alter=True, name="fk_drives_active_stage"),
        nullable=True,
    )

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Stages are an explicit ordered sequence; ordering_list keeps `order`
    # contiguous (1..n) whenever the list is mutated.
    stages = relationship(
        "DriveStage",
        back_populates="drive",
        foreign_keys="DriveStage.drive_id",
        order_by="DriveStage.order",
        collection_class=ordering_list("order", count_from=1),
        cascade="all, delete-orphan",
    )
    current_active_stage = relationship("DriveStage", foreign_keys=[current_active_stage_id], post_update=True)
    applications = relationship("Application", back_populates="drive")

    def next_stage_after(self, stage):
        """Return the stage following ``stage`` in this drive, or None if it is the last."""
        index = self.stages.index(stage)
        if index + 1 < len(self.stages):
            return self.stages[index + 1]
        return None

    def __repr__(self) -> str:
        return f"<Drive(id={self.id}, drive_code={self.drive_code})>"
