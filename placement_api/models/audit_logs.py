"""AuditLog model for the pipeline's append-only audit trail."""

import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Index
from sqlalchemy import func

from placement_api.config.database import Base


class AuditAction(str, enum.Enum):
    RESULT_UPLOADED = "result_uploaded"
    RESULT_PUBLISHED = "result_published"
    STAGE_PROGRESSION = "stage_progression"
    STUDENT_ELIMINATED = "student_eliminated"
    STUDENT_SELECTED = "student_selected"
    RESULT_MODIFIED = "result_modified"
    RESULT_DELETED = "result_deleted"
    BULK_UPLOAD = "bulk_upload"
    MANUAL_ENTRY = "manual_entry"
    STAGE_CREATED = "stage_created"
    STAGE_MODIFIED = "stage_modified"


class AuditLog(Base):
    """
    Business audit trail of every mutating pipeline action.

    Rows are never updated. Drive, stage and students are referenced by id
    only (no foreign keys) so the log outlives the records it mentions.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # What happened
    action = Column(String(50), nullable=False)

    # Who did it
    performed_by = Column(String(64), nullable=False)
    performer_role = Column(String(20), nullable=False)

    # Context
    drive_id = Column(Integer, nullable=True)
    stage_id = Column(Integer, nullable=True)
    affected_students = Column(Text, nullable=True)  # JSON list of student ids
    affected_count = Column(Integer, nullable=False, default=0)

    # Details (JSON)
    details = Column(Text, nullable=True)

    # Request metadata
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())

    __table_args__ = (
        Index("idx_audit_logs_drive_created", "drive_id", "created_at"),
        Index("idx_audit_logs_performer_created", "performed_by", "created_at"),
        Index("idx_audit_logs_action_created", "action", "created_at"),
        Index("idx_audit_logs_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action})>"
