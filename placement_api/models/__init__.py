"""SQLAlchemy ORM models for the placement pipeline.

All models are imported here to ensure they're registered with Base.metadata
before any database operations.
"""

# Import base first
from placement_api.config.database import Base

# Collaborator records (written by other services, read or updated here)
from .students import Student
from .drives import Drive
from .applications import Application, ApplicationStatus

# Pipeline models
from .stages import DriveStage, StageType, StageMode
from .results import StageResult, UploadMethod
from .progress import StageProgress, StageHistoryEntry, OverallStatus, EntryStatus, TERMINAL_STATUSES
from .publications import ResultPublication

# Audit models
from .audit_logs import AuditLog, AuditAction

__all__ = [
    "Base",
    # Collaborators
    "Student",
    "Drive",
    "Application",
    "ApplicationStatus",
    # Pipeline
    "DriveStage",
    "StageType",
    "StageMode",
    "StageResult",
    "UploadMethod",
    "StageProgress",
    "StageHistoryEntry",
    "OverallStatus",
    "EntryStatus",
    "TERMINAL_STATUSES",
    "ResultPublication",
    # Audit
    "AuditLog",
    "AuditAction",
]
