"""Drive and stage lookups with ownership checks."""

from typing import Any

from sqlalchemy.orm import Session

from placement_api.middleware.error_handler import ForbiddenError, NotFoundError
from placement_api.models import Drive, DriveStage
from placement_api.services.rbac import ADMIN, EMPLOYER


def load_drive(db: Session, drive_id: int) -> Drive:
    drive = db.query(Drive).filter(Drive.id == drive_id).first()
    if not drive:
        raise NotFoundError("Drive", drive_id)
    return drive


def assert_drive_access(drive: Drive, user: dict[str, Any]) -> None:
    """Employers may only act on drives they posted."""
    role = str(user.get("role", "")).lower()
    if role == ADMIN:
        return
    if role == EMPLOYER and drive.posted_by_employer != str(user.get("sub")):
        raise ForbiddenError("You can only manage drives you posted")


def load_stage(db: Session, drive: Drive, stage_id: int, for_update: bool = False) -> DriveStage:
    """Load a stage of ``drive``, optionally locking the row."""
    query = db.query(DriveStage).filter(
        DriveStage.id == stage_id,
        DriveStage.drive_id == drive.id,
    )
    if for_update:
        query = query.with_for_update()
    stage = query.first()
    if not stage:
        raise NotFoundError("Stage", stage_id)
    return stage


def load_drive_for(db: Session, drive_id: int, user: dict[str, Any]) -> Drive:
    """Load a drive and check the requester may act on it."""
    drive = load_drive(db, drive_id)
    assert_drive_access(drive, user)
    return drive
