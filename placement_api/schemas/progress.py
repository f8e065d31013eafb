"""Pydantic schemas for candidate progress."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import CamelModel
from .results import ErrorListModel


class StageRef(CamelModel):
    id: int
    stage_name: str
    stage_type: str
    order: int


class HistoryEntryResponse(CamelModel):
    stage_id: Optional[int] = None
    stage_name: Optional[str] = None
    entered_at: datetime
    exited_at: Optional[datetime] = None
    status: str
    result_id: Optional[int] = None
    notes: Optional[str] = None


class ProgressResponse(CamelModel):
    """One candidate's progress through a drive."""

    id: int
    drive_id: int
    student_id: int
    current_stage: Optional[StageRef] = None
    current_stage_order: int
    overall_status: str
    eliminated_at: Optional[datetime] = None
    eliminated_reason: Optional[str] = None
    selected_at: Optional[datetime] = None
    final_remarks: Optional[str] = None
    history: list[HistoryEntryResponse] = []


class StageGroupStudent(CamelModel):
    id: int
    student_id: Optional[str] = None
    student_name: str
    branch: Optional[str] = None
    overall_status: str
    history: list[HistoryEntryResponse] = []


class StageGroup(CamelModel):
    stage: StageRef
    students: list[StageGroupStudent]


class EliminatedStudent(CamelModel):
    id: int
    student_id: Optional[str] = None
    student_name: str
    eliminated_at: Optional[datetime] = None
    eliminated_reason: Optional[str] = None


class SelectedStudent(CamelModel):
    id: int
    student_id: Optional[str] = None
    student_name: str
    selected_at: Optional[datetime] = None


class DriveProgressResponse(CamelModel):
    """Every candidate's progress in a drive, grouped by current stage."""

    total: int
    active: int
    on_hold: int
    eliminated: int
    selected: int
    grouped_by_stage: list[StageGroup]
    eliminated_students: list[EliminatedStudent]
    selected_students: list[SelectedStudent]


class ManualProgressRequest(CamelModel):
    """Move candidates (by internal student id) to a later stage."""

    student_ids: list[int] = Field(..., min_length=1)
    target_stage_id: int
    reason: Optional[str] = None


class ManualProgressResponse(ErrorListModel):
    message: str = "Progress updated"
    updated: int
