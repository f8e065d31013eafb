"""Pydantic schemas for Stage Catalog endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from placement_api.models import StageMode, StageType

from .base import CamelModel


class CutoffCriteria(CamelModel):
    """Cutoff rule of a stage."""

    type: Literal["percentage", "marks", "none"] = "percentage"
    value: Optional[float] = Field(None, ge=0)
    total_marks: Optional[float] = Field(None, gt=0)


class StageCreate(CamelModel):
    """Schema for creating a stage."""

    stage_name: str = Field(..., min_length=1, max_length=255)
    stage_type: StageType
    description: Optional[str] = None
    cutoff: CutoffCriteria = CutoffCriteria()
    scheduled_date: Optional[datetime] = None
    location: Optional[str] = None
    mode: StageMode = StageMode.OFFLINE
    instructions: Optional[str] = None
    is_active: bool = False
    # 1-based position in the drive's sequence; appended when omitted
    position: Optional[int] = Field(None, ge=1)


class StageUpdate(CamelModel):
    """Schema for updating a stage (all fields optional)."""

    stage_name: Optional[str] = Field(None, min_length=1, max_length=255)
    stage_type: Optional[StageType] = None
    description: Optional[str] = None
    cutoff: Optional[CutoffCriteria] = None
    scheduled_date: Optional[datetime] = None
    location: Optional[str] = None
    mode: Optional[StageMode] = None
    instructions: Optional[str] = None
    is_active: Optional[bool] = None


class StageReorderRequest(CamelModel):
    """New stage sequence; must list every stage of the drive exactly once."""

    stage_ids: list[int] = Field(..., min_length=1)


class StageResponse(CamelModel):
    """Schema for a stage."""

    id: int
    drive_id: int
    stage_name: str
    stage_type: str
    description: Optional[str] = None
    cutoff_type: str
    cutoff_value: Optional[float] = None
    cutoff_total_marks: Optional[float] = None
    scheduled_date: Optional[datetime] = None
    location: Optional[str] = None
    mode: str
    instructions: Optional[str] = None
    is_active: bool = False
    order: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StageListResponse(CamelModel):
    """Ordered stages of a drive."""

    drive_id: int
    stages_enabled: bool = False
    current_active_stage_id: Optional[int] = None
    stages: list[StageResponse]
