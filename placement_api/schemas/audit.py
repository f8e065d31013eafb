"""Pydantic schemas for the audit log listing."""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import field_validator

from .base import CamelModel


def _load_json(v: Any, empty: Any) -> Any:
    if v is None or v == "":
        return empty
    if isinstance(v, str):
        return json.loads(v)
    return v


class AuditLogResponse(CamelModel):
    id: int
    action: str
    performed_by: str
    performer_role: str
    drive_id: Optional[int] = None
    stage_id: Optional[int] = None
    affected_students: list[int] = []
    affected_count: int = 0
    details: dict[str, Any] = {}
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    success: bool = True
    error_message: Optional[str] = None
    created_at: datetime

    # Stored as JSON text
    @field_validator("affected_students", mode="before")
    @classmethod
    def parse_students(cls, v: Any) -> list[int]:
        return _load_json(v, [])

    @field_validator("details", mode="before")
    @classmethod
    def parse_details(cls, v: Any) -> dict[str, Any]:
        return _load_json(v, {})
