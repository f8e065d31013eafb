"""Pydantic schemas for API request/response validation."""

from .base import CamelModel, PaginatedResponse, PaginationMeta, ErrorResponse, ERROR_RESPONSES
from .stages import (
    CutoffCriteria,
    StageCreate,
    StageUpdate,
    StageReorderRequest,
    StageResponse,
    StageListResponse,
)
from .results import (
    ResultSummaryResponse,
    IngestionResponse,
    ManualResultRequest,
    ManualResultResponse,
    PreviewStatistics,
    PreviewResultItem,
    PreviewResponse,
    PublishRequest,
    PublishResponse,
    MyResultResponse,
)
from .progress import (
    ProgressResponse,
    DriveProgressResponse,
    ManualProgressRequest,
    ManualProgressResponse,
)
from .audit import AuditLogResponse

__all__ = [
    "CamelModel",
    "PaginatedResponse",
    "PaginationMeta",
    "ErrorResponse",
    "ERROR_RESPONSES",
    # Stages
    "CutoffCriteria",
    "StageCreate",
    "StageUpdate",
    "StageReorderRequest",
    "StageResponse",
    "StageListResponse",
    # Results
    "ResultSummaryResponse",
    "IngestionResponse",
    "ManualResultRequest",
    "ManualResultResponse",
    "PreviewStatistics",
    "PreviewResultItem",
    "PreviewResponse",
    "PublishRequest",
    "PublishResponse",
    "MyResultResponse",
    # Progress
    "ProgressResponse",
    "DriveProgressResponse",
    "ManualProgressRequest",
    "ManualProgressResponse",
    # Audit
    "AuditLogResponse",
]
