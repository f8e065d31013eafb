"""Pydantic schemas for result ingestion, preview and publication."""

from datetime import datetime
from typing import Optional

from pydantic import Field, model_serializer

from .base import CamelModel


class ErrorListModel(CamelModel):
    """Drops ``errors`` from the JSON body when there are none."""

    errors: Optional[list[str]] = None

    @model_serializer(mode="wrap")
    def _omit_empty_errors(self, handler):
        data = handler(self)
        if not self.errors:
            data.pop("errors", None)
        return data


class ResultSummaryResponse(CamelModel):
    """One evaluated result as returned by ingestion."""

    student_id: str
    student_name: str
    marks_obtained: float
    total_marks: float
    percentage: Optional[float] = None
    verdict: str
    application_status: str


class IngestionResponse(ErrorListModel):
    """Outcome of a bulk upload."""

    message: str = "Results uploaded successfully"
    processed_count: int
    total_count: int
    results: list[ResultSummaryResponse]


class ManualResultRequest(CamelModel):
    """Single result entered by hand."""

    stage_id: int
    student_id: str = Field(..., min_length=1)
    marks_obtained: float
    remarks: Optional[str] = None


class ManualResultResponse(CamelModel):
    message: str = "Result saved successfully"
    result: ResultSummaryResponse


class PreviewStatistics(CamelModel):
    total_candidates: int
    qualified: int
    not_qualified: int
    pending: int
    cutoff_type: str
    cutoff_value: float
    average_marks: float
    highest_marks: float
    lowest_marks: float


class PreviewResultItem(CamelModel):
    """A result in the pre-publish preview, published or not."""

    id: int
    student_id: Optional[str] = None
    student_name: str
    branch: Optional[str] = None
    email: Optional[str] = None
    marks_obtained: float
    total_marks: float
    percentage: Optional[float] = None
    verdict: str
    remarks: Optional[str] = None
    published: bool


class PreviewResponse(CamelModel):
    stage_id: int
    stage_name: str
    statistics: PreviewStatistics
    results: list[PreviewResultItem]


class PublishRequest(CamelModel):
    stage_id: int
    remarks: Optional[str] = None


class PublishResponse(ErrorListModel):
    """Outcome of publishing a stage."""

    message: str = "Results published successfully"
    published_count: int
    qualified_count: int
    not_qualified_count: int
    newly_published: int
    generation: int
    advanced_count: int = 0
    eliminated_count: int = 0
    selected_count: int = 0


class MyResult(CamelModel):
    marks_obtained: float
    total_marks: float
    percentage: Optional[float] = None
    verdict: str
    stage_name: str
    cutoff_type: str
    cutoff_value: Optional[float] = None
    published_at: Optional[datetime] = None


class NextStageInfo(CamelModel):
    stage_name: str
    stage_type: str
    scheduled_date: Optional[datetime] = None
    location: Optional[str] = None


class MyResultResponse(CamelModel):
    """A candidate's own published result."""

    result: MyResult
    next_stage: Optional[NextStageInfo] = None
    message: str
