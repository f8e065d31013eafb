"""Shared schema bases: camelCase JSON, pagination and the error envelope."""

from typing import Any, Generic, TypeVar

from humps import camelize
from pydantic import BaseModel, ConfigDict


class CamelModel(BaseModel):
    """
    Base for every request and response body.

    Fields are declared in snake_case and exchanged as camelCase
    (``marks_obtained`` <-> ``marksObtained``). Both spellings are accepted
    on input, and ORM rows or dataclasses validate directly.
    """

    model_config = ConfigDict(
        alias_generator=camelize,
        populate_by_name=True,
        from_attributes=True,
    )


T = TypeVar("T")


class PaginationMeta(CamelModel):
    page: int
    per_page: int
    total: int
    total_pages: int

    @classmethod
    def for_page(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        return cls(page=page, per_page=per_page, total=total, total_pages=(total + per_page - 1) // per_page)


class PaginatedResponse(CamelModel, Generic[T]):
    """A page of ``data`` plus its position in the full listing."""

    data: list[T]
    meta: PaginationMeta


class ErrorDetail(CamelModel):
    code: str
    message: str
    details: dict[str, Any] = {}


class ErrorResponse(CamelModel):
    """Body of every non-2xx response, see ``middleware.error_handler``."""

    error: ErrorDetail


# OpenAPI documentation for the error statuses shared by the drive routes
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 401, 403, 404, 409, 422)
}
