"""Global exception handlers for the API."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger()


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        code: str = "API_ERROR",
        status_code: int = 400,
        details: dict = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str | int, message: str = None):
        super().__init__(
            message=message or f"{resource} not found",
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "id": identifier},
        )


class ValidationAPIError(APIError):
    """Validation error."""

    def __init__(self, message: str, field: str = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=422,
            details={"field": field} if field else {},
        )


class MalformedInputError(ValidationAPIError):
    """Uploaded file could not be parsed into result rows."""

    def __init__(self, message: str, field: str = "file"):
        super().__init__(message, field=field)
        self.code = "MALFORMED_INPUT"
        self.status_code = 400


class ForbiddenError(APIError):
    """Access forbidden."""

    def __init__(self, message: str = "You don't have permission to access this resource"):
        super().__init__(
            message=message,
            code="FORBIDDEN",
            status_code=403,
        )


class ConflictError(APIError):
    """Request conflicts with the current state of a resource."""

    def __init__(self, message: str, code: str = "CONFLICT", details: dict = None):
        super().__init__(
            message=message,
            code=code,
            status_code=409,
            details=details,
        )


class NothingToPublishError(ConflictError):
    """A publish was requested for a stage with no results."""

    def __init__(self, drive_id: int, stage_id: int):
        super().__init__(
            message="No results found to publish",
            code="NOTHING_TO_PUBLISH",
            details={"drive_id": drive_id, "stage_id": stage_id},
        )


class TerminalStateError(ConflictError):
    """Transition requested for a candidate already eliminated or selected."""

    def __init__(self, student_id: int, overall_status: str):
        super().__init__(
            message=f"Candidate is already {overall_status} in this drive",
            code="TERMINAL_STATE",
            details={"student_id": student_id, "overall_status": overall_status},
        )


class ConcurrentUpdateError(ConflictError):
    """Optimistic version check failed."""

    def __init__(self, resource: str, identifier: str | int):
        super().__init__(
            message=f"{resource} was modified concurrently, retry the request",
            code="CONCURRENT_UPDATE",
            details={"resource": resource, "id": identifier},
        )


def _error_body(code: str, message: str, details: dict) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        }
    }


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        """Handle custom API errors."""
        logger.warning(
            "API error",
            code=exc.code,
            message=exc.message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle Pydantic validation errors."""
        errors = exc.errors()
        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        message = first_error.get("msg", "Validation error")

        logger.warning(
            "Validation error",
            field=field,
            message=message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=422,
            content=_error_body(
                "VALIDATION_ERROR",
                message,
                {"field": field, "errors": [{"loc": e.get("loc"), "msg": e.get("msg")} for e in errors]},
            ),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        """Handle database errors."""
        logger.error(
            "Database error",
            error=str(exc),
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("DATABASE_ERROR", "A database error occurred", {}),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        logger.exception(
            "Unexpected error",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("INTERNAL_ERROR", "An unexpected error occurred", {}),
        )
