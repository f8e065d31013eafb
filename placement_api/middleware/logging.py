"""Structured logging setup and per-request logging middleware."""

import logging
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from placement_api.config.settings import settings

logger = structlog.get_logger()

# Probe traffic is logged at debug level only
QUIET_PATHS = ("/health", "/api/v1/health")


def configure_logging() -> None:
    """Configure structlog for JSON output at ``settings.LOG_LEVEL``."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with a short request id.

    The id is taken from an incoming ``X-Request-ID`` header when present,
    bound into the structlog context for everything logged while handling
    the request, and echoed back on the response. Once authentication has
    run, the requester's id and role are bound as well so service logs
    ("Stage published", "Candidate eliminated", ...) carry who did it.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        quiet = request.url.path.startswith(QUIET_PATHS)
        log = logger.debug if quiet else logger.info

        started = time.perf_counter()
        log(
            "Request started",
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        response = await call_next(request)

        user = getattr(request.state, "user", None)
        if user:
            structlog.contextvars.bind_contextvars(actor=str(user.get("sub")), role=user.get("role"))

        fields = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        }
        if response.status_code >= 500:
            logger.error("Request failed", **fields)
        elif response.status_code >= 400:
            logger.warning("Request rejected", **fields)
        else:
            log("Request completed", **fields)

        response.headers["X-Request-ID"] = request_id
        return response
