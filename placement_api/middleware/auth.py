"""Authentication middleware for JWT validation."""

import re
from typing import Optional

from fastapi import Request
from jose import JWTError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from placement_api.config.settings import settings
from placement_api.services.token import read_identity


# Paths that don't require authentication
SKIP_AUTH_PATHS = [
    r"^/health",
    r"^/api/v1/health",
    r"^/api/docs",
    r"^/api/openapi\.json",
    r"^/api/redoc",
    r"^/$",
]

SKIP_AUTH_PATTERNS = [re.compile(p) for p in SKIP_AUTH_PATHS]


def should_skip_auth(path: str) -> bool:
    """Check if path should skip authentication."""
    return any(pattern.match(path) for pattern in SKIP_AUTH_PATTERNS)


def get_token_from_request(request: Request) -> Optional[str]:
    """Extract JWT token from request (cookie or Authorization header)."""
    token = request.cookies.get(settings.COOKIE_NAME)
    if token:
        return token

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]

    return None


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"error": {"code": "UNAUTHORIZED", "message": message, "details": {}}},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates JWT tokens on protected routes.

    Tokens are issued by the accounts service; this service only consumes
    the resolved identity (``sub``) and ``role`` claims.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        """Process request and validate authentication."""
        if should_skip_auth(request.url.path):
            return await call_next(request)

        token = get_token_from_request(request)
        if not token:
            return _unauthorized("Not authenticated")

        try:
            payload = read_identity(token)
        except JWTError as e:
            return _unauthorized(str(e))

        # Store user info in request state
        request.state.user = payload
        request.state.user_id = str(payload.get("sub"))
        request.state.user_role = payload["role"]

        return await call_next(request)
