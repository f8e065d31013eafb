"""Role-based access control for API endpoints."""

from dataclasses import dataclass
from typing import Any, Callable

from fastapi import Request
import structlog

from placement_api.middleware.error_handler import APIError, ForbiddenError

logger = structlog.get_logger()


ADMIN = "admin"
FACULTY = "faculty"
EMPLOYER = "employer"
STUDENT = "student"

STAFF_ROLES = [ADMIN, EMPLOYER, FACULTY]

# Role label recorded on results, publications and audit entries
PERFORMER_LABELS = {
    ADMIN: "Admin",
    FACULTY: "Faculty",
    EMPLOYER: "Employer",
    STUDENT: "Student",
}


@dataclass(frozen=True)
class Actor:
    """Resolved requester identity."""

    id: str
    role: str

    @property
    def label(self) -> str:
        return PERFORMER_LABELS.get(self.role, self.role.title())


@dataclass(frozen=True)
class RequestContext:
    """Request metadata recorded on audit entries."""

    ip_address: str | None = None
    user_agent: str | None = None


def get_current_user(request: Request) -> dict[str, Any]:
    """
    Get current user from request state.

    Usage:
        @router.get("/me")
        def get_me(user: dict = Depends(get_current_user)):
            return user
    """
    if not hasattr(request.state, "user"):
        raise APIError("Not authenticated", code="UNAUTHORIZED", status_code=401)
    return request.state.user


def actor_from_user(user: dict[str, Any]) -> Actor:
    return Actor(id=str(user.get("sub")), role=str(user.get("role", "")).lower())


def request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def has_role(user_role: str, allowed_roles: list[str]) -> bool:
    """Admins pass every role check."""
    return user_role == ADMIN or user_role in allowed_roles


def require_role(allowed_roles: list[str]) -> Callable:
    """
    Dependency that requires user to have one of the specified roles.

    Usage:
        @router.post("/admin-only")
        def admin_endpoint(user: dict = Depends(require_role(["admin"]))):
            return {"message": "Admin access granted"}
    """
    def check_role(request: Request) -> dict[str, Any]:
        user = get_current_user(request)
        user_role = str(user.get("role", "")).lower()

        if has_role(user_role, allowed_roles):
            logger.debug(
                "Role check passed",
                user=user.get("sub"),
                required=allowed_roles,
                user_role=user_role,
            )
            return user

        logger.warning(
            "Role check failed",
            user=user.get("sub"),
            required=allowed_roles,
            user_role=user_role,
        )
        raise ForbiddenError()

    return check_role


def require_authenticated(request: Request) -> dict[str, Any]:
    return get_current_user(request)
