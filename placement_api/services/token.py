"""Bearer token handling.

Tokens are minted by the accounts service with the shared HS256 secret.
This service only reads the requester identity from them: ``sub`` (staff
account id, or the student's internal record id) and ``role``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt, JWTError

from placement_api.config.settings import settings


def issue_token(subject: str | int, role: str, expires_in: timedelta = None, **claims: Any) -> str:
    """
    Mint a token for ``subject`` acting as ``role``.

    Used by local tooling and tests.
    """
    now = datetime.now(timezone.utc)
    lifetime = expires_in or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        **claims,
        "sub": str(subject),
        "role": role,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def read_identity(token: str) -> dict[str, Any]:
    """
    Decode a token and return its claims with ``role`` lower-cased.

    Raises:
        JWTError: bad signature, expired, or no ``sub``/``role`` claim
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise JWTError("Token has expired")
    except JWTError as e:
        raise JWTError(f"Invalid token: {e}")

    if not payload.get("sub") or not payload.get("role"):
        raise JWTError("Token is missing identity claims")

    payload["role"] = str(payload["role"]).lower()
    return payload
