"""
Request authentication and organization membership checks.

Sessions are issued by the external identity service as HS256 JWTs whose
``sub`` claim is the user id. This module only verifies them.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import (
    AUTHENTICATION_REQUIRED,
    ORGANIZATION_NOT_FOUND,
    UNAUTHORIZED_RESOURCE,
    APIError,
)
from app.models.membership import Membership
from app.models.organization import Organization

log = structlog.get_logger()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)

DEFAULT_TOKEN_TTL = timedelta(hours=1)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(user_id: str, *, expires_delta: timedelta | None = None) -> str:
    """Create a signed session token for ``user_id``."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + (expires_delta or DEFAULT_TOKEN_TTL),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a session token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Resolve the authenticated user's id from the Bearer token."""
    if credentials is None:
        raise APIError(AUTHENTICATION_REQUIRED)
    try:
        payload = decode_jwt(credentials.credentials)
    except jwt.PyJWTError as exc:
        log.info("auth.token_rejected", reason=str(exc))
        raise APIError(AUTHENTICATION_REQUIRED) from exc
    return str(payload["sub"])


def get_client_ip(request: Request) -> str:
    """Client address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


# ---------------------------------------------------------------------------
# Authorization dependencies
# ---------------------------------------------------------------------------

async def require_membership(
    organizationId: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
) -> Membership:
    """The caller's membership in the organization named by the path.

    Unknown organizations are 404; organizations the caller does not belong
    to are rejected as unauthorized.
    """
    org = await session.get(Organization, organizationId)
    if org is None:
        raise APIError(ORGANIZATION_NOT_FOUND)

    result = await session.execute(
        select(Membership).where(
            Membership.organization_id == organizationId,
            Membership.user_id == user_id,
        )
    )
    membership = result.scalar_one_or_none()
    if membership is None:
        log.warning(
            "auth.not_a_member",
            user_id=user_id,
            organization_id=organizationId,
        )
        raise APIError(UNAUTHORIZED_RESOURCE)
    return membership
