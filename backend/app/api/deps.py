"""Shared dependencies for API endpoints.

Authentication: local-first mode uses DEFAULT_USER_ID; hosted mode
validates the session JWT from the auth cookie.

Persistence: endpoints receive a ProgressStore bound to the request's
database session, so tests can swap in an in-memory store.
"""

import uuid
from typing import Annotated

import jwt
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import UnauthorizedError
from app.services.onboarding_store import ProgressStore, SqlProgressStore


def get_current_user_id(request: Request) -> uuid.UUID:
    """Get current user ID from auth context.

    Validation steps (hosted mode):
    1. Read JWT from cookie
    2. Decode + verify signature (HS256)
    3. Verify exp, aud, iss claims
    4. Extract sub as UUID

    A valid token whose user row no longer exists is not rejected here;
    the store reports it as AUTH_EXPIRED so the client can redirect.

    Args:
        request: HTTP request (injected by FastAPI).

    Returns:
        UUID of the current authenticated user.

    Raises:
        UnauthorizedError: For any auth failure. The message never says
            why (missing cookie, expiry, bad signature).
    """
    if not settings.auth_enabled:
        # Local-first mode: use DEFAULT_USER_ID from environment
        if settings.default_user_id is None:
            raise UnauthorizedError()
        return settings.default_user_id

    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        raise UnauthorizedError()

    try:
        payload = jwt.decode(
            token,
            settings.auth_secret.get_secret_value(),
            algorithms=["HS256"],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
        )
        return uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise UnauthorizedError() from exc


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_progress_store(db: DbSession) -> ProgressStore:
    """Get the onboarding store bound to this request's session.

    Args:
        db: Database session (injected).

    Returns:
        SqlProgressStore for the request.
    """
    return SqlProgressStore(db)


# Reusable type aliases for dependency injection
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
Store = Annotated[ProgressStore, Depends(get_progress_store)]
