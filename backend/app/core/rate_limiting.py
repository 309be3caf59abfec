"""Request throttling with slowapi.

Security: GET /onboarding/username-availability answers "is this handle
free?" for any input, so it is throttled to stop handle enumeration.

Requests are keyed by session owner when auth is on, so providers behind one
shared IP do not starve each other. Anonymous traffic is keyed by IP.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.get("/username-availability")
    @limiter.limit(settings.rate_limit_username_check)
    async def check_username(request: Request, ...):
        ...
"""

import jwt
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.config import settings

_DEFAULT_RETRY_AFTER_SECONDS = 60

_PERIOD_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}

# Longest string form of a UUID
_MAX_SUBJECT_LENGTH = 36


def _session_subject(request: Request) -> str | None:
    """Return the JWT subject from the session cookie, if it decodes.

    Only the signature and registered claims are checked. Full session
    validation stays in app.api.deps.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            settings.auth_secret.get_secret_value(),
            algorithms=["HS256"],
            audience=settings.auth_audience,
            issuer=settings.auth_issuer,
        )
    except jwt.InvalidTokenError:
        return None
    subject = claims.get("sub")
    if not isinstance(subject, str) or len(subject) > _MAX_SUBJECT_LENGTH:
        return None
    return subject


def _rate_limit_key_func(request: Request) -> str:
    """Bucket key for a request.

    "{ip}" with auth disabled, "user:{sub}" for a valid session,
    "unauth:{ip}" otherwise.
    """
    client_ip = get_remote_address(request)
    if not settings.auth_enabled:
        return client_ip
    subject = _session_subject(request)
    if subject is None:
        return f"unauth:{client_ip}"
    return f"user:{subject}"


def _retry_after_seconds(detail: object) -> int:
    """Window length from a slowapi detail such as "30 per 1 minute"."""
    if not isinstance(detail, str):
        return _DEFAULT_RETRY_AFTER_SECONDS
    words = detail.split()
    if len(words) != 4 or words[1] != "per":
        return _DEFAULT_RETRY_AFTER_SECONDS
    try:
        multiplier = int(words[2])
    except ValueError:
        return _DEFAULT_RETRY_AFTER_SECONDS
    unit = _PERIOD_SECONDS.get(words[3].rstrip("s"))
    if unit is None or multiplier <= 0:
        return _DEFAULT_RETRY_AFTER_SECONDS
    return multiplier * unit


# In-memory storage; one API process per deployment
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Render a 429 in the standard error envelope with Retry-After."""
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": str(_retry_after_seconds(exc.detail))},
    )
