"""Onboarding error taxonomy.

Error Handling Strategy:
    - StepValidationError: user-correctable, surfaced as the single failing
      rule's message
    - IdentifierConflictError: persistence rejected a duplicate value, mapped
      to a specific "already taken" message
    - TransientError: database/network failure, retryable ("try again")
    - AuthExpiredError: the session no longer maps to a live account; the
      client redirects to login after a short delay
    - OnboardingStateError: transition not allowed from the current state

All of them subclass APIError so the app-wide handler renders them.
Every failed advance()/complete() leaves the in-memory record untouched.
"""

from app.core.config import settings
from app.core.errors import APIError, ConflictError, InvalidStateError

_FIELD_CONFLICT_MESSAGES: dict[str, str] = {
    "username": "That username is already taken. Please choose another one.",
}

_GENERIC_CONFLICT_MESSAGE = (
    "A provider with this information already exists. Please review your data."
)


class OnboardingError(APIError):
    """Base class for onboarding flow errors."""


class StepValidationError(OnboardingError):
    """A step's data failed validation (400).

    Attributes:
        reason: Message of the first violated rule.
        field: Name of the offending field, if the rule is field-specific.
    """

    def __init__(self, reason: str, field: str | None = None) -> None:
        self.reason = reason
        self.field = field
        super().__init__(
            code="STEP_VALIDATION_FAILED",
            message=reason,
            status_code=400,
            details=[{"field": field}] if field else None,
        )


class IdentifierConflictError(ConflictError, OnboardingError):
    """The store rejected a value that must be unique (409).

    Attributes:
        field: The field that collided (e.g. "username").
    """

    def __init__(self, field: str) -> None:
        self.field = field
        message = _FIELD_CONFLICT_MESSAGES.get(field, _GENERIC_CONFLICT_MESSAGE)
        code = "IDENTIFIER_TAKEN" if field in _FIELD_CONFLICT_MESSAGES else "CONFLICT"
        super().__init__(
            code=code,
            message=message,
            details=[{"field": field}],
        )


class TransientError(OnboardingError):
    """Backend or network failure; the operation may succeed on retry (503)."""

    def __init__(self, message: str = "Something went wrong. Please try again.") -> None:
        super().__init__(
            code="TRANSIENT_FAILURE",
            message=message,
            status_code=503,
        )


class AuthExpiredError(OnboardingError):
    """The session no longer maps to a live account (401).

    Details tell the client where to redirect and how long to wait first,
    so the user can read the message before leaving the page.
    """

    def __init__(self) -> None:
        super().__init__(
            code="AUTH_EXPIRED",
            message="Your session has expired. Please sign in again.",
            status_code=401,
            details=[
                {
                    "redirect_to": settings.onboarding_login_path,
                    "redirect_after_seconds": settings.onboarding_auth_redirect_delay_seconds,
                }
            ],
        )


class OnboardingStateError(InvalidStateError, OnboardingError):
    """Transition not allowed from the current state (422)."""
