"""Per-step validation rules for the provider onboarding wizard.

Each step has an ordered list of rules. Validation stops at the first
violated rule and reports only that rule's message.

Rules by step:
- BASIC_INFO: business name (2-100 chars) and category required
- CONTACT: every field optional; phone, postal code and Instagram handle
  must be well-formed when present
- IDENTIFIER: username required, 3-30 chars of [a-zA-Z0-9_-]
  (availability is checked separately by the flow controller)
- SERVICES: at least one valid service; every non-blank entry must be valid
- PREVIEW: re-checks business info, username and services before completion
"""

import re
from collections.abc import Callable, Iterable
from decimal import Decimal

from app.services.onboarding_errors import StepValidationError
from app.services.onboarding_types import OnboardingFields, OnboardingStep, ServiceEntry

# =============================================================================
# Constants
# =============================================================================

BUSINESS_NAME_MIN_LENGTH = 2
BUSINESS_NAME_MAX_LENGTH = 100

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30

SERVICE_NAME_MIN_LENGTH = 2
SERVICE_NAME_MAX_LENGTH = 100
SERVICE_MAX_PRICE = Decimal(999999)
SERVICE_MIN_DURATION = 15
SERVICE_MAX_DURATION = 480

_PHONE_RE = re.compile(r"^\+[1-9]\d{1,14}$")
"""E.164: '+', a non-zero country code digit, then up to 14 more digits."""

_POSTAL_CODE_RE = re.compile(r"^\d{5}$")
"""Mexican postal code: exactly five digits."""

_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

_INSTAGRAM_RE = re.compile(r"^[a-zA-Z0-9_.]{1,30}$")

# Messages
MSG_BUSINESS_NAME_REQUIRED = "Please enter your business name and category."
MSG_BUSINESS_NAME_LENGTH = (
    f"Business name must be between {BUSINESS_NAME_MIN_LENGTH} and "
    f"{BUSINESS_NAME_MAX_LENGTH} characters."
)
MSG_CATEGORY_REQUIRED = "Please enter your business name and category."
MSG_PHONE_FORMAT = (
    "WhatsApp number must include the country code, e.g. +5215512345678."
)
MSG_POSTAL_CODE_FORMAT = "Postal code must be exactly 5 digits."
MSG_INSTAGRAM_FORMAT = (
    "Instagram handle may only contain letters, numbers, dots and underscores."
)
MSG_USERNAME_REQUIRED = "Please choose a username."
MSG_USERNAME_LENGTH = (
    f"Username must be between {USERNAME_MIN_LENGTH} and "
    f"{USERNAME_MAX_LENGTH} characters."
)
MSG_USERNAME_FORMAT = (
    "Username may only contain letters, numbers, hyphens and underscores."
)
MSG_USERNAME_UNAVAILABLE = "That username is not available."
MSG_SERVICES_REQUIRED = "Please add at least one valid service."
MSG_SERVICE_INVALID = (
    "Service {position} is incomplete: it needs a name of "
    f"{SERVICE_NAME_MIN_LENGTH}-{SERVICE_NAME_MAX_LENGTH} characters, a price "
    f"above 0 and a duration between {SERVICE_MIN_DURATION} and "
    f"{SERVICE_MAX_DURATION} minutes."
)

# =============================================================================
# Field Predicates
# =============================================================================


def is_valid_phone(phone: str) -> bool:
    """Check a phone number against the E.164 international format."""
    return bool(_PHONE_RE.match(phone))


def is_valid_postal_code(postal_code: str) -> bool:
    """Check a five-digit postal code."""
    return bool(_POSTAL_CODE_RE.match(postal_code))


def is_valid_instagram_handle(handle: str) -> bool:
    """Check an Instagram handle (leading '@' tolerated)."""
    return bool(_INSTAGRAM_RE.match(handle.removeprefix("@")))


def has_valid_username_length(username: str) -> bool:
    """Check the username length bounds only."""
    return USERNAME_MIN_LENGTH <= len(username.strip()) <= USERNAME_MAX_LENGTH


def is_valid_username(username: str) -> bool:
    """Check username length and character set."""
    candidate = username.strip()
    return has_valid_username_length(candidate) and bool(_USERNAME_RE.match(candidate))


def is_blank_service(service: ServiceEntry) -> bool:
    """True if the user has not started filling in this entry.

    Blank entries are the empty rows a form adds; they are ignored rather
    than failing validation. Any entered price, even 0 or a negative one,
    makes the entry non-blank.
    """
    return (
        not service.name.strip()
        and service.price is None
        and not service.description.strip()
    )


def is_valid_service(service: ServiceEntry) -> bool:
    """Check one service against name, price and duration bounds."""
    name_length = len(service.name.strip())
    return (
        SERVICE_NAME_MIN_LENGTH <= name_length <= SERVICE_NAME_MAX_LENGTH
        and service.price is not None
        and Decimal(0) < service.price <= SERVICE_MAX_PRICE
        and SERVICE_MIN_DURATION <= service.duration_minutes <= SERVICE_MAX_DURATION
    )


def filled_services(services: Iterable[ServiceEntry]) -> list[ServiceEntry]:
    """Return the entries the user has started filling in."""
    return [s for s in services if not is_blank_service(s)]


def valid_services(services: Iterable[ServiceEntry]) -> list[ServiceEntry]:
    """Return the entries that pass the service rule."""
    return [s for s in services if is_valid_service(s)]


def has_basic_info(fields: OnboardingFields) -> bool:
    """True if business name and category are both present."""
    return bool(fields.business_name.strip() and fields.category.strip())


# =============================================================================
# Step Rules
# =============================================================================

_Violation = tuple[str, str | None]
"""(message, field) for a violated rule."""


def _check_basic_info(fields: OnboardingFields) -> _Violation | None:
    name = fields.business_name.strip()
    if not name:
        return MSG_BUSINESS_NAME_REQUIRED, "business_name"
    if not BUSINESS_NAME_MIN_LENGTH <= len(name) <= BUSINESS_NAME_MAX_LENGTH:
        return MSG_BUSINESS_NAME_LENGTH, "business_name"
    if not fields.category.strip():
        return MSG_CATEGORY_REQUIRED, "category"
    return None


def _check_contact(fields: OnboardingFields) -> _Violation | None:
    phone = fields.whatsapp_phone.strip()
    if phone and not is_valid_phone(phone):
        return MSG_PHONE_FORMAT, "whatsapp_phone"
    postal_code = fields.postal_code.strip()
    if postal_code and not is_valid_postal_code(postal_code):
        return MSG_POSTAL_CODE_FORMAT, "postal_code"
    handle = fields.instagram_handle.strip()
    if handle and not is_valid_instagram_handle(handle):
        return MSG_INSTAGRAM_FORMAT, "instagram_handle"
    return None


def _check_identifier(fields: OnboardingFields) -> _Violation | None:
    username = fields.username.strip()
    if not username:
        return MSG_USERNAME_REQUIRED, "username"
    if not has_valid_username_length(username):
        return MSG_USERNAME_LENGTH, "username"
    if not _USERNAME_RE.match(username):
        return MSG_USERNAME_FORMAT, "username"
    return None


def _check_services(fields: OnboardingFields) -> _Violation | None:
    # A partially filled invalid entry fails the whole step, even when
    # another entry is valid.
    for position, service in enumerate(fields.services, start=1):
        if is_blank_service(service):
            continue
        if not is_valid_service(service):
            return MSG_SERVICE_INVALID.format(position=position), "services"
    if not valid_services(fields.services):
        return MSG_SERVICES_REQUIRED, "services"
    return None


def _check_preview(fields: OnboardingFields) -> _Violation | None:
    return (
        _check_basic_info(fields)
        or _check_identifier(fields)
        or _check_services(fields)
    )


_STEP_RULES: dict[OnboardingStep, Callable[[OnboardingFields], _Violation | None]] = {
    OnboardingStep.BASIC_INFO: _check_basic_info,
    OnboardingStep.CONTACT: _check_contact,
    OnboardingStep.IDENTIFIER: _check_identifier,
    OnboardingStep.SERVICES: _check_services,
    OnboardingStep.PREVIEW: _check_preview,
}


# =============================================================================
# Public API
# =============================================================================


def validate_step(step: OnboardingStep, fields: OnboardingFields) -> str | None:
    """Validate the data a step requires.

    Args:
        step: The step being left (or completed).
        fields: Full current field set.

    Returns:
        None if the step passes, otherwise the message of the first
        violated rule.
    """
    violation = _STEP_RULES[step](fields)
    return violation[0] if violation else None


def require_valid_step(step: OnboardingStep, fields: OnboardingFields) -> None:
    """Validate a step, raising on the first violated rule.

    Args:
        step: The step being left (or completed).
        fields: Full current field set.

    Raises:
        StepValidationError: With the first violated rule's message and field.
    """
    violation = _STEP_RULES[step](fields)
    if violation is not None:
        message, field = violation
        raise StepValidationError(message, field)
