"""Onboarding request/response schemas.

Request bodies carry raw wizard input. Field rules are not enforced here:
the wizard accepts anything while typing and validates per step on
advance/complete. Length caps only bound payload size.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ServiceEntryPayload(BaseModel):
    """One service row as sent by the wizard.

    Attributes:
        name: Service name.
        price: Price in MXN (missing means not entered yet).
        duration_minutes: Appointment length in minutes.
        description: Optional description.
        category: Service category slug.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="", max_length=200)
    price: Decimal | None = None
    duration_minutes: int | None = None
    description: str = Field(default="", max_length=2000)
    category: str = Field(default="other", max_length=50)


class OnboardingFieldsUpdate(BaseModel):
    """Partial update of wizard fields (PATCH body, advance body).

    Only fields present in the payload are merged.
    """

    model_config = ConfigDict(extra="forbid")

    business_name: str | None = Field(default=None, max_length=200)
    category: str | None = Field(default=None, max_length=100)
    bio: str | None = Field(default=None, max_length=2000)
    username: str | None = Field(default=None, max_length=100)
    whatsapp_phone: str | None = Field(default=None, max_length=32)
    address: str | None = Field(default=None, max_length=500)
    instagram_handle: str | None = Field(default=None, max_length=64)
    colonia: str | None = Field(default=None, max_length=255)
    postal_code: str | None = Field(default=None, max_length=16)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    service_radius_km: int | None = Field(default=None, ge=1, le=100)
    prefers_local_clients: bool | None = None
    services: list[ServiceEntryPayload] | None = Field(default=None, max_length=50)

    def to_partial(self) -> dict[str, object]:
        """Return only the fields the client sent."""
        return self.model_dump(exclude_unset=True)


class UsernameAvailabilityResponse(BaseModel):
    """Response for GET /onboarding/username-availability.

    Attributes:
        username: The candidate that was checked (trimmed).
        available: True if the username can be claimed.
        reason: Why it cannot be claimed, when not available.
    """

    model_config = ConfigDict(extra="forbid")

    username: str
    available: bool
    reason: str | None = None


class UsernameSuggestionResponse(BaseModel):
    """Response for GET /onboarding/username-suggestion.

    Attributes:
        suggestion: Username derived from the business name.
    """

    model_config = ConfigDict(extra="forbid")

    suggestion: str
