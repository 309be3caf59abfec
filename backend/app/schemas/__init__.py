"""Pydantic request/response schemas for API endpoints."""

from app.schemas.onboarding import (
    OnboardingFieldsUpdate,
    ServiceEntryPayload,
    UsernameAvailabilityResponse,
    UsernameSuggestionResponse,
)

__all__ = [
    # Onboarding
    "OnboardingFieldsUpdate",
    "ServiceEntryPayload",
    "UsernameAvailabilityResponse",
    "UsernameSuggestionResponse",
]
