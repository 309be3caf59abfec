"""Step inference for resumable onboarding.

When a provider returns to the wizard, the step to show is recovered from
the persisted data rather than trusted blindly from the stored counter: a
counter can be stale (e.g. services deleted elsewhere after the wizard was
left on the preview step).

Both functions are pure and run once at load time, never on every render.
"""

import logging

from app.services.onboarding_types import OnboardingFields, OnboardingStep
from app.services.onboarding_validation import (
    has_basic_info,
    has_valid_username_length,
    valid_services,
)

logger = logging.getLogger(__name__)


def infer_step(fields: OnboardingFields) -> OnboardingStep:
    """Infer the furthest step the data supports.

    Precedence (first match wins):
    1. Business name or category missing → BASIC_INFO
    2. Username missing or of invalid length → IDENTIFIER
    3. No valid service → SERVICES
    4. Otherwise → PREVIEW

    CONTACT is never inferred: its fields are optional, so the data cannot
    tell whether the user has visited it. Only the stored counter can.

    Args:
        fields: Persisted field values.

    Returns:
        The inferred step. Deterministic and idempotent.
    """
    if not has_basic_info(fields):
        return OnboardingStep.BASIC_INFO
    if not has_valid_username_length(fields.username):
        return OnboardingStep.IDENTIFIER
    if not valid_services(fields.services):
        return OnboardingStep.SERVICES
    return OnboardingStep.PREVIEW


def reconcile_step(stored: int | None, fields: OnboardingFields) -> OnboardingStep:
    """Choose the step to resume at from the stored counter and the data.

    The stored counter is more granular than inference (it knows about
    CONTACT and about backward navigation), so it wins whenever the data
    supports it. A counter ahead of the data is clamped back to the
    inferred step. Missing or out-of-range counters fall back to inference.

    Args:
        stored: Raw onboarding_step value from storage (may be None).
        fields: Persisted field values.

    Returns:
        The step to resume at.
    """
    inferred = infer_step(fields)
    stored_step = OnboardingStep.from_stored(stored)
    if stored_step is None:
        return inferred
    if stored_step > inferred:
        logger.info(
            "Stored onboarding step %s ahead of data; clamping to %s",
            stored_step.slug,
            inferred.slug,
        )
        return inferred
    return stored_step
