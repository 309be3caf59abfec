"""Onboarding API router.

Drives the provider setup wizard. Each request resumes the flow from the
store, applies one operation and returns the resulting snapshot; the
request's database session commits only if the operation succeeds.

Endpoints:
- GET   /onboarding                        Resume point and stored fields
- PATCH /onboarding                        Save field edits (auto-save target)
- POST  /onboarding/advance                Validate current step, move forward
- POST  /onboarding/retreat                Move back one step
- POST  /onboarding/complete               Finish the wizard
- GET   /onboarding/username-availability  Is a username free?
- GET   /onboarding/username-suggestion    Username derived from business name
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Query, Request

from app.api.deps import CurrentUserId, Store
from app.core.config import settings
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.schemas.onboarding import (
    OnboardingFieldsUpdate,
    UsernameAvailabilityResponse,
    UsernameSuggestionResponse,
)
from app.services.onboarding_flow import OnboardingFlow
from app.services.onboarding_types import canonical_username
from app.services.onboarding_validation import MSG_USERNAME_UNAVAILABLE, is_valid_username
from app.services.username_availability import MSG_USERNAME_INVALID, suggest_username

logger = structlog.get_logger()

router = APIRouter()


async def _load_flow(user_id: CurrentUserId, store: Store) -> OnboardingFlow:
    # Requests are short-lived; the client debounces its own PATCH calls.
    return await OnboardingFlow.load(user_id, store, store, autosave=False)


@router.get("")
async def get_onboarding(
    user_id: CurrentUserId,
    store: Store,
) -> DataResponse[dict]:
    """Get the provider's onboarding state.

    The step is reconciled against the stored data, so the client resumes
    where the data supports rather than at a stale counter.

    Args:
        user_id: Current authenticated user (injected).
        store: Progress store for this request (injected).

    Returns:
        DataResponse with the flow snapshot.
    """
    flow = await _load_flow(user_id, store)
    return DataResponse(data=flow.snapshot())


@router.patch("")
async def update_onboarding(
    body: OnboardingFieldsUpdate,
    user_id: CurrentUserId,
    store: Store,
) -> DataResponse[dict]:
    """Save field edits without validating them.

    Args:
        body: Fields to merge (only those sent are applied).
        user_id: Current authenticated user (injected).
        store: Progress store for this request (injected).

    Returns:
        DataResponse with the updated snapshot.

    Raises:
        IdentifierConflictError: If the username is taken (409).
        OnboardingStateError: If onboarding is already complete (422).
    """
    flow = await _load_flow(user_id, store)
    flow.update_fields(**body.to_partial())
    await flow.save()
    return DataResponse(data=flow.snapshot())


@router.post("/advance")
async def advance_onboarding(
    user_id: CurrentUserId,
    store: Store,
    body: OnboardingFieldsUpdate | None = None,
) -> DataResponse[dict]:
    """Validate the current step and move to the next one.

    Args:
        user_id: Current authenticated user (injected).
        store: Progress store for this request (injected).
        body: Optional last-moment field edits to merge before validating.

    Returns:
        DataResponse with the snapshot at the new step.

    Raises:
        StepValidationError: If the current step's rules fail (400).
        IdentifierConflictError: If the username is taken (409).
        OnboardingStateError: On the last step or after completion (422).
    """
    flow = await _load_flow(user_id, store)
    from_step = flow.current_step
    partial = body.to_partial() if body is not None else {}
    await flow.advance(**partial)
    logger.info(
        "Onboarding step advanced",
        user_id=str(user_id),
        from_step=from_step.slug,
        to_step=flow.current_step.slug,
    )
    return DataResponse(data=flow.snapshot())


@router.post("/retreat")
async def retreat_onboarding(
    user_id: CurrentUserId,
    store: Store,
) -> DataResponse[dict]:
    """Move back one step and remember it as the resume point.

    Args:
        user_id: Current authenticated user (injected).
        store: Progress store for this request (injected).

    Returns:
        DataResponse with the snapshot at the previous step.

    Raises:
        OnboardingStateError: If onboarding is already complete (422).
    """
    flow = await _load_flow(user_id, store)
    from_step = flow.current_step
    flow.retreat()
    if flow.current_step is not from_step:
        await flow.save()
    logger.info(
        "Onboarding step retreat",
        user_id=str(user_id),
        from_step=from_step.slug,
        to_step=flow.current_step.slug,
    )
    return DataResponse(data=flow.snapshot())


@router.post("/complete")
async def complete_onboarding(
    user_id: CurrentUserId,
    store: Store,
) -> DataResponse[dict]:
    """Finish onboarding from the preview step.

    Args:
        user_id: Current authenticated user (injected).
        store: Progress store for this request (injected).

    Returns:
        DataResponse with the completed snapshot.

    Raises:
        StepValidationError: If required data is missing (400).
        OnboardingStateError: If not on the preview step or already
            complete (422).
    """
    flow = await _load_flow(user_id, store)
    await flow.complete()
    logger.info("Onboarding completed", user_id=str(user_id))
    return DataResponse(data=flow.snapshot())


@router.get("/username-availability")
@limiter.limit(settings.rate_limit_username_check)
async def check_username_availability(
    request: Request,  # noqa: ARG001
    username: Annotated[str, Query(max_length=100)],
    user_id: CurrentUserId,
    store: Store,
) -> DataResponse[UsernameAvailabilityResponse]:
    """Check whether a username can be claimed.

    The caller's own current username counts as available, and case is
    ignored. Malformed candidates are answered without a database lookup.

    Args:
        request: HTTP request (required by rate limiter).
        username: Candidate username.
        user_id: Current authenticated user (injected).
        store: Progress store for this request (injected).

    Returns:
        DataResponse with availability and, when unavailable, the reason.
    """
    candidate = canonical_username(username)
    if not is_valid_username(candidate):
        return DataResponse(
            data=UsernameAvailabilityResponse(
                username=candidate, available=False, reason=MSG_USERNAME_INVALID
            )
        )

    available = await store.is_available(candidate, user_id)
    return DataResponse(
        data=UsernameAvailabilityResponse(
            username=candidate,
            available=available,
            reason=None if available else MSG_USERNAME_UNAVAILABLE,
        )
    )


@router.get("/username-suggestion")
async def get_username_suggestion(
    business_name: Annotated[str, Query(max_length=200)],
    user_id: CurrentUserId,  # noqa: ARG001
) -> DataResponse[UsernameSuggestionResponse]:
    """Suggest a username derived from the business name.

    Args:
        business_name: Business name as typed.
        user_id: Current authenticated user (injected, ensures auth).

    Returns:
        DataResponse with the suggestion (not checked for availability).
    """
    return DataResponse(
        data=UsernameSuggestionResponse(suggestion=suggest_username(business_name))
    )
