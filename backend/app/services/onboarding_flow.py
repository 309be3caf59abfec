"""Onboarding flow controller: validate → persist → advance.

Owns one provider's OnboardingRecord for the duration of a session and is
the only code that moves current_step.

State machine:
    BASIC_INFO → CONTACT → IDENTIFIER → SERVICES → PREVIEW → (completed)

    advance:  step i → i+1, guarded by the step's validation rules
    retreat:  step i → i-1 (i > 1), unguarded, not persisted
    complete: PREVIEW → completed, guarded by the PREVIEW rules

Guarantees:
    - advance() and complete() are not reentrant: a call made while another
      transition is in flight returns False and touches nothing.
    - Any error raised by advance() or complete() leaves the record and
      current_step exactly as they were.
    - Auto-save is debounced and fire-and-forget; its failures are logged
      and swallowed so typing is never interrupted.
"""

import asyncio
import logging
import uuid
from typing import Any

from app.core.config import settings
from app.services.onboarding_errors import (
    IdentifierConflictError,
    OnboardingStateError,
)
from app.services.onboarding_steps import reconcile_step
from app.services.onboarding_store import ProgressStore
from app.services.onboarding_types import (
    OnboardingFields,
    OnboardingRecord,
    OnboardingStep,
)
from app.services.onboarding_validation import (
    filled_services,
    require_valid_step,
    validate_step,
)
from app.services.username_availability import AvailabilityLookup

logger = logging.getLogger(__name__)

_MSG_ALREADY_COMPLETE = "Onboarding is already complete."
_MSG_NO_NEXT_STEP = "This is the last step. Complete onboarding to finish."
_MSG_NOT_ON_PREVIEW = "Onboarding can only be completed from the preview step."


class OnboardingFlow:
    """Step machine for one provider's onboarding wizard.

    Args:
        record: The record to drive (usually from load()).
        store: Persistence collaborator.
        availability: Username uniqueness lookup. When given, the IDENTIFIER
            step checks it before advancing.
        autosave: Whether update_fields() schedules a debounced save.
        autosave_debounce_seconds: Override of the configured debounce.
    """

    def __init__(
        self,
        record: OnboardingRecord,
        store: ProgressStore,
        availability: AvailabilityLookup | None = None,
        *,
        autosave: bool = True,
        autosave_debounce_seconds: float | None = None,
    ) -> None:
        self._record = record
        self._store = store
        self._availability = availability
        self._autosave = autosave
        self._debounce_seconds = (
            settings.onboarding_autosave_debounce_seconds
            if autosave_debounce_seconds is None
            else autosave_debounce_seconds
        )
        self._transition_lock = asyncio.Lock()
        self._autosave_task: asyncio.Task[None] | None = None

    @classmethod
    async def load(
        cls,
        owner_id: uuid.UUID,
        store: ProgressStore,
        availability: AvailabilityLookup | None = None,
        **kwargs: Any,
    ) -> "OnboardingFlow":
        """Resume (or start) the owner's onboarding.

        The resume step is reconciled against the stored data, so a stale
        counter never lands the user past a step whose data is missing.

        Args:
            owner_id: The authenticated user's id.
            store: Persistence collaborator.
            availability: Optional username uniqueness lookup.
            **kwargs: Passed to the constructor (autosave options).

        Returns:
            A flow positioned at the resume step.
        """
        record = await store.load_progress(owner_id)
        if record is None:
            record = OnboardingRecord(owner_id=owner_id)
        elif not record.completed:
            record.current_step = reconcile_step(int(record.current_step), record.fields)
        return cls(record, store, availability, **kwargs)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def owner_id(self) -> uuid.UUID:
        return self._record.owner_id

    @property
    def current_step(self) -> OnboardingStep:
        return self._record.current_step

    @property
    def fields(self) -> OnboardingFields:
        return self._record.fields

    @property
    def completed(self) -> bool:
        return self._record.completed

    @property
    def transition_in_flight(self) -> bool:
        """True while advance() or complete() is running."""
        return self._transition_lock.locked()

    @property
    def pending_autosave(self) -> asyncio.Task[None] | None:
        """The scheduled auto-save task, if one has not finished yet."""
        if self._autosave_task is not None and self._autosave_task.done():
            return None
        return self._autosave_task

    def snapshot(self) -> dict[str, object]:
        """Read-only summary for rendering."""
        record = self._record
        return {
            "owner_id": str(record.owner_id),
            "provider_id": str(record.provider_id) if record.provider_id else None,
            "current_step": int(record.current_step),
            "step_name": record.current_step.slug,
            "total_steps": len(OnboardingStep),
            "completed": record.completed,
            "completed_at": record.completed_at.isoformat() if record.completed_at else None,
            "step_error": None if record.completed else validate_step(
                record.current_step, record.fields
            ),
            "fields": record.fields.to_dict(),
        }

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def update_fields(self, **partial: object) -> None:
        """Merge field edits into the record without validating them.

        Raises:
            ValueError: If an unknown field name is passed.
            OnboardingStateError: If onboarding is already complete.
        """
        self._ensure_open()
        self._record.fields = self._record.fields.merged(partial)
        if self._autosave:
            self.schedule_autosave()

    def retreat(self) -> OnboardingStep:
        """Go back one step (no-op on the first step).

        Nothing is validated or persisted. Ignored while advance() or
        complete() is in flight; the current step is returned unchanged.

        Raises:
            OnboardingStateError: If onboarding is already complete.
        """
        self._ensure_open()
        if self._transition_lock.locked():
            logger.debug("Ignoring retreat for %s: transition in flight", self.owner_id)
            return self._record.current_step
        previous = self._record.current_step.previous()
        if previous is not self._record.current_step:
            logger.info(
                "Onboarding step retreat %s -> %s",
                self._record.current_step.slug,
                previous.slug,
            )
        self._record.current_step = previous
        return previous

    async def save(self) -> uuid.UUID:
        """Persist the current fields and step without validating them.

        Returns:
            The provider id assigned by the store.

        Raises:
            OnboardingStateError: If onboarding is already complete.
            IdentifierConflictError: If the username is taken.
            TransientError: If the store is unreachable.
        """
        self._ensure_open()
        self._cancel_autosave()
        return await self._persist()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def advance(self, **partial: object) -> bool:
        """Validate the current step and move to the next one.

        Args:
            **partial: Field edits to merge before validating.

        Returns:
            True if the step advanced, False if another transition was
            already in flight (the call is ignored).

        Raises:
            ValueError: If an unknown field name is passed.
            StepValidationError: If the current step's rules fail.
            IdentifierConflictError: If the username is taken.
            TransientError: If the store is unreachable.
            AuthExpiredError: If the session no longer maps to a user.
            OnboardingStateError: On the last step or after completion.
        """
        if self._transition_lock.locked():
            logger.debug("Ignoring advance for %s: transition in flight", self.owner_id)
            return False

        async with self._transition_lock:
            self._ensure_open()
            step = self._record.current_step
            if step is OnboardingStep.final():
                raise OnboardingStateError(_MSG_NO_NEXT_STEP)

            fields = self._record.fields.merged(partial) if partial else self._record.fields
            require_valid_step(step, fields)
            if step is OnboardingStep.IDENTIFIER:
                await self._require_available(fields.username)

            next_step = step.next()
            self._cancel_autosave()
            provider_id = await self._store.save_progress(self.owner_id, fields, next_step)
            if step >= OnboardingStep.SERVICES:
                await self._store.replace_services(
                    self.owner_id, filled_services(fields.services)
                )

            self._record.fields = fields
            self._record.provider_id = provider_id
            self._record.current_step = next_step
            logger.info(
                "Onboarding step advanced %s -> %s for %s",
                step.slug,
                next_step.slug,
                self.owner_id,
            )
            return True

    async def complete(self) -> bool:
        """Re-validate the preview step and close the record.

        Returns:
            True once completed, False if another transition was already
            in flight (the call is ignored).

        Raises:
            StepValidationError: If business info, username or services are
                missing.
            IdentifierConflictError: If the username is taken.
            TransientError: If the store is unreachable.
            AuthExpiredError: If the session no longer maps to a user.
            OnboardingStateError: If not on the preview step or already
                complete.
        """
        if self._transition_lock.locked():
            logger.debug("Ignoring complete for %s: transition in flight", self.owner_id)
            return False

        async with self._transition_lock:
            self._ensure_open()
            if self._record.current_step is not OnboardingStep.final():
                raise OnboardingStateError(_MSG_NOT_ON_PREVIEW)

            fields = self._record.fields
            require_valid_step(OnboardingStep.final(), fields)

            self._cancel_autosave()
            provider_id = await self._store.save_progress(
                self.owner_id, fields, OnboardingStep.final()
            )
            await self._store.replace_services(self.owner_id, filled_services(fields.services))
            completed_at = await self._store.mark_complete(self.owner_id)

            self._record.provider_id = provider_id
            self._record.completed = True
            self._record.completed_at = completed_at
            logger.info("Onboarding completed for %s", self.owner_id)
            return True

    # -------------------------------------------------------------------------
    # Auto-save
    # -------------------------------------------------------------------------

    def schedule_autosave(self) -> None:
        """(Re)start the debounce timer for a background save.

        Must be called from a running event loop. A pending save is
        cancelled, so a burst of edits produces one write.
        """
        self._cancel_autosave()
        self._autosave_task = asyncio.create_task(self._autosave_after_delay())

    def close(self) -> None:
        """Cancel any pending auto-save."""
        self._cancel_autosave()

    async def _autosave_after_delay(self) -> None:
        await asyncio.sleep(self._debounce_seconds)
        if self._record.completed or self._transition_lock.locked():
            return
        try:
            await self._persist()
        except Exception:
            # Logged only; the next edit or transition saves again.
            logger.warning("Auto-save failed for %s", self.owner_id, exc_info=True)

    def _cancel_autosave(self) -> None:
        task = self._autosave_task
        self._autosave_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _persist(self) -> uuid.UUID:
        provider_id = await self._store.save_progress(
            self.owner_id, self._record.fields, self._record.current_step
        )
        self._record.provider_id = provider_id
        return provider_id

    async def _require_available(self, username: str) -> None:
        if self._availability is None:
            return
        if not await self._availability.is_available(username.strip(), self.owner_id):
            raise IdentifierConflictError("username")

    def _ensure_open(self) -> None:
        if self._record.completed:
            raise OnboardingStateError(_MSG_ALREADY_COMPLETE)
