"""Username suggestion and debounced availability checking.

The username is the provider's public handle (bookeasy.mx/@username), so it
must be unique. Availability is checked asynchronously while the user types:
each keystroke issues a new check, a short debounce collapses bursts, and
only the most recently issued check may publish its result. A slow lookup
for an old candidate can never overwrite the answer for a newer one.
"""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Protocol

from app.core.config import settings
from app.services.onboarding_types import canonical_username
from app.services.onboarding_validation import (
    MSG_USERNAME_UNAVAILABLE,
    USERNAME_MAX_LENGTH,
    is_valid_username,
)

logger = logging.getLogger(__name__)

_SUGGEST_STRIP_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")

MSG_USERNAME_INVALID = (
    "Usernames are 3-30 characters: letters, numbers, hyphens and underscores."
)


# =============================================================================
# Helpers
# =============================================================================


def suggest_username(business_name: str) -> str:
    """Derive a username suggestion from a business name.

    Lowercases, drops anything but letters, digits and spaces, joins words
    with hyphens and truncates to the maximum username length.

    Args:
        business_name: Business name as typed.

    Returns:
        Suggested username (may be shorter than the minimum length if the
        name has few usable characters).
    """
    cleaned = _SUGGEST_STRIP_RE.sub("", business_name.lower()).strip()
    return _WHITESPACE_RE.sub("-", cleaned)[:USERNAME_MAX_LENGTH]


# =============================================================================
# Lookup Protocol
# =============================================================================


class AvailabilityLookup(Protocol):
    """Uniqueness collaborator for public identifiers."""

    async def is_available(
        self, candidate: str, exclude_owner_id: uuid.UUID | None = None
    ) -> bool:
        """Return True if no other owner holds the candidate username."""
        ...


@dataclass(frozen=True)
class AvailabilityResult:
    """Outcome of one availability check.

    Attributes:
        candidate: The username that was checked.
        available: True if the username can be claimed.
        reason: User-facing explanation when not available.
    """

    candidate: str
    available: bool
    reason: str | None = None


# =============================================================================
# Checker
# =============================================================================


class UsernameAvailabilityChecker:
    """Debounced, cancellable availability checks keyed on the latest input.

    Results are ordered by issuance, not completion: a check returns None
    (and publishes nothing) once a newer check has been issued.
    """

    def __init__(
        self,
        lookup: AvailabilityLookup,
        *,
        debounce_seconds: float | None = None,
    ) -> None:
        self._lookup = lookup
        self._debounce_seconds = (
            settings.onboarding_username_debounce_seconds
            if debounce_seconds is None
            else debounce_seconds
        )
        self._issued = 0
        self._pending: asyncio.Task[bool] | None = None
        self._latest: AvailabilityResult | None = None

    @property
    def latest(self) -> AvailabilityResult | None:
        """Result of the most recently issued check that finished."""
        return self._latest

    def cancel(self) -> None:
        """Cancel any in-flight check and invalidate its result."""
        self._issued += 1
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def check(
        self,
        candidate: str,
        exclude_owner_id: uuid.UUID | None = None,
    ) -> AvailabilityResult | None:
        """Check a candidate username, superseding any earlier check.

        Args:
            candidate: Username as typed; checked case-insensitively.
            exclude_owner_id: Owner whose current username counts as free
                (a provider re-confirming their own handle).

        Returns:
            The result, or None if a newer check was issued meanwhile.
        """
        self.cancel()
        ticket = self._issued
        name = canonical_username(candidate)

        if not is_valid_username(name):
            result = AvailabilityResult(name, available=False, reason=MSG_USERNAME_INVALID)
            self._latest = result
            return result

        task = asyncio.create_task(self._debounced_lookup(name, exclude_owner_id))
        self._pending = task
        try:
            available = await task
        except asyncio.CancelledError:
            if ticket != self._issued:
                logger.debug("Availability check for %r superseded", name)
                return None
            raise

        if ticket != self._issued:
            logger.debug("Discarding stale availability result for %r", name)
            return None

        self._pending = None
        result = AvailabilityResult(
            name,
            available=available,
            reason=None if available else MSG_USERNAME_UNAVAILABLE,
        )
        self._latest = result
        return result

    async def _debounced_lookup(
        self, candidate: str, exclude_owner_id: uuid.UUID | None
    ) -> bool:
        if self._debounce_seconds > 0:
            await asyncio.sleep(self._debounce_seconds)
        return await self._lookup.is_available(candidate, exclude_owner_id)
