"""Persistence collaborators for the onboarding flow.

The flow controller talks to storage only through the ProgressStore
protocol. Stores report failures as typed onboarding errors, never as raw
driver exceptions:

    - unique violation on the username  → IdentifierConflictError("username")
    - connection/timeout failures       → TransientError
    - session user no longer exists     → AuthExpiredError

Two implementations:
    SqlProgressStore: providers/services/availability tables via
        ProviderRepository, bound to one request's AsyncSession.
    InMemoryProgressStore: dict-backed, for tests and local runs.
"""

import dataclasses
import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.provider import USERNAME_UNIQUE_CONSTRAINT, Provider
from app.models.service import ProviderService
from app.repositories.provider_repository import ProviderRepository
from app.services.onboarding_errors import (
    AuthExpiredError,
    IdentifierConflictError,
    TransientError,
)
from app.services.onboarding_steps import infer_step
from app.services.onboarding_types import (
    OnboardingFields,
    OnboardingRecord,
    OnboardingStep,
    ServiceEntry,
    canonical_username,
)
from app.services.onboarding_validation import (
    is_valid_instagram_handle,
    is_valid_phone,
    is_valid_postal_code,
    is_valid_username,
)

logger = logging.getLogger(__name__)

# Constraint name -> field reported to the user.
_CONFLICT_FIELDS: dict[str, str] = {
    USERNAME_UNIQUE_CONSTRAINT: "username",
}

_USER_FOREIGN_KEY = "providers_user_id_fkey"

DEFAULT_AVAILABILITY_DAYS = (1, 2, 3, 4, 5, 6)
"""Days seeded on completion (0 = Sunday), Monday to Saturday."""


# =============================================================================
# Protocol
# =============================================================================


class ProgressStore(Protocol):
    """Storage collaborator for onboarding progress."""

    async def load_progress(self, owner_id: uuid.UUID) -> OnboardingRecord | None:
        """Return the owner's record, or None if nothing was saved yet."""
        ...

    async def save_progress(
        self, owner_id: uuid.UUID, fields: OnboardingFields, step: OnboardingStep
    ) -> uuid.UUID:
        """Persist field values and the step marker; return the provider id."""
        ...

    async def replace_services(
        self, owner_id: uuid.UUID, services: Sequence[ServiceEntry]
    ) -> None:
        """Replace every stored service of the owner with the given list."""
        ...

    async def mark_complete(self, owner_id: uuid.UUID) -> datetime:
        """Stamp the record as completed; return the completion time."""
        ...

    async def is_available(
        self, candidate: str, exclude_owner_id: uuid.UUID | None = None
    ) -> bool:
        """Return True if no other owner holds the candidate username."""
        ...


# =============================================================================
# Conversions
# =============================================================================


def _blank_to_none(value: str, max_length: int | None = None) -> str | None:
    stripped = value.strip()
    if max_length is not None:
        stripped = stripped[:max_length]
    return stripped or None


def _if_valid(value: str, predicate: Callable[[str], bool]) -> str | None:
    stripped = value.strip()
    return stripped if stripped and predicate(stripped) else None


def _to_column_values(fields: OnboardingFields) -> dict[str, object]:
    """Map wizard fields to provider column values.

    Empty strings become NULL. Auto-save persists unvalidated input, so
    values that would violate a column constraint (malformed phone, postal
    code or username; over-long text) are dropped or truncated here rather
    than rejected by the database.

    A cleared username clears the stored handle. A malformed one is left
    out, so the stored handle (and what a reload shows) stays the last
    valid one.
    """
    handle = fields.instagram_handle.strip().removeprefix("@")
    values: dict[str, object] = {
        "business_name": _blank_to_none(fields.business_name, 100),
        "category": _blank_to_none(fields.category, 100),
        "bio": _blank_to_none(fields.bio),
        "address": _blank_to_none(fields.address, 255),
        "instagram_handle": _if_valid(handle, is_valid_instagram_handle),
        "whatsapp_phone": _if_valid(fields.whatsapp_phone, is_valid_phone),
        "colonia": _blank_to_none(fields.colonia, 255),
        "postal_code": _if_valid(fields.postal_code, is_valid_postal_code),
        "latitude": None if fields.latitude is None else Decimal(str(fields.latitude)),
        "longitude": None if fields.longitude is None else Decimal(str(fields.longitude)),
        "service_radius_km": fields.service_radius_km,
        "prefers_local_clients": fields.prefers_local_clients,
    }
    username = canonical_username(fields.username)
    if not username:
        values["username"] = None
    elif is_valid_username(username):
        values["username"] = username
    return values


def _fields_from_provider(
    provider: Provider, services: Sequence[ProviderService]
) -> OnboardingFields:
    return OnboardingFields(
        business_name=provider.business_name or "",
        category=provider.category or "",
        bio=provider.bio or "",
        username=provider.username or "",
        whatsapp_phone=provider.whatsapp_phone or "",
        address=provider.address or "",
        instagram_handle=provider.instagram_handle or "",
        colonia=provider.colonia or "",
        postal_code=provider.postal_code or "",
        latitude=None if provider.latitude is None else float(provider.latitude),
        longitude=None if provider.longitude is None else float(provider.longitude),
        service_radius_km=provider.service_radius_km,
        prefers_local_clients=provider.prefers_local_clients,
        services=tuple(
            ServiceEntry(
                name=s.name,
                price=s.price,
                duration_minutes=s.duration_minutes,
                description=s.description or "",
                category=s.category,
            )
            for s in services
        ),
    )


def _service_rows(services: Sequence[ServiceEntry]) -> list[dict[str, object]]:
    return [
        {
            "name": s.name.strip(),
            "price": s.price,
            "duration_minutes": s.duration_minutes,
            "description": s.description.strip(),
            "category": s.category,
        }
        for s in services
    ]


def _stored_step(raw: int | None, fields: OnboardingFields) -> OnboardingStep:
    """Stored counter as a step, falling back to inference when out of range."""
    return OnboardingStep.from_stored(raw) or infer_step(fields)


# =============================================================================
# SQL Store
# =============================================================================


class SqlProgressStore:
    """ProgressStore over the providers tables for one request session.

    Writes go through savepoints, so a rejected write leaves the session
    usable; the request-level commit happens in get_db().

    Args:
        db: Request-scoped async session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def load_progress(self, owner_id: uuid.UUID) -> OnboardingRecord | None:
        """Load the owner's provider row and services.

        Raises:
            AuthExpiredError: If the owner has no user row.
            TransientError: If the database is unreachable.
        """
        try:
            provider = await ProviderRepository.get_by_user_id(self._db, owner_id)
            if provider is None:
                await self._require_user(owner_id)
                return None
            services = await ProviderRepository.list_services(self._db, provider.id)
        except (OperationalError, InterfaceError, TimeoutError) as exc:
            raise self._transient("load_progress", exc) from exc

        fields = _fields_from_provider(provider, services)
        return OnboardingRecord(
            owner_id=owner_id,
            current_step=_stored_step(provider.onboarding_step, fields),
            fields=fields,
            provider_id=provider.id,
            completed=provider.profile_completed,
            completed_at=provider.completed_at,
        )

    async def save_progress(
        self, owner_id: uuid.UUID, fields: OnboardingFields, step: OnboardingStep
    ) -> uuid.UUID:
        """Upsert the provider row with the current fields and step.

        Raises:
            IdentifierConflictError: If the username belongs to another provider.
            AuthExpiredError: If the owner has no user row.
            TransientError: If the database is unreachable.
        """
        try:
            existing = await ProviderRepository.get_by_user_id(self._db, owner_id)
            if existing is None:
                await self._require_user(owner_id)
            provider = await ProviderRepository.save_progress(
                self._db, owner_id, _to_column_values(fields), int(step)
            )
        except IntegrityError as exc:
            raise self._integrity_error(exc) from exc
        except (OperationalError, InterfaceError, TimeoutError) as exc:
            raise self._transient("save_progress", exc) from exc
        return provider.id

    async def replace_services(
        self, owner_id: uuid.UUID, services: Sequence[ServiceEntry]
    ) -> None:
        """Delete the owner's services and insert the given list.

        Raises:
            AuthExpiredError: If the owner has no provider row yet.
            TransientError: If the database rejects or cannot take the write.
        """
        try:
            provider = await self._require_provider(owner_id)
            await ProviderRepository.replace_services(
                self._db, provider.id, _service_rows(services)
            )
        except IntegrityError as exc:
            # Service rows are validated before they get here; a constraint
            # violation means the data changed under us.
            raise self._transient("replace_services", exc) from exc
        except (OperationalError, InterfaceError, TimeoutError) as exc:
            raise self._transient("replace_services", exc) from exc

    async def mark_complete(self, owner_id: uuid.UUID) -> datetime:
        """Stamp completion and seed the default weekly schedule.

        A failure to seed the schedule is logged and does not undo the
        completion: the provider can set hours later.

        Raises:
            AuthExpiredError: If the owner has no provider row.
            TransientError: If the database is unreachable.
        """
        completed_at = datetime.now(UTC)
        try:
            provider = await self._require_provider(owner_id)
            await ProviderRepository.mark_complete(
                self._db, provider.id, completed_at, int(OnboardingStep.final())
            )
        except (OperationalError, InterfaceError, TimeoutError) as exc:
            raise self._transient("mark_complete", exc) from exc

        try:
            async with self._db.begin_nested():
                await ProviderRepository.seed_default_availability(self._db, provider.id)
        except SQLAlchemyError:
            logger.warning(
                "Default availability not created for provider %s",
                provider.id,
                exc_info=True,
            )
        return completed_at

    async def is_available(
        self, candidate: str, exclude_owner_id: uuid.UUID | None = None
    ) -> bool:
        """Check username uniqueness against the providers table.

        Raises:
            TransientError: If the database is unreachable.
        """
        try:
            taken = await ProviderRepository.username_taken(
                self._db, canonical_username(candidate), exclude_owner_id
            )
        except (OperationalError, InterfaceError, TimeoutError) as exc:
            raise self._transient("is_available", exc) from exc
        return not taken

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _require_user(self, owner_id: uuid.UUID) -> None:
        if not await ProviderRepository.user_exists(self._db, owner_id):
            logger.warning("Onboarding session for missing user %s", owner_id)
            raise AuthExpiredError()

    async def _require_provider(self, owner_id: uuid.UUID) -> Provider:
        provider = await ProviderRepository.get_by_user_id(self._db, owner_id)
        if provider is None:
            logger.warning("No provider row for user %s", owner_id)
            raise AuthExpiredError()
        return provider

    @staticmethod
    def _integrity_error(exc: IntegrityError) -> Exception:
        detail = str(exc.orig)
        if _USER_FOREIGN_KEY in detail:
            logger.warning("Provider write rejected: user row is gone")
            return AuthExpiredError()
        for constraint, field in _CONFLICT_FIELDS.items():
            if constraint in detail:
                logger.warning("Provider write rejected: %s already taken", field)
                return IdentifierConflictError(field)
        logger.warning("Provider write rejected by constraint: %s", detail)
        return IdentifierConflictError("provider")

    @staticmethod
    def _transient(operation: str, exc: Exception) -> TransientError:
        logger.warning("Onboarding %s failed: %s", operation, type(exc).__name__)
        return TransientError()


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemoryProgressStore:
    """Dict-backed ProgressStore.

    Args:
        known_owners: If given, owners outside this set raise AuthExpiredError,
            mirroring a session whose user row was deleted.
    """

    def __init__(self, known_owners: set[uuid.UUID] | None = None) -> None:
        self._known_owners = known_owners
        self._records: dict[uuid.UUID, OnboardingRecord] = {}
        self._provider_ids: dict[uuid.UUID, uuid.UUID] = {}
        self.availability: dict[uuid.UUID, tuple[int, ...]] = {}
        self.save_calls = 0
        self._failure: Exception | None = None

    def fail_next(self, exc: Exception) -> None:
        """Make the next store call raise exc."""
        self._failure = exc

    def _check(self, owner_id: uuid.UUID) -> None:
        if self._failure is not None:
            failure, self._failure = self._failure, None
            raise failure
        if self._known_owners is not None and owner_id not in self._known_owners:
            raise AuthExpiredError()

    async def load_progress(self, owner_id: uuid.UUID) -> OnboardingRecord | None:
        self._check(owner_id)
        record = self._records.get(owner_id)
        if record is None:
            return None
        return OnboardingRecord(
            owner_id=record.owner_id,
            current_step=record.current_step,
            fields=record.fields,
            provider_id=record.provider_id,
            completed=record.completed,
            completed_at=record.completed_at,
        )

    async def save_progress(
        self, owner_id: uuid.UUID, fields: OnboardingFields, step: OnboardingStep
    ) -> uuid.UUID:
        self._check(owner_id)
        username = canonical_username(fields.username)
        if username and not await self.is_available(username, owner_id):
            raise IdentifierConflictError("username")

        self.save_calls += 1
        provider_id = self._provider_ids.setdefault(owner_id, uuid.uuid4())
        previous = self._records.get(owner_id)
        # Services are only written through replace_services().
        stored_services = previous.fields.services if previous else ()
        self._records[owner_id] = OnboardingRecord(
            owner_id=owner_id,
            current_step=step,
            fields=dataclasses.replace(fields, services=stored_services),
            provider_id=provider_id,
            completed=previous.completed if previous else False,
            completed_at=previous.completed_at if previous else None,
        )
        return provider_id

    async def replace_services(
        self, owner_id: uuid.UUID, services: Sequence[ServiceEntry]
    ) -> None:
        self._check(owner_id)
        record = self._records.get(owner_id)
        if record is None:
            raise AuthExpiredError()
        record.fields = record.fields.merged({"services": list(services)})

    async def mark_complete(self, owner_id: uuid.UUID) -> datetime:
        self._check(owner_id)
        record = self._records.get(owner_id)
        if record is None:
            raise AuthExpiredError()
        completed_at = datetime.now(UTC)
        record.completed = True
        record.completed_at = completed_at
        record.current_step = OnboardingStep.final()
        self.availability.setdefault(owner_id, DEFAULT_AVAILABILITY_DAYS)
        return completed_at

    async def is_available(
        self, candidate: str, exclude_owner_id: uuid.UUID | None = None
    ) -> bool:
        name = canonical_username(candidate)
        return not any(
            canonical_username(record.fields.username) == name
            for owner, record in self._records.items()
            if owner != exclude_owner_id
        )
