"""Types for the provider onboarding flow.

Defines the canonical wizard steps, the flat field record the wizard edits,
and the in-memory onboarding record the flow controller owns.

Step order is business-info first:
    BASIC_INFO → CONTACT → IDENTIFIER → SERVICES → PREVIEW

Steps are named enum members; their integer values are what the providers
table stores in onboarding_step.
"""

import dataclasses
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import IntEnum

from app.core.input_sanitization import sanitize_text

# =============================================================================
# Steps
# =============================================================================


class OnboardingStep(IntEnum):
    """Wizard steps in canonical order.

    Values are 1-indexed and match the providers.onboarding_step column.
    """

    BASIC_INFO = 1
    CONTACT = 2
    IDENTIFIER = 3
    SERVICES = 4
    PREVIEW = 5

    @classmethod
    def first(cls) -> "OnboardingStep":
        """Return the initial step."""
        return cls.BASIC_INFO

    @classmethod
    def final(cls) -> "OnboardingStep":
        """Return the terminal (preview) step."""
        return cls.PREVIEW

    @classmethod
    def from_stored(cls, value: int | None) -> "OnboardingStep | None":
        """Convert a stored step counter to a step.

        Args:
            value: Raw onboarding_step value from storage.

        Returns:
            The matching step, or None if missing or out of range.
        """
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def slug(self) -> str:
        """Lowercase name used in API payloads (e.g. "basic_info")."""
        return self.name.lower()

    def next(self) -> "OnboardingStep":
        """Return the following step.

        Raises:
            ValueError: If called on the final step.
        """
        if self is OnboardingStep.PREVIEW:
            raise ValueError("PREVIEW has no next step")
        return OnboardingStep(self.value + 1)

    def previous(self) -> "OnboardingStep":
        """Return the preceding step, or self on the first step."""
        if self is OnboardingStep.BASIC_INFO:
            return self
        return OnboardingStep(self.value - 1)


# =============================================================================
# Field Records
# =============================================================================

# Free-text fields rendered verbatim on public profile pages.
_SANITIZED_FIELDS: frozenset[str] = frozenset({"bio", "address", "colonia"})

_DESCRIPTION_MAX_LENGTH = 500


def canonical_username(value: str) -> str:
    """Stored form of a username: trimmed and lowercased.

    Handles are compared case-insensitively, so "ANA-Nails" and "ana-nails"
    name the same public profile.
    """
    return value.strip().lower()


def _to_decimal(raw: object) -> Decimal | None:
    """Coerce a user-supplied price to Decimal.

    None means nothing was entered. Anything entered that is not a finite
    number becomes 0, which the price rule rejects.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        return Decimal(0)
    return value if value.is_finite() else Decimal(0)


def _to_int(raw: object) -> int:
    """Coerce a user-supplied duration to int, defaulting to 0."""
    if raw is None or raw == "":
        return 0
    try:
        return int(str(raw).strip())
    except ValueError:
        return 0


@dataclass(frozen=True)
class ServiceEntry:
    """One service row as edited in the wizard.

    Attributes:
        name: Service name.
        price: Price; None means "not entered yet".
        duration_minutes: Appointment length; 0 means "not entered yet".
        description: Optional description.
        category: Service category slug.
    """

    name: str = ""
    price: Decimal | None = None
    duration_minutes: int = 0
    description: str = ""
    category: str = "other"

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "ServiceEntry":
        """Build an entry from loosely typed input (API payload or form data).

        Accepts "duration" as an alias of "duration_minutes".
        """
        duration = data.get("duration_minutes", data.get("duration"))
        return cls(
            name=str(data.get("name") or ""),
            price=_to_decimal(data.get("price")),
            duration_minutes=_to_int(duration),
            description=sanitize_text(
                str(data.get("description") or ""), _DESCRIPTION_MAX_LENGTH
            ),
            category=str(data.get("category") or "other"),
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize for API responses."""
        return {
            "name": self.name,
            "price": None if self.price is None else str(self.price),
            "duration_minutes": self.duration_minutes,
            "description": self.description,
            "category": self.category,
        }


@dataclass(frozen=True)
class OnboardingFields:
    """Flat record of every wizard field.

    Each field is independently empty until filled. The record is the union
    of everything the user has entered; navigating backward never clears it.
    """

    business_name: str = ""
    category: str = ""
    bio: str = ""
    username: str = ""
    whatsapp_phone: str = ""
    address: str = ""
    instagram_handle: str = ""
    colonia: str = ""
    postal_code: str = ""
    latitude: float | None = None
    longitude: float | None = None
    service_radius_km: int = 5
    prefers_local_clients: bool = True
    services: tuple[ServiceEntry, ...] = ()

    @classmethod
    def field_names(cls) -> frozenset[str]:
        """Names accepted by merged()."""
        return frozenset(f.name for f in dataclasses.fields(cls))

    def merged(self, partial: Mapping[str, object]) -> "OnboardingFields":
        """Return a copy with partial updates applied.

        No validation happens here beyond type coercion: users may type
        anything, and rules are enforced only at step transitions.

        Args:
            partial: Field names and new values. "services" accepts a list of
                ServiceEntry objects or mappings.

        Returns:
            New OnboardingFields with the updates merged in.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(partial) - self.field_names()
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        updates: dict[str, object] = {}
        for name, value in partial.items():
            if name == "services":
                updates[name] = _coerce_services(value)  # type: ignore[arg-type]
            elif name == "username":
                updates[name] = canonical_username(value if isinstance(value, str) else "")
            elif name in _SANITIZED_FIELDS:
                updates[name] = sanitize_text(value if isinstance(value, str) else "")
            elif value is None and name in ("latitude", "longitude"):
                updates[name] = None
            elif value is None:
                updates[name] = getattr(OnboardingFields(), name)
            else:
                updates[name] = value
        return dataclasses.replace(self, **updates)

    def to_dict(self) -> dict[str, object]:
        """Serialize for API responses."""
        data = {
            f.name: getattr(self, f.name)
            for f in dataclasses.fields(self)
            if f.name != "services"
        }
        data["services"] = [s.to_dict() for s in self.services]
        return data


def _coerce_services(
    value: Iterable[ServiceEntry | Mapping[str, object]] | None,
) -> tuple[ServiceEntry, ...]:
    """Normalize a services update to a tuple of ServiceEntry."""
    if value is None:
        return ()
    entries: list[ServiceEntry] = []
    for item in value:
        if isinstance(item, ServiceEntry):
            entries.append(item)
        else:
            entries.append(ServiceEntry.from_mapping(item))
    return tuple(entries)


# =============================================================================
# Onboarding Record
# =============================================================================


@dataclass
class OnboardingRecord:
    """A provider's persisted partial or complete wizard state.

    Attributes:
        owner_id: The user the record belongs to.
        current_step: Step the wizard shows.
        fields: Latest known field values.
        provider_id: Provider row id once the store has created it.
        completed: True once completion succeeded; the record is then closed.
        completed_at: Completion timestamp.
    """

    owner_id: uuid.UUID
    current_step: OnboardingStep = OnboardingStep.BASIC_INFO
    fields: OnboardingFields = field(default_factory=OnboardingFields)
    provider_id: uuid.UUID | None = None
    completed: bool = False
    completed_at: datetime | None = None
