"""Repository for provider onboarding tables.

Provides database access for providers, their services and their weekly
availability. Stateless: every method takes the AsyncSession so the caller
controls transaction boundaries.
"""

import uuid
from collections.abc import Mapping, Sequence
from datetime import datetime, time

from sqlalchemy import delete, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.availability import Availability
from app.models.provider import Provider
from app.models.service import ProviderService
from app.models.user import User

# Fields that may be written via ProviderRepository.save_progress().
# Security: Never add 'id', 'user_id', 'profile_completed' or 'completed_at'.
# Completion is only set through mark_complete().
_WRITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "business_name",
        "category",
        "bio",
        "address",
        "instagram_handle",
        "whatsapp_phone",
        "colonia",
        "postal_code",
        "latitude",
        "longitude",
        "service_radius_km",
        "prefers_local_clients",
        "username",
    }
)

# Monday to Saturday, 09:00-19:00 (0 = Sunday)
_DEFAULT_AVAILABILITY_DAYS = (1, 2, 3, 4, 5, 6)
_DEFAULT_OPENING = time(9, 0)
_DEFAULT_CLOSING = time(19, 0)


class ProviderRepository:
    """Stateless repository for provider onboarding tables."""

    @staticmethod
    async def user_exists(db: AsyncSession, user_id: uuid.UUID) -> bool:
        """Check whether a user row exists.

        Args:
            db: Async database session.
            user_id: UUID of the user.

        Returns:
            True if the user exists.
        """
        result = await db.execute(select(exists().where(User.id == user_id)))
        return bool(result.scalar())

    @staticmethod
    async def get_by_user_id(db: AsyncSession, user_id: uuid.UUID) -> Provider | None:
        """Fetch the provider owned by a user.

        Args:
            db: Async database session.
            user_id: Owning user's UUID.

        Returns:
            Provider if found, None otherwise.
        """
        stmt = select(Provider).where(Provider.user_id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_services(
        db: AsyncSession, provider_id: uuid.UUID
    ) -> list[ProviderService]:
        """List a provider's services in insertion order.

        Args:
            db: Async database session.
            provider_id: Provider UUID.

        Returns:
            Services ordered by created_at, then id.
        """
        stmt = (
            select(ProviderService)
            .where(ProviderService.provider_id == provider_id)
            .order_by(ProviderService.created_at, ProviderService.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def username_taken(
        db: AsyncSession,
        username: str,
        exclude_user_id: uuid.UUID | None = None,
    ) -> bool:
        """Check whether another provider already holds a username.

        The comparison ignores case, matching the unique index on
        lower(username).

        Args:
            db: Async database session.
            username: Candidate username.
            exclude_user_id: Owner whose own username should not count.

        Returns:
            True if a different provider uses the username.
        """
        condition = func.lower(Provider.username) == username.strip().lower()
        if exclude_user_id is not None:
            condition = condition & (Provider.user_id != exclude_user_id)
        result = await db.execute(select(exists().where(condition)))
        return bool(result.scalar())

    @staticmethod
    async def save_progress(
        db: AsyncSession,
        user_id: uuid.UUID,
        values: Mapping[str, object],
        step: int,
    ) -> Provider:
        """Create or update the user's provider row with wizard progress.

        An unchanged username is not rewritten, so re-saving a handle never
        trips the unique index. A username of None clears the handle; leave
        the key out to keep the stored one.

        Args:
            db: Async database session.
            user_id: Owning user's UUID.
            values: Column values to write (subset of _WRITABLE_FIELDS).
            step: Wizard step to record in onboarding_step.

        Returns:
            The created or updated Provider.

        Raises:
            ValueError: If an unknown field name is passed.
            sqlalchemy.exc.IntegrityError: If a unique or check constraint
                rejects the values (raised inside a savepoint, so the
                session stays usable).
        """
        unknown = set(values) - _WRITABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        to_write = dict(values)
        provider = await ProviderRepository.get_by_user_id(db, user_id)
        if provider is not None and to_write.get("username") == provider.username:
            to_write.pop("username", None)

        async with db.begin_nested():
            if provider is None:
                provider = Provider(user_id=user_id, onboarding_step=step, **to_write)
                db.add(provider)
            else:
                for field, value in to_write.items():
                    setattr(provider, field, value)
                provider.onboarding_step = step
            await db.flush()
        await db.refresh(provider)
        return provider

    @staticmethod
    async def replace_services(
        db: AsyncSession,
        provider_id: uuid.UUID,
        services: Sequence[Mapping[str, object]],
    ) -> int:
        """Replace all of a provider's services with a new list.

        Args:
            db: Async database session.
            provider_id: Provider UUID.
            services: Rows with name, price, duration_minutes, description,
                category.

        Returns:
            Number of services inserted.
        """
        async with db.begin_nested():
            await db.execute(
                delete(ProviderService).where(
                    ProviderService.provider_id == provider_id
                )
            )
            for service in services:
                db.add(
                    ProviderService(
                        provider_id=provider_id,
                        name=str(service["name"]),
                        price=service["price"],
                        duration_minutes=int(service["duration_minutes"]),  # type: ignore[call-overload]
                        description=service.get("description") or None,
                        category=str(service.get("category") or "other"),
                        is_active=True,
                    )
                )
            await db.flush()
        return len(services)

    @staticmethod
    async def mark_complete(
        db: AsyncSession,
        provider_id: uuid.UUID,
        completed_at: datetime,
        final_step: int,
    ) -> Provider | None:
        """Flag a provider's onboarding as complete.

        Args:
            db: Async database session.
            provider_id: Provider UUID.
            completed_at: Completion timestamp.
            final_step: Step value to record (the preview step).

        Returns:
            Updated Provider, or None if it does not exist.
        """
        provider = await db.get(Provider, provider_id)
        if provider is None:
            return None
        provider.profile_completed = True
        provider.completed_at = completed_at
        provider.onboarding_step = final_step
        await db.flush()
        await db.refresh(provider)
        return provider

    @staticmethod
    async def seed_default_availability(
        db: AsyncSession, provider_id: uuid.UUID
    ) -> int:
        """Create the default weekly schedule if the provider has none.

        Monday to Saturday, 09:00-19:00.

        Args:
            db: Async database session.
            provider_id: Provider UUID.

        Returns:
            Number of slots created (0 if a schedule already existed).
        """
        result = await db.execute(
            select(func.count())
            .select_from(Availability)
            .where(Availability.provider_id == provider_id)
        )
        if result.scalar_one() > 0:
            return 0

        for day in _DEFAULT_AVAILABILITY_DAYS:
            db.add(
                Availability(
                    provider_id=provider_id,
                    day_of_week=day,
                    start_time=_DEFAULT_OPENING,
                    end_time=_DEFAULT_CLOSING,
                )
            )
        await db.flush()
        return len(_DEFAULT_AVAILABILITY_DAYS)
