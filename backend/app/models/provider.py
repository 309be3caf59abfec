"""Provider model - a service provider's public business profile.

One row per user. The onboarding wizard fills it in incrementally: every
column except user_id stays nullable until the wizard completes, and
onboarding_step records the last step the user reached.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.availability import Availability
    from app.models.service import ProviderService
    from app.models.user import User

_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"

USERNAME_UNIQUE_CONSTRAINT = "providers_username_key"
"""Unique index on lower(username); the persistence layer maps violations
of this name to an identifier conflict."""


class Provider(Base, TimestampMixin):
    """Business profile built by the onboarding wizard.

    Attributes:
        id: UUID primary key.
        user_id: Owning user (one provider per user).
        business_name: Public business name.
        category: Main business category slug.
        username: Unique public handle (bookeasy.mx/@username).
        whatsapp_phone: Contact phone in E.164 format.
        onboarding_step: Last wizard step reached (1-5).
        profile_completed: True once the wizard has been completed.
        completed_at: When the wizard was completed.
    """

    __tablename__ = "providers"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    # Basic info
    business_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text(), nullable=True)

    # Contact and location
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instagram_handle: Mapped[str | None] = mapped_column(String(30), nullable=True)
    whatsapp_phone: Mapped[str | None] = mapped_column(String(16), nullable=True)
    colonia: Mapped[str | None] = mapped_column(String(255), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(5), nullable=True)
    latitude: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    service_radius_km: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("5"),
        default=5,
    )
    prefers_local_clients: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
        default=True,
    )

    # Identifier
    username: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Wizard progress
    onboarding_step: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("1"),
        default=1,
    )
    profile_completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="provider")
    services: Mapped[list["ProviderService"]] = relationship(
        "ProviderService",
        back_populates="provider",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        order_by="ProviderService.created_at",
    )
    availability: Mapped[list["Availability"]] = relationship(
        "Availability",
        back_populates="provider",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
    )

    __table_args__ = (
        CheckConstraint(
            "onboarding_step BETWEEN 1 AND 5",
            name="ck_providers_onboarding_step",
        ),
        CheckConstraint(
            "username IS NULL OR username ~ '^[a-zA-Z0-9_-]{3,30}$'",
            name="ck_providers_username_format",
        ),
        CheckConstraint(
            "whatsapp_phone IS NULL OR whatsapp_phone ~ '^\\+[1-9][0-9]{1,14}$'",
            name="ck_providers_whatsapp_phone_format",
        ),
    )


# Handles are case-insensitive: "ana-nails" and "ANA-NAILS" are one handle.
Index(USERNAME_UNIQUE_CONSTRAINT, func.lower(Provider.username), unique=True)
