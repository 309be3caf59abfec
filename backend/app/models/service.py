"""ProviderService model - a bookable service offered by a provider.

Onboarding writes this table with replace-all semantics: every save deletes
the provider's rows and inserts the current list.
"""

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.provider import Provider


class ProviderService(Base, TimestampMixin):
    """Service offered by a provider.

    Attributes:
        id: UUID primary key.
        provider_id: Owning provider.
        name: Display name (2-100 chars).
        price: Price in MXN, strictly positive.
        duration_minutes: Appointment length (15-480).
        description: Optional free text.
        category: Service category slug.
        is_active: Whether the service is bookable.
    """

    __tablename__ = "services"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)
    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        server_default=text("'other'"),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
        default=True,
    )

    provider: Mapped["Provider"] = relationship("Provider", back_populates="services")

    __table_args__ = (
        CheckConstraint("price > 0", name="ck_services_price_positive"),
        CheckConstraint(
            "duration_minutes BETWEEN 15 AND 480",
            name="ck_services_duration_range",
        ),
    )
