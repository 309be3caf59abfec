"""Availability model - weekly opening hours for a provider.

Completing onboarding seeds a default schedule so a new profile is bookable
immediately.
"""

import uuid
from datetime import time

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Time, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin
from app.models.provider import Provider


class Availability(Base, TimestampMixin):
    """One weekly availability slot.

    Attributes:
        day_of_week: 0 = Sunday ... 6 = Saturday.
        start_time: Slot opening time (local).
        end_time: Slot closing time (local).
    """

    __tablename__ = "availability"

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
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time(), nullable=False)
    end_time: Mapped[time] = mapped_column(Time(), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
        default=True,
    )

    provider: Mapped[Provider] = relationship("Provider", back_populates="availability")

    __table_args__ = (
        CheckConstraint(
            "day_of_week BETWEEN 0 AND 6",
            name="ck_availability_day_of_week",
        ),
        CheckConstraint("end_time > start_time", name="ck_availability_time_order"),
    )
