"""Create onboarding tables: users, providers, services, availability.

Revision ID: 001_onboarding_tables
Revises: 000_enable_extensions
Create Date: 2026-10-19

providers.username is unique regardless of case, through the expression
index providers_username_key on lower(username); the application maps
violations of that name to an "username already taken" error.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_onboarding_tables"
down_revision: str | None = "000_enable_extensions"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # Users - mirrors accounts issued by the auth service
    op.create_table(
        "users",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("email", name="users_email_key"),
    )

    # Providers - one business profile per user, filled in by the wizard
    op.create_table(
        "providers",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="providers_user_id_fkey"),
            nullable=False,
        ),
        sa.Column("business_name", sa.String(100), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("instagram_handle", sa.String(30), nullable=True),
        sa.Column("whatsapp_phone", sa.String(16), nullable=True),
        sa.Column("colonia", sa.String(255), nullable=True),
        sa.Column("postal_code", sa.String(5), nullable=True),
        sa.Column("latitude", sa.Numeric(9, 6), nullable=True),
        sa.Column("longitude", sa.Numeric(9, 6), nullable=True),
        sa.Column(
            "service_radius_km", sa.Integer(), nullable=False, server_default="5"
        ),
        sa.Column(
            "prefers_local_clients",
            sa.Boolean(),
            nullable=False,
            server_default="true",
        ),
        sa.Column("username", sa.String(30), nullable=True),
        sa.Column(
            "onboarding_step", sa.Integer(), nullable=False, server_default="1"
        ),
        sa.Column(
            "profile_completed",
            sa.Boolean(),
            nullable=False,
            server_default="false",
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="providers_user_id_key"),
        sa.CheckConstraint(
            "onboarding_step BETWEEN 1 AND 5",
            name="ck_providers_onboarding_step",
        ),
        sa.CheckConstraint(
            "username IS NULL OR username ~ '^[a-zA-Z0-9_-]{3,30}$'",
            name="ck_providers_username_format",
        ),
        sa.CheckConstraint(
            "whatsapp_phone IS NULL OR whatsapp_phone ~ '^\\+[1-9][0-9]{1,14}$'",
            name="ck_providers_whatsapp_phone_format",
        ),
    )
    op.create_index(
        "providers_username_key",
        "providers",
        [sa.text("lower(username)")],
        unique=True,
    )

    # Services - replaced wholesale on every wizard save
    op.create_table(
        "services",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "provider_id",
            sa.UUID(),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "category", sa.String(50), nullable=False, server_default="other"
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.CheckConstraint("price > 0", name="ck_services_price_positive"),
        sa.CheckConstraint(
            "duration_minutes BETWEEN 15 AND 480",
            name="ck_services_duration_range",
        ),
    )
    op.create_index("ix_services_provider_id", "services", ["provider_id"])

    # Availability - weekly slots, seeded Mon-Sat 09:00-19:00 on completion
    op.create_table(
        "availability",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "provider_id",
            sa.UUID(),
            sa.ForeignKey("providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.CheckConstraint(
            "day_of_week BETWEEN 0 AND 6",
            name="ck_availability_day_of_week",
        ),
        sa.CheckConstraint(
            "end_time > start_time", name="ck_availability_time_order"
        ),
    )
    op.create_index("ix_availability_provider_id", "availability", ["provider_id"])


def downgrade() -> None:
    op.drop_index("ix_availability_provider_id", table_name="availability")
    op.drop_table("availability")
    op.drop_index("ix_services_provider_id", table_name="services")
    op.drop_table("services")
    op.drop_index("providers_username_key", table_name="providers")
    op.drop_table("providers")
    op.drop_table("users")
