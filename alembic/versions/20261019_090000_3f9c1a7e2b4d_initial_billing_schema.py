"""Initial schema: profiles and RevenueCat billing tables

Creates profiles, revenuecat_customers, revenuecat_subscriptions and the
append-only revenuecat_purchases log, plus the subscription_status enum.

Revision ID: 3f9c1a7e2b4d
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f9c1a7e2b4d"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


STATUS_VALUES = ("active", "canceled", "expired", "past_due")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Upgrade database schema."""

    # =========================================================================
    # profiles
    # =========================================================================
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

    # =========================================================================
    # revenuecat_customers
    # =========================================================================
    op.create_table(
        "revenuecat_customers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("app_user_id", sa.String(length=255), nullable=False),
        sa.Column("original_app_user_id", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_revenuecat_customers_user_id", "revenuecat_customers", ["user_id"], unique=True
    )
    op.create_index(
        "ix_revenuecat_customers_app_user_id", "revenuecat_customers", ["app_user_id"]
    )

    # =========================================================================
    # revenuecat_subscriptions
    # =========================================================================
    subscription_status = sa.Enum(*STATUS_VALUES, name="subscription_status")

    op.create_table(
        "revenuecat_subscriptions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("app_user_id", sa.String(length=255), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=True),
        sa.Column("entitlement_id", sa.String(length=255), nullable=True),
        sa.Column("status", subscription_status, nullable=False),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("environment", sa.String(length=50), nullable=True),
        sa.Column("store", sa.String(length=50), nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=True),
        sa.Column("price", sa.Numeric(), nullable=True),
        sa.Column("last_event_at_ms", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_revenuecat_subscriptions_user_id",
        "revenuecat_subscriptions",
        ["user_id"],
        unique=True,
    )
    op.create_index(
        "idx_rc_subscription_status_expires",
        "revenuecat_subscriptions",
        ["status", "expires_at"],
    )

    # =========================================================================
    # revenuecat_purchases (append-only event log)
    # =========================================================================
    op.create_table(
        "revenuecat_purchases",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("app_user_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("price", sa.Numeric(), nullable=True),
        sa.Column("currency", sa.String(length=10), nullable=True),
        sa.Column("store", sa.String(length=50), nullable=True),
        sa.Column("environment", sa.String(length=50), nullable=True),
        sa.Column(
            "raw_event",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_rc_purchases_user_created",
        "revenuecat_purchases",
        ["user_id", "created_at"],
    )
    op.create_index(
        "idx_rc_purchases_event_id",
        "revenuecat_purchases",
        ["event_id"],
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_rc_purchases_event_id", table_name="revenuecat_purchases")
    op.drop_index("idx_rc_purchases_user_created", table_name="revenuecat_purchases")
    op.drop_table("revenuecat_purchases")

    op.drop_index("idx_rc_subscription_status_expires", table_name="revenuecat_subscriptions")
    op.drop_index("ix_revenuecat_subscriptions_user_id", table_name="revenuecat_subscriptions")
    op.drop_table("revenuecat_subscriptions")
    op.execute("DROP TYPE IF EXISTS subscription_status")

    op.drop_index("ix_revenuecat_customers_app_user_id", table_name="revenuecat_customers")
    op.drop_index("ix_revenuecat_customers_user_id", table_name="revenuecat_customers")
    op.drop_table("revenuecat_customers")

    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")
