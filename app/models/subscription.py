"""
Subscription Models
===================

SQLAlchemy models for the RevenueCat billing integration:

- ``RevenueCatCustomer``     local user id -> RevenueCat app user id
- ``RevenueCatSubscription`` one row per user, current entitlement state
- ``RevenueCatPurchase``     append-only log of every webhook event applied
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Enum as SQLEnum,
    Index,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, CreatedAtMixin, TimestampMixin


class SubscriptionStatus(str, Enum):
    """Subscription status values."""
    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"
    PAST_DUE = "past_due"


# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class RevenueCatCustomer(Base, TimestampMixin):
    """
    Maps a local user to the subscriber id used with RevenueCat.

    ``app_user_id`` is derived from the user id by prefixing it, so this row
    is bookkeeping rather than a secret.
    """

    __tablename__ = "revenuecat_customers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    app_user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    original_app_user_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<RevenueCatCustomer(user_id={self.user_id}, app_user_id={self.app_user_id})>"


class RevenueCatSubscription(Base, TimestampMixin):
    """
    Current subscription state for a user.

    Written by purchase webhooks with upsert-by-``user_id`` semantics.
    """

    __tablename__ = "revenuecat_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    app_user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Subscription details
    product_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    entitlement_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        SQLEnum(
            SubscriptionStatus,
            name="subscription_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    purchased_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Store / payment info
    environment: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    store: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    currency: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
    )
    price: Mapped[Optional[float]] = mapped_column(
        Numeric(asdecimal=False),
        nullable=True,
    )

    # Ordering timestamp (epoch ms) of the event that last wrote this row
    last_event_at_ms: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
    )

    __table_args__ = (
        Index("idx_rc_subscription_status_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<RevenueCatSubscription(user_id={self.user_id}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        """Check if subscription currently grants entitlements."""
        return self.status == SubscriptionStatus.ACTIVE


class RevenueCatPurchase(Base, CreatedAtMixin):
    """
    Purchase event log.

    One row per applied webhook delivery. Rows are never updated, and
    repeated deliveries of the same ``event_id`` each get their own row.
    """

    __tablename__ = "revenuecat_purchases"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    app_user_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Event details
    event_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    event_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    product_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    purchased_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Payment info
    price: Mapped[Optional[float]] = mapped_column(
        Numeric(asdecimal=False),
        nullable=True,
    )
    currency: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
    )
    store: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    environment: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )

    # Raw RevenueCat event
    raw_event: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
    )

    __table_args__ = (
        Index("idx_rc_purchases_user_created", "user_id", "created_at"),
        Index("idx_rc_purchases_event_id", "event_id"),
    )

    def __repr__(self) -> str:
        return f"<RevenueCatPurchase(user_id={self.user_id}, event={self.event_type})>"
