"""
Database Models
===============

SQLAlchemy ORM models for all database entities.

All models are imported here to ensure they are registered
with SQLAlchemy's metadata for migrations.
"""

from app.models.user import Profile
from app.models.subscription import (
    RevenueCatCustomer,
    RevenueCatPurchase,
    RevenueCatSubscription,
    SubscriptionStatus,
)

__all__ = [
    # Profile
    "Profile",
    # Subscription
    "RevenueCatCustomer",
    "RevenueCatPurchase",
    "RevenueCatSubscription",
    "SubscriptionStatus",
]
