"""
Products & Entitlements
=======================

Product catalog sold through RevenueCat and the entitlements an active
subscription grants.
"""

from typing import Optional

from app.models.subscription import RevenueCatSubscription, SubscriptionStatus


# Entitlement identifiers configured in RevenueCat
PREMIUM_ACCESS = "premium_access"
DOCUMENT_ANALYSIS = "document_analysis"
UNLIMITED_UPLOADS = "unlimited_uploads"

ENTITLEMENTS = [
    PREMIUM_ACCESS,
    DOCUMENT_ANALYSIS,
    UNLIMITED_UPLOADS,
]

STANDARD_PACKAGE_ID = "prod0e96234594"

# Product catalog
PRODUCTS = {
    STANDARD_PACKAGE_ID: {
        "product_id": STANDARD_PACKAGE_ID,
        "name": "Standard Package",
        "description": "Full access to TenderGuard AI fraud detection",
        "price": 100.00,
        "currency": "ZAR",
        "billing_period": "monthly",
        "entitlements": ENTITLEMENTS,
        "is_default": True,
    },
}


def get_product(product_id: str) -> Optional[dict]:
    """Look up a catalog product by RevenueCat product id."""
    return PRODUCTS.get(product_id)


def get_entitlements(subscription: Optional[RevenueCatSubscription]) -> list[str]:
    """
    Entitlements granted by a subscription row.

    Only ``active`` subscriptions grant anything. Unknown products fall back
    to the row's own ``entitlement_id``.
    """
    if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
        return []

    product = get_product(subscription.product_id or "")
    if product is not None:
        return list(product["entitlements"])
    if subscription.entitlement_id:
        return [subscription.entitlement_id]
    return []
