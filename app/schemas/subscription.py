"""
Subscription Schemas
====================

Pydantic schemas for purchase verification, RevenueCat webhooks and
subscription status endpoints.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─── RevenueCat Webhook Payload ──────────────────────────────────────────────


class RevenueCatWebhookEvent(BaseModel):
    """
    The ``event`` object inside a RevenueCat webhook body.

    ``type`` is kept as a plain string: types this service does not act on
    must still parse so they can be acknowledged and dropped.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(description="Unique event ID assigned by RevenueCat")
    type: str
    app_user_id: str
    original_app_user_id: Optional[str] = None
    aliases: list[str] = Field(default_factory=list)
    product_id: Optional[str] = None
    new_product_id: Optional[str] = None
    period_type: Optional[str] = None
    purchased_at_ms: Optional[int] = None
    expiration_at_ms: Optional[int] = None
    event_timestamp_ms: Optional[int] = None
    environment: Optional[str] = None
    entitlement_id: Optional[str] = None
    entitlement_ids: Optional[list[str]] = None
    presented_offering_id: Optional[str] = None
    transaction_id: Optional[str] = None
    original_transaction_id: Optional[str] = None
    is_family_share: Optional[bool] = None
    country_code: Optional[str] = None
    app_id: Optional[str] = None
    offer_code: Optional[str] = None
    currency: Optional[str] = None
    price: Optional[float] = None
    price_in_purchased_currency: Optional[float] = None
    subscriber_attributes: Optional[dict[str, Any]] = None
    store: Optional[str] = None
    takehome_percentage: Optional[float] = None
    tax_percentage: Optional[float] = None
    commission_percentage: Optional[float] = None

    @property
    def ordering_timestamp_ms(self) -> Optional[int]:
        """Timestamp used to order events for the same subscriber."""
        if self.event_timestamp_ms is not None:
            return self.event_timestamp_ms
        return self.purchased_at_ms


class RevenueCatWebhookPayload(BaseModel):
    """Webhook body: ``{ "api_version": "1.0", "event": { ... } }``."""

    api_version: Optional[str] = None
    event: RevenueCatWebhookEvent


class WebhookResponse(BaseModel):
    """Response schema for the webhook endpoint."""

    success: bool = True


# ─── Purchase Verification ───────────────────────────────────────────────────


class PurchaseVerificationRequest(BaseModel):
    """
    Request body sent by the web client after checkout.

    Fields are optional at the schema level so that missing values can be
    reported with the endpoint's own error message.
    """

    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[str] = Field(default=None, alias="productId")
    receipt_data: Optional[str] = Field(default=None, alias="receiptData")
    platform: Optional[str] = None


class PurchaseVerificationResponse(BaseModel):
    """Response schema for a verified purchase."""

    success: bool = True
    customer_info: Optional[dict[str, Any]] = None
    app_user_id: str


class BillingErrorResponse(BaseModel):
    """Error body returned by the billing endpoints."""

    error: str


# ─── Status & Catalog ────────────────────────────────────────────────────────


class SubscriptionStatusResponse(BaseModel):
    """Response schema for subscription status."""

    success: bool = True
    data: dict[str, Any]


class PackagesResponse(BaseModel):
    """Response schema for the product catalog."""

    success: bool = True
    data: dict[str, Any]


class CustomerInfoResponse(BaseModel):
    """Response schema for RevenueCat customer info."""

    success: bool = True
    data: dict[str, Any]
