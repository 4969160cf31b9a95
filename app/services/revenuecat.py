"""
RevenueCat Service
==================

Integration with RevenueCat for subscription management.

Handles:
- Subscriber REST API calls (customer info, receipt verification)
- Purchase verification for the web checkout flow
- Webhook event reconciliation into the local billing tables
"""

import logging
import secrets
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.entitlements import get_entitlements
from app.core.errors import BillingError
from app.models.subscription import (
    RevenueCatCustomer,
    RevenueCatPurchase,
    RevenueCatSubscription,
    SubscriptionStatus,
)
from app.schemas.subscription import RevenueCatWebhookEvent
from app.utils.helpers import format_datetime, ms_to_datetime

logger = logging.getLogger(__name__)


# Webhook event type -> local subscription status. Anything else is dropped.
EVENT_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "INITIAL_PURCHASE": SubscriptionStatus.ACTIVE,
    "RENEWAL": SubscriptionStatus.ACTIVE,
    "PRODUCT_CHANGE": SubscriptionStatus.ACTIVE,
    "CANCELLATION": SubscriptionStatus.CANCELED,
    "EXPIRATION": SubscriptionStatus.EXPIRED,
    "BILLING_ISSUE": SubscriptionStatus.PAST_DUE,
}


def map_event_status(event_type: str) -> Optional[SubscriptionStatus]:
    """Status a webhook event type resolves to, or None if it is not handled."""
    return EVENT_STATUS_MAP.get(event_type)


def create_app_user_id(user_id: str) -> str:
    """RevenueCat subscriber id for a local user id."""
    return f"{settings.APP_USER_ID_PREFIX}{user_id}"


def extract_user_id(app_user_id: str) -> str:
    """Local user id for a RevenueCat subscriber id. Unprefixed ids pass through."""
    return app_user_id.removeprefix(settings.APP_USER_ID_PREFIX)


# =============================================================================
# RevenueCat REST API
# =============================================================================

class RevenueCatClient:
    """Thin async client for the RevenueCat v1 subscriber API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.REVENUECAT_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.REVENUECAT_API_URL).rstrip("/")
        self.timeout = timeout or settings.REVENUECAT_TIMEOUT_SECONDS
        self._transport = transport

    def _get_headers(self) -> dict[str, str]:
        """Common headers for RevenueCat API calls."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        Raises:
            BillingError: If the API key is missing, the request fails, or
                RevenueCat answers with a non-2xx status.
        """
        if not self.api_key:
            raise BillingError("RevenueCat API key not configured")

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.request(
                    method,
                    path,
                    headers=self._get_headers(),
                    json=json,
                )
            except httpx.HTTPError as e:
                logger.error("RevenueCat API request failed: %s %s: %s", method, path, e)
                raise BillingError(f"RevenueCat API request failed: {e}") from e

        if response.is_error:
            logger.error(
                "RevenueCat API returned status %d for %s %s: %s",
                response.status_code,
                method,
                path,
                response.text[:200],
            )
            raise BillingError(
                f"RevenueCat API error: {response.status_code} - {response.text}"
            )

        return response.json()

    async def get_customer_info(self, app_user_id: str) -> dict[str, Any]:
        """Fetch the subscriber record for an app user id."""
        return await self._request("GET", f"/subscribers/{app_user_id}")

    async def create_purchase(
        self,
        app_user_id: str,
        product_id: str,
        receipt_data: str,
        platform: str = "web",
    ) -> dict[str, Any]:
        """
        Post a receipt to RevenueCat for verification.

        RevenueCat validates the token with the store and answers with the
        updated subscriber record.
        """
        return await self._request(
            "POST",
            f"/subscribers/{app_user_id}/receipts",
            json={
                "app_user_id": app_user_id,
                "fetch_token": receipt_data,
                "product_id": product_id,
                "platform": platform,
            },
        )


# =============================================================================
# Billing reconciliation
# =============================================================================

class RevenueCatService:
    """Service for RevenueCat operations."""

    def __init__(self, db: AsyncSession, client: Optional[RevenueCatClient] = None):
        self.db = db
        self.client = client or RevenueCatClient()
        self.webhook_secret = settings.REVENUECAT_WEBHOOK_SECRET

    # -------------------------------------------------------------------------
    # Webhook Authentication
    # -------------------------------------------------------------------------

    def ensure_webhook_secret(self) -> None:
        """Refuse webhook traffic until a webhook secret is configured."""
        if not self.webhook_secret:
            raise BillingError("RevenueCat webhook secret not configured")

    def verify_webhook_authorization(self, authorization_header: str) -> bool:
        """
        Verify RevenueCat webhook authorization header.

        RevenueCat sends the token configured in its dashboard in the
        ``Authorization`` header, with or without a ``Bearer`` scheme.

        Args:
            authorization_header: Value of the Authorization header.

        Returns:
            True if the token matches our configured secret.
        """
        if not self.webhook_secret or not authorization_header:
            return False

        token = authorization_header
        if token.lower().startswith("bearer "):
            token = token[7:]

        return secrets.compare_digest(
            token.strip().encode("utf-8"),
            self.webhook_secret.encode("utf-8"),
        )

    # -------------------------------------------------------------------------
    # Lookup Helpers
    # -------------------------------------------------------------------------

    async def get_subscription(self, user_id: str) -> Optional[RevenueCatSubscription]:
        """Current subscription row for a user, if any."""
        stmt = select(RevenueCatSubscription).where(
            RevenueCatSubscription.user_id == user_id
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_customer(self, user_id: str) -> Optional[RevenueCatCustomer]:
        """Customer mapping row for a user, if any."""
        stmt = select(RevenueCatCustomer).where(RevenueCatCustomer.user_id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Purchase Verification
    # -------------------------------------------------------------------------

    async def verify_purchase(
        self,
        user_id: str,
        product_id: str,
        receipt_data: str,
        platform: str = "web",
    ) -> dict[str, Any]:
        """
        Verify a purchase receipt with RevenueCat and record the customer.

        Subscription state is not written here; it arrives through the
        webhook once RevenueCat has processed the purchase.

        Args:
            user_id: Local profile id of the caller.
            product_id: Product identifier purchased.
            receipt_data: Opaque store token from the checkout.
            platform: Purchase platform, ``web`` by default.

        Returns:
            Dict with ``customer_info`` (RevenueCat subscriber) and
            ``app_user_id``.
        """
        app_user_id = create_app_user_id(user_id)

        purchase_data = await self.client.create_purchase(
            app_user_id=app_user_id,
            product_id=product_id,
            receipt_data=receipt_data,
            platform=platform,
        )

        # RevenueCat has already recorded the purchase; a local write failure
        # is logged and must not turn it into an error for the checkout
        try:
            async with self.db.begin_nested():
                await self._upsert_customer(
                    user_id=user_id,
                    app_user_id=app_user_id,
                    original_app_user_id=app_user_id,
                )
        except SQLAlchemyError:
            logger.exception("Failed to record RevenueCat customer for user %s", user_id)

        logger.info(
            "Purchase verified: user=%s product=%s platform=%s",
            user_id,
            product_id,
            platform,
        )

        return {
            "customer_info": purchase_data.get("subscriber"),
            "app_user_id": app_user_id,
        }

    async def get_customer_info(self, user_id: str) -> dict[str, Any]:
        """RevenueCat subscriber record for a local user."""
        data = await self.client.get_customer_info(create_app_user_id(user_id))
        return data.get("subscriber", data)

    # -------------------------------------------------------------------------
    # Webhook Event Processing
    # -------------------------------------------------------------------------

    async def process_webhook_event(
        self,
        event: RevenueCatWebhookEvent,
        raw_event: Optional[dict[str, Any]] = None,
    ) -> Optional[RevenueCatSubscription]:
        """
        Apply a RevenueCat webhook event.

        Handled types and the status they write:
        - INITIAL_PURCHASE / RENEWAL / PRODUCT_CHANGE -> active
        - CANCELLATION -> canceled
        - EXPIRATION -> expired
        - BILLING_ISSUE -> past_due

        A handled event upserts the customer mapping and the subscription
        row and appends one purchase log row. Other types write nothing.

        Args:
            event: The validated ``event`` object from the webhook payload.
            raw_event: The event exactly as received, stored on the log row.

        Returns:
            The subscription row after the event, or None if the event
            type is not handled.
        """
        status = map_event_status(event.type)
        if status is None:
            logger.info("Unhandled event type: %s (event_id=%s)", event.type, event.id)
            return None

        user_id = extract_user_id(event.app_user_id)
        subscription = await self.get_subscription(user_id)

        if settings.REVENUECAT_REJECT_STALE_EVENTS and self._is_stale(subscription, event):
            logger.warning(
                "Ignoring stale webhook %s for user=%s: event_ts=%s stored_ts=%s",
                event.type,
                user_id,
                event.ordering_timestamp_ms,
                subscription.last_event_at_ms,
            )
            await self._log_purchase(user_id, event, raw_event)
            await self.db.flush()
            return subscription

        await self._upsert_customer(
            user_id=user_id,
            app_user_id=event.app_user_id,
            original_app_user_id=event.original_app_user_id,
        )
        subscription = await self._upsert_subscription(subscription, user_id, event, status)
        await self._log_purchase(user_id, event, raw_event)
        await self.db.flush()

        logger.info(
            "Webhook %s applied: user=%s product=%s status=%s",
            event.type,
            user_id,
            event.product_id,
            status.value,
        )

        return subscription

    @staticmethod
    def _is_stale(
        subscription: Optional[RevenueCatSubscription],
        event: RevenueCatWebhookEvent,
    ) -> bool:
        """True if the event is older than the state already stored."""
        if subscription is None or subscription.last_event_at_ms is None:
            return False
        incoming = event.ordering_timestamp_ms
        if incoming is None:
            return False
        return incoming < subscription.last_event_at_ms

    async def _upsert_customer(
        self,
        user_id: str,
        app_user_id: str,
        original_app_user_id: Optional[str],
    ) -> RevenueCatCustomer:
        """Insert or update the customer mapping keyed by user id."""
        customer = await self.get_customer(user_id)

        if customer is None:
            customer = RevenueCatCustomer(user_id=user_id)
            self.db.add(customer)

        customer.app_user_id = app_user_id
        customer.original_app_user_id = original_app_user_id
        return customer

    async def _upsert_subscription(
        self,
        subscription: Optional[RevenueCatSubscription],
        user_id: str,
        event: RevenueCatWebhookEvent,
        status: SubscriptionStatus,
    ) -> RevenueCatSubscription:
        """Overwrite the user's subscription row with the event's state."""
        if subscription is None:
            subscription = RevenueCatSubscription(user_id=user_id)
            self.db.add(subscription)

        subscription.app_user_id = event.app_user_id
        subscription.product_id = event.product_id
        subscription.entitlement_id = event.entitlement_id or (
            event.entitlement_ids[0] if event.entitlement_ids else None
        )
        subscription.status = status
        subscription.purchased_at = ms_to_datetime(event.purchased_at_ms)
        subscription.expires_at = ms_to_datetime(event.expiration_at_ms)
        subscription.environment = event.environment
        subscription.store = event.store
        subscription.currency = event.currency
        subscription.price = event.price

        if event.ordering_timestamp_ms is not None:
            subscription.last_event_at_ms = event.ordering_timestamp_ms

        return subscription

    async def _log_purchase(
        self,
        user_id: str,
        event: RevenueCatWebhookEvent,
        raw_event: Optional[dict[str, Any]],
    ) -> RevenueCatPurchase:
        """Append one row to the purchase event log."""
        purchase = RevenueCatPurchase(
            user_id=user_id,
            app_user_id=event.app_user_id,
            product_id=event.product_id,
            event_type=event.type,
            event_id=event.id,
            purchased_at=ms_to_datetime(event.purchased_at_ms),
            expires_at=ms_to_datetime(event.expiration_at_ms),
            price=event.price,
            currency=event.currency,
            store=event.store,
            environment=event.environment,
            raw_event=raw_event if raw_event is not None else event.model_dump(mode="json"),
        )
        self.db.add(purchase)
        return purchase

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    @staticmethod
    def serialize_subscription(
        subscription: Optional[RevenueCatSubscription],
    ) -> Optional[dict[str, Any]]:
        """JSON-safe view of a subscription row."""
        if subscription is None:
            return None

        return {
            "product_id": subscription.product_id,
            "entitlement_id": subscription.entitlement_id,
            "status": subscription.status.value,
            "purchased_at": format_datetime(subscription.purchased_at),
            "expires_at": format_datetime(subscription.expires_at),
            "price": subscription.price,
            "currency": subscription.currency,
            "store": subscription.store,
            "environment": subscription.environment,
        }

    @staticmethod
    def summarize_subscription(
        subscription: Optional[RevenueCatSubscription],
    ) -> dict[str, Any]:
        """Short subscription view embedded in auth and profile responses."""
        return {
            "status": subscription.status.value if subscription else None,
            "product_id": subscription.product_id if subscription else None,
            "expires_at": format_datetime(subscription.expires_at) if subscription else None,
            "has_active_subscription": bool(subscription and subscription.is_active),
            "entitlements": get_entitlements(subscription),
        }
