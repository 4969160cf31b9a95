"""
Webhooks API Endpoints
======================

Handles webhooks from external services (RevenueCat).

Authentication:
    ``REVENUECAT_WEBHOOK_SECRET`` must be configured. With
    ``REVENUECAT_VERIFY_WEBHOOK_AUTH`` enabled, the ``Authorization`` header
    RevenueCat sends must also match it.

Duplicates:
    Deliveries are not deduplicated. Every applied delivery appends a row to
    the purchase log, and the subscription row converges on the latest state.
"""

import json
import logging

from fastapi import APIRouter, Header, Request

from app.config import settings
from app.core.errors import BillingError, billing_error_response
from app.dependencies import DBSession
from app.schemas.subscription import (
    BillingErrorResponse,
    RevenueCatWebhookPayload,
    WebhookResponse,
)
from app.services.cache import CacheInvalidator
from app.services.revenuecat import RevenueCatService, extract_user_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/revenuecat",
    response_model=WebhookResponse,
    responses={
        400: {"model": BillingErrorResponse, "description": "Webhook rejected"},
    },
)
async def revenuecat_webhook(
    request: Request,
    db: DBSession,
    authorization: str = Header(default="", alias="Authorization"),
):
    """
    Handle RevenueCat webhook events.

    Events applied:
    - INITIAL_PURCHASE / RENEWAL / PRODUCT_CHANGE -> active
    - CANCELLATION -> canceled
    - EXPIRATION -> expired
    - BILLING_ISSUE -> past_due

    Other event types are acknowledged without writing anything. Any
    failure is answered with HTTP 400 and ``{"error": "<message>"}``.
    """
    revenuecat_service = RevenueCatService(db)

    try:
        # ── Verify configuration / authorization ──────────────────────────
        revenuecat_service.ensure_webhook_secret()

        if settings.REVENUECAT_VERIFY_WEBHOOK_AUTH and not (
            revenuecat_service.verify_webhook_authorization(authorization)
        ):
            logger.warning("Unauthorized RevenueCat webhook attempt")
            raise BillingError("Invalid webhook authorization")

        # ── Parse payload ─────────────────────────────────────────────────
        body = await request.body()
        try:
            payload = json.loads(body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BillingError(f"Invalid JSON payload: {e}") from e

        webhook = RevenueCatWebhookPayload.model_validate(payload)
        event = webhook.event

        logger.info("RevenueCat webhook received: %s", event.type)

        # ── Process event ─────────────────────────────────────────────────
        subscription = await revenuecat_service.process_webhook_event(
            event,
            raw_event=payload.get("event"),
        )
        await db.commit()

        if subscription is not None:
            await CacheInvalidator.on_subscription_change(
                extract_user_id(event.app_user_id)
            )

        return WebhookResponse(success=True)

    except Exception as e:
        logger.exception("Webhook processing error: %s", e)
        await db.rollback()
        return billing_error_response(e)
