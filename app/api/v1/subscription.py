"""
Subscription API Endpoints
==========================

Handles purchase verification, subscription status, the product catalog
and RevenueCat customer info.
"""

import json
import logging

from fastapi import APIRouter, Query, Request

from app.config import settings
from app.core.entitlements import ENTITLEMENTS, PRODUCTS, get_entitlements, get_product
from app.core.errors import (
    BillingError,
    NotConfiguredError,
    UpstreamError,
    billing_error_response,
)
from app.dependencies import CurrentUser, CurrentUserOptional, DBSession
from app.schemas.common import ErrorResponse
from app.schemas.subscription import (
    BillingErrorResponse,
    CustomerInfoResponse,
    PackagesResponse,
    PurchaseVerificationRequest,
    PurchaseVerificationResponse,
    SubscriptionStatusResponse,
)
from app.services.cache import CacheInvalidator, CacheKeys, CacheManager
from app.services.revenuecat import RevenueCatService, create_app_user_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/purchase",
    response_model=PurchaseVerificationResponse,
    responses={
        400: {"model": BillingErrorResponse, "description": "Purchase verification failed"},
    },
)
async def verify_purchase(
    request: Request,
    current_user: CurrentUserOptional,
    db: DBSession,
):
    """
    Verify a web checkout purchase with RevenueCat.

    The client posts ``{productId, receiptData, platform}`` after checkout.
    RevenueCat validates the receipt; subscription state itself arrives
    later through the webhook. Every failure is answered with HTTP 400 and
    ``{"error": "<message>"}``.
    """
    try:
        if current_user is None:
            raise BillingError("Unauthorized")

        try:
            body = json.loads(await request.body())
        except ValueError as e:
            raise BillingError(f"Invalid JSON body: {e}") from e

        if not isinstance(body, dict):
            raise BillingError("Invalid JSON body: expected an object")

        purchase = PurchaseVerificationRequest.model_validate(body)
        if not purchase.product_id or not purchase.receipt_data:
            raise BillingError("Missing required fields: productId, receiptData")

        result = await RevenueCatService(db).verify_purchase(
            user_id=current_user.id,
            product_id=purchase.product_id,
            receipt_data=purchase.receipt_data,
            platform=purchase.platform or "web",
        )

        await CacheInvalidator.on_subscription_change(current_user.id)

        return PurchaseVerificationResponse(
            success=True,
            customer_info=result["customer_info"],
            app_user_id=result["app_user_id"],
        )
    except Exception as e:
        logger.exception("Purchase verification error: %s", e)
        await db.rollback()
        return billing_error_response(e)


@router.get(
    "/status",
    response_model=SubscriptionStatusResponse,
)
async def get_subscription_status(
    current_user: CurrentUser,
    db: DBSession,
    force_refresh: bool = Query(default=False),
):
    """
    Get current subscription status.

    Use force_refresh=true to bypass the cache and include the latest
    RevenueCat customer info.
    """
    cache_key = CacheKeys.subscription_status(current_user.id)

    # Try cache if not forcing refresh
    if not force_refresh:
        cached = await CacheManager.get(cache_key)
        if cached:
            return SubscriptionStatusResponse(success=True, data=cached)

    revenuecat_service = RevenueCatService(db)
    subscription = await revenuecat_service.get_subscription(current_user.id)

    product_id = subscription.product_id if subscription else None
    response_data = {
        "subscription": RevenueCatService.serialize_subscription(subscription),
        "has_active_subscription": bool(subscription and subscription.is_active),
        "entitlements": get_entitlements(subscription),
        "product": get_product(product_id) if product_id else None,
        "app_user_id": create_app_user_id(current_user.id),
    }

    if force_refresh:
        try:
            response_data["customer_info"] = await revenuecat_service.get_customer_info(
                current_user.id
            )
        except BillingError as e:
            logger.error(
                "Failed to fetch RevenueCat customer info for user=%s: %s",
                current_user.id,
                e,
            )
            # Continue with local data
            response_data["customer_info"] = None

    await CacheManager.set(cache_key, response_data, ttl=CacheManager.TTL_HOUR)

    return SubscriptionStatusResponse(success=True, data=response_data)


@router.get(
    "/packages",
    response_model=PackagesResponse,
)
async def get_packages(
    current_user: CurrentUser,
):
    """
    Get the product catalog.

    The ``app_user_id`` is what the checkout client passes to RevenueCat.
    """
    cache_key = CacheKeys.packages()
    catalog = await CacheManager.get(cache_key)

    if not catalog:
        catalog = {
            "packages": list(PRODUCTS.values()),
            "entitlements": ENTITLEMENTS,
        }
        await CacheManager.set(cache_key, catalog, ttl=CacheManager.TTL_HOUR)

    return PackagesResponse(
        success=True,
        data={
            **catalog,
            "app_user_id": create_app_user_id(current_user.id),
        },
    )


@router.get(
    "/customer-info",
    response_model=CustomerInfoResponse,
    responses={
        502: {"model": ErrorResponse, "description": "RevenueCat request failed"},
        503: {"model": ErrorResponse, "description": "RevenueCat not configured"},
    },
)
async def get_customer_info(
    current_user: CurrentUser,
    db: DBSession,
):
    """
    Get the caller's subscriber record from RevenueCat.
    """
    if not settings.REVENUECAT_API_KEY:
        raise NotConfiguredError(message="RevenueCat API key not configured")

    cache_key = CacheKeys.customer_info(current_user.id)
    cached = await CacheManager.get(cache_key)
    if cached:
        return CustomerInfoResponse(success=True, data=cached)

    try:
        customer_info = await RevenueCatService(db).get_customer_info(current_user.id)
    except BillingError as e:
        raise UpstreamError(message=str(e)) from e

    await CacheManager.set(cache_key, customer_info, ttl=CacheManager.TTL_SHORT)

    return CustomerInfoResponse(success=True, data=customer_info)
