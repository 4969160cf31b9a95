"""
RevenueCat Client & Helper Tests
================================

Unit tests for the RevenueCat REST client (against httpx.MockTransport)
and the pure helpers of the billing service.
"""

import json
from unittest.mock import MagicMock

import httpx
import pytest

from app.core.errors import BillingError
from app.models.subscription import SubscriptionStatus
from app.services.revenuecat import (
    RevenueCatClient,
    RevenueCatService,
    create_app_user_id,
    extract_user_id,
    map_event_status,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _client(handler, api_key: str = "rc_secret") -> RevenueCatClient:
    return RevenueCatClient(
        api_key=api_key,
        base_url="https://api.revenuecat.com/v1",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


# ---------------------------------------------------------------------------
# RevenueCatClient
# ---------------------------------------------------------------------------

class TestCreatePurchase:

    @pytest.mark.asyncio
    async def test_posts_receipt_with_bearer_auth(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"subscriber": {"entitlements": {}}})

        data = await _client(handler).create_purchase(
            app_user_id="tenderguard_u1",
            product_id="prod0e96234594",
            receipt_data="tok_abc",
            platform="web",
        )

        assert data == {"subscriber": {"entitlements": {}}}
        assert len(seen) == 1

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/subscribers/tenderguard_u1/receipts"
        assert request.headers["Authorization"] == "Bearer rc_secret"
        assert json.loads(request.content) == {
            "app_user_id": "tenderguard_u1",
            "fetch_token": "tok_abc",
            "product_id": "prod0e96234594",
            "platform": "web",
        }

    @pytest.mark.asyncio
    async def test_non_2xx_raises_with_status_and_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, text='{"message":"Invalid receipt"}')

        with pytest.raises(BillingError) as exc_info:
            await _client(handler).create_purchase("tenderguard_u1", "p", "tok")

        assert str(exc_info.value) == 'RevenueCat API error: 422 - {"message":"Invalid receipt"}'

    @pytest.mark.asyncio
    async def test_transport_failure_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BillingError) as exc_info:
            await _client(handler).create_purchase("tenderguard_u1", "p", "tok")

        assert str(exc_info.value).startswith("RevenueCat API request failed")

    @pytest.mark.asyncio
    async def test_missing_api_key_makes_no_request(self):
        handler = MagicMock()

        with pytest.raises(BillingError) as exc_info:
            await _client(handler, api_key="").create_purchase("tenderguard_u1", "p", "tok")

        assert str(exc_info.value) == "RevenueCat API key not configured"
        handler.assert_not_called()


class TestGetCustomerInfo:

    @pytest.mark.asyncio
    async def test_fetches_subscriber(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/v1/subscribers/tenderguard_u1"
            return httpx.Response(200, json={"subscriber": {"original_app_user_id": "tenderguard_u1"}})

        data = await _client(handler).get_customer_info("tenderguard_u1")

        assert data["subscriber"]["original_app_user_id"] == "tenderguard_u1"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestAppUserIdHelpers:

    def test_create_app_user_id_adds_prefix(self):
        assert create_app_user_id("abc") == "tenderguard_abc"

    def test_extract_user_id_strips_prefix(self):
        assert extract_user_id("tenderguard_abc") == "abc"

    def test_extract_user_id_round_trips(self):
        assert extract_user_id(create_app_user_id("9f1c")) == "9f1c"

    def test_extract_user_id_passes_unprefixed_through(self):
        assert extract_user_id("$RCAnonymousID:xyz") == "$RCAnonymousID:xyz"

    def test_extract_user_id_strips_prefix_once(self):
        assert extract_user_id("tenderguard_tenderguard_abc") == "tenderguard_abc"


class TestMapEventStatus:

    @pytest.mark.parametrize(
        "event_type,expected",
        [
            ("INITIAL_PURCHASE", SubscriptionStatus.ACTIVE),
            ("RENEWAL", SubscriptionStatus.ACTIVE),
            ("PRODUCT_CHANGE", SubscriptionStatus.ACTIVE),
            ("CANCELLATION", SubscriptionStatus.CANCELED),
            ("EXPIRATION", SubscriptionStatus.EXPIRED),
            ("BILLING_ISSUE", SubscriptionStatus.PAST_DUE),
        ],
    )
    def test_handled_types(self, event_type, expected):
        assert map_event_status(event_type) == expected

    @pytest.mark.parametrize("event_type", ["TEST", "TRANSFER", "renewal", ""])
    def test_unhandled_types(self, event_type):
        assert map_event_status(event_type) is None


class TestVerifyWebhookAuthorization:

    def _service(self, secret: str) -> RevenueCatService:
        service = RevenueCatService(db=MagicMock())
        service.webhook_secret = secret
        return service

    def test_accepts_raw_secret(self):
        assert self._service("whsec_1").verify_webhook_authorization("whsec_1") is True

    def test_accepts_bearer_prefix(self):
        assert self._service("whsec_1").verify_webhook_authorization("Bearer whsec_1") is True

    def test_rejects_mismatch(self):
        assert self._service("whsec_1").verify_webhook_authorization("Bearer nope") is False

    def test_rejects_empty_header(self):
        assert self._service("whsec_1").verify_webhook_authorization("") is False

    def test_rejects_when_secret_unset(self):
        assert self._service("").verify_webhook_authorization("anything") is False

    def test_ensure_webhook_secret(self):
        with pytest.raises(BillingError, match="RevenueCat webhook secret not configured"):
            self._service("").ensure_webhook_secret()
