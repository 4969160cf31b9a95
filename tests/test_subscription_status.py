"""
Subscription Read Endpoint Tests
================================

Tests for GET /api/v1/subscription/{status,packages,customer-info}.
"""

from unittest.mock import AsyncMock, patch

import pytest

from app.config import settings
from app.core.errors import BillingError
from app.services.revenuecat import RevenueCatClient

USER_ID = "user-123"
APP_USER_ID = f"tenderguard_{USER_ID}"


async def _apply_webhook(client, event_type: str) -> None:
    response = await client.post(
        "/api/v1/webhooks/revenuecat",
        json={
            "api_version": "1.0",
            "event": {
                "id": f"evt-{event_type}",
                "type": event_type,
                "app_user_id": APP_USER_ID,
                "product_id": "prod0e96234594",
                "purchased_at_ms": 1_760_000_000_000,
                "expiration_at_ms": 1_762_592_000_000,
                "price": 100.0,
                "currency": "ZAR",
                "store": "STRIPE",
                "environment": "PRODUCTION",
            },
        },
    )
    assert response.status_code == 200


class TestSubscriptionStatus:

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client):
        response = await client.get("/api/v1/subscription/status")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "AUTH_002"

    @pytest.mark.asyncio
    async def test_no_subscription(self, client, auth_headers):
        response = await client.get("/api/v1/subscription/status", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["subscription"] is None
        assert data["has_active_subscription"] is False
        assert data["entitlements"] == []
        assert data["app_user_id"] == APP_USER_ID
        assert data["product"] is None

    @pytest.mark.asyncio
    async def test_active_subscription_grants_entitlements(self, client, auth_headers):
        await _apply_webhook(client, "INITIAL_PURCHASE")

        response = await client.get("/api/v1/subscription/status", headers=auth_headers)

        data = response.json()["data"]
        assert data["has_active_subscription"] is True
        assert data["subscription"]["status"] == "active"
        assert data["subscription"]["product_id"] == "prod0e96234594"
        assert data["subscription"]["price"] == 100.0
        assert data["product"]["name"] == "Standard Package"
        assert set(data["entitlements"]) == {
            "premium_access",
            "document_analysis",
            "unlimited_uploads",
        }

    @pytest.mark.asyncio
    async def test_past_due_subscription_grants_nothing(self, client, auth_headers):
        await _apply_webhook(client, "INITIAL_PURCHASE")
        await _apply_webhook(client, "BILLING_ISSUE")

        response = await client.get("/api/v1/subscription/status", headers=auth_headers)

        data = response.json()["data"]
        assert data["subscription"]["status"] == "past_due"
        assert data["has_active_subscription"] is False
        assert data["entitlements"] == []

    @pytest.mark.asyncio
    async def test_force_refresh_includes_customer_info(self, client, auth_headers):
        subscriber = {"original_app_user_id": APP_USER_ID, "entitlements": {}}

        with patch.object(
            RevenueCatClient,
            "get_customer_info",
            new=AsyncMock(return_value={"subscriber": subscriber}),
        ) as mock_get:
            response = await client.get(
                "/api/v1/subscription/status",
                params={"force_refresh": "true"},
                headers=auth_headers,
            )

        assert response.status_code == 200
        assert response.json()["data"]["customer_info"] == subscriber
        mock_get.assert_awaited_once_with(APP_USER_ID)

    @pytest.mark.asyncio
    async def test_force_refresh_failure_falls_back_to_local_data(self, client, auth_headers):
        await _apply_webhook(client, "RENEWAL")

        with patch.object(
            RevenueCatClient,
            "get_customer_info",
            new=AsyncMock(side_effect=BillingError("RevenueCat API error: 500 - boom")),
        ):
            response = await client.get(
                "/api/v1/subscription/status",
                params={"force_refresh": "true"},
                headers=auth_headers,
            )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["customer_info"] is None
        assert data["subscription"]["status"] == "active"

    @pytest.mark.asyncio
    async def test_served_from_cache_when_present(self, client, auth_headers):
        cached = {"subscription": None, "has_active_subscription": True, "entitlements": []}

        with patch("app.api.v1.subscription.CacheManager.get", new=AsyncMock(return_value=cached)):
            response = await client.get("/api/v1/subscription/status", headers=auth_headers)

        assert response.json()["data"] == cached


class TestPackages:

    @pytest.mark.asyncio
    async def test_lists_standard_package(self, client, auth_headers):
        response = await client.get("/api/v1/subscription/packages", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]

        assert data["app_user_id"] == APP_USER_ID
        assert data["entitlements"] == [
            "premium_access",
            "document_analysis",
            "unlimited_uploads",
        ]
        assert len(data["packages"]) == 1

        package = data["packages"][0]
        assert package["product_id"] == "prod0e96234594"
        assert package["name"] == "Standard Package"
        assert package["price"] == 100.0
        assert package["currency"] == "ZAR"
        assert package["billing_period"] == "monthly"


class TestCustomerInfo:

    @pytest.mark.asyncio
    async def test_returns_subscriber(self, client, auth_headers):
        subscriber = {"original_app_user_id": APP_USER_ID, "entitlements": {}}

        with patch.object(
            RevenueCatClient,
            "get_customer_info",
            new=AsyncMock(return_value={"subscriber": subscriber}),
        ):
            response = await client.get("/api/v1/subscription/customer-info", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": subscriber}

    @pytest.mark.asyncio
    async def test_upstream_failure_uses_error_envelope(self, client, auth_headers):
        with patch.object(
            RevenueCatClient,
            "get_customer_info",
            new=AsyncMock(side_effect=BillingError("RevenueCat API error: 404 - not found")),
        ):
            response = await client.get("/api/v1/subscription/customer-info", headers=auth_headers)

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "SUB_002"
        assert body["error"]["message"] == "RevenueCat API error: 404 - not found"

    @pytest.mark.asyncio
    async def test_not_configured(self, client, auth_headers, monkeypatch):
        monkeypatch.setattr(settings, "REVENUECAT_API_KEY", "")

        response = await client.get("/api/v1/subscription/customer-info", headers=auth_headers)

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SUB_001"
