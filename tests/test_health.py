"""
Health Check Tests
==================

Tests for the health check endpoints.
"""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test the health check endpoint."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "healthy"
    assert "version" in data
    assert data["environment"] == "test"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    """Test the root endpoint."""
    response = await client.get("/")

    assert response.status_code == 200
    data = response.json()

    assert data["name"] == "TenderGuard API"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_reports_billing_configuration(client: AsyncClient):
    response = await client.get("/health")

    assert response.json()["billing"] == {
        "revenuecat_api_key": True,
        "webhook_secret": True,
    }
