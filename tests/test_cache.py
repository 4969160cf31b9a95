"""
Redis Cache Tests
=================

Tests for CacheManager operations and cache invalidation, including
graceful degradation when Redis fails.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.services import cache as cache_module
from app.services.cache import CacheInvalidator, CacheKeys, CacheManager


async def _aiter(items):
    for item in items:
        yield item


class TestCacheManager:

    @pytest.mark.asyncio
    async def test_get_decodes_json(self):
        mock_client = AsyncMock()
        mock_client.get.return_value = json.dumps({"status": "active"})

        with patch("app.services.cache.get_redis", new=AsyncMock(return_value=mock_client)):
            result = await CacheManager.get("cache:subscription:status:u1")

        assert result == {"status": "active"}

    @pytest.mark.asyncio
    async def test_get_miss(self):
        mock_client = AsyncMock()
        mock_client.get.return_value = None

        with patch("app.services.cache.get_redis", new=AsyncMock(return_value=mock_client)):
            assert await CacheManager.get("missing") is None

    @pytest.mark.asyncio
    async def test_get_returns_none_on_redis_error(self):
        mock_client = AsyncMock()
        mock_client.get.side_effect = ConnectionError("Redis down")

        with patch("app.services.cache.get_redis", new=AsyncMock(return_value=mock_client)):
            assert await CacheManager.get("key") is None

    @pytest.mark.asyncio
    async def test_get_discards_corrupt_entry(self):
        mock_client = AsyncMock()
        mock_client.get.return_value = "{not json"

        with patch("app.services.cache.get_redis", new=AsyncMock(return_value=mock_client)):
            assert await CacheManager.get("key") is None

    @pytest.mark.asyncio
    async def test_set_uses_ttl(self):
        mock_client = AsyncMock()

        with patch("app.services.cache.get_redis", new=AsyncMock(return_value=mock_client)):
            ok = await CacheManager.set("key", {"a": 1}, ttl=CacheManager.TTL_HOUR)

        assert ok is True
        mock_client.setex.assert_awaited_once_with("key", 3600, json.dumps({"a": 1}))

    @pytest.mark.asyncio
    async def test_set_returns_false_on_redis_error(self):
        mock_client = AsyncMock()
        mock_client.setex.side_effect = ConnectionError("Redis down")

        with patch("app.services.cache.get_redis", new=AsyncMock(return_value=mock_client)):
            assert await CacheManager.set("key", {"a": 1}) is False

    @pytest.mark.asyncio
    async def test_delete_pattern_removes_matching_keys(self):
        mock_client = MagicMock()
        mock_client.scan_iter.return_value = _aiter(["k1", "k2"])
        mock_client.delete = AsyncMock(return_value=2)

        with patch("app.services.cache.get_redis", new=AsyncMock(return_value=mock_client)):
            deleted = await CacheManager.delete_pattern("cache:subscription:*:u1")

        assert deleted == 2
        mock_client.scan_iter.assert_called_once_with(match="cache:subscription:*:u1")
        mock_client.delete.assert_awaited_once_with("k1", "k2")


class TestCacheInvalidator:

    @pytest.mark.asyncio
    async def test_subscription_change_clears_subscription_and_profile_keys(self):
        with patch.object(CacheManager, "delete_pattern", new=AsyncMock()) as mock_pattern, \
                patch.object(CacheManager, "delete", new=AsyncMock()) as mock_delete:
            await CacheInvalidator.on_subscription_change("u1")

        mock_pattern.assert_awaited_once_with("cache:subscription:*:u1")
        mock_delete.assert_awaited_once_with(CacheKeys.profile("u1"))

    @pytest.mark.asyncio
    async def test_profile_update_clears_profile_and_auth_keys(self):
        with patch.object(CacheManager, "delete", new=AsyncMock()) as mock_delete:
            await CacheInvalidator.on_profile_update("u1")

        deleted = [call.args[0] for call in mock_delete.await_args_list]
        assert deleted == [CacheKeys.profile("u1"), CacheKeys.user_auth("u1")]

    def test_subscription_keys_share_pattern(self):
        assert CacheKeys.subscription_status("u1").startswith("cache:subscription:")
        assert CacheKeys.customer_info("u1").endswith(":u1")


class TestRedisClient:

    @pytest.mark.asyncio
    async def test_failed_ping_keeps_a_single_client(self, monkeypatch):
        mock_client = MagicMock()
        mock_client.ping = AsyncMock(side_effect=ConnectionError("Redis down"))
        from_url = MagicMock(return_value=mock_client)

        monkeypatch.setattr(cache_module, "_redis_client", None)
        monkeypatch.setattr(cache_module.redis, "from_url", from_url)

        with pytest.raises(ConnectionError):
            await cache_module.init_redis()

        assert await cache_module.init_redis() is mock_client
        assert await cache_module.init_redis() is mock_client
        from_url.assert_called_once()
        mock_client.ping.assert_awaited_once()
