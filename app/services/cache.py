"""
Redis Cache Service
===================

Read-through cache for profile and billing responses.

Redis is optional: when it cannot be reached every read is a miss and
every write or delete is skipped with a warning, so requests fall through
to the database.
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from app.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "cache"

_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """
    Create the shared client and ping it once so failures surface early.

    The client is kept even when the ping fails: its pool reconnects on the
    next command, so an outage never builds a second client.
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
            socket_keepalive=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        await _redis_client.ping()
        logger.info("Redis connection established")

    return _redis_client


async def get_redis() -> Redis:
    if _redis_client is None:
        return await init_redis()
    return _redis_client


async def close_redis() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


class CacheManager:
    """
    JSON values stored under ``cache:{area}:{resource}:{user_id}``.

    TTLs:
        TTL_SHORT  auth lookups, profile, RevenueCat subscriber records
        TTL_HOUR   subscription status, product catalog
    """

    TTL_SHORT = 300
    TTL_HOUR = 3600

    @staticmethod
    async def get(key: str) -> Optional[Any]:
        """Return the decoded value, or None on a miss or Redis failure."""
        try:
            client = await get_redis()
            value = await client.get(key)
        except Exception as e:
            logger.warning("Cache get error for key %s: %s", key, e)
            return None

        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    @staticmethod
    async def set(key: str, value: Any, ttl: int = TTL_SHORT) -> bool:
        # default=str covers datetimes and Decimals in serialized rows
        try:
            client = await get_redis()
            await client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except Exception as e:
            logger.warning("Cache set error for key %s: %s", key, e)
            return False

    @staticmethod
    async def delete(key: str) -> bool:
        try:
            client = await get_redis()
            return await client.delete(key) > 0
        except Exception as e:
            logger.warning("Cache delete error for key %s: %s", key, e)
            return False

    @staticmethod
    async def delete_pattern(pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Uses SCAN rather than KEYS so large keyspaces are not blocked.
        Returns the number of keys removed.
        """
        try:
            client = await get_redis()
            keys = [key async for key in client.scan_iter(match=pattern)]
            if not keys:
                return 0
            return await client.delete(*keys)
        except Exception as e:
            logger.warning("Cache delete pattern error for %s: %s", pattern, e)
            return 0


# =============================================================================
# Cache Key Builders
# =============================================================================

def _key(*parts: str) -> str:
    return ":".join((KEY_PREFIX, *parts))


class CacheKeys:

    @staticmethod
    def user_auth(user_id: str) -> str:
        """Profile snapshot read by the auth dependency."""
        return _key("user", "auth", user_id)

    @staticmethod
    def profile(user_id: str) -> str:
        return _key("profile", user_id)

    @staticmethod
    def subscription_status(user_id: str) -> str:
        return _key("subscription", "status", user_id)

    @staticmethod
    def customer_info(user_id: str) -> str:
        return _key("subscription", "customer_info", user_id)

    @staticmethod
    def subscription_all(user_id: str) -> str:
        """Glob matching every per-user subscription entry."""
        return _key("subscription", "*", user_id)

    @staticmethod
    def packages() -> str:
        return _key("subscription", "packages")


# =============================================================================
# Cache Invalidation Helpers
# =============================================================================

class CacheInvalidator:

    @staticmethod
    async def on_profile_update(user_id: str) -> None:
        await CacheManager.delete(CacheKeys.profile(user_id))
        await CacheManager.delete(CacheKeys.user_auth(user_id))

    @staticmethod
    async def on_subscription_change(user_id: str) -> None:
        """Drop cached billing state after a purchase or webhook event."""
        await CacheManager.delete_pattern(CacheKeys.subscription_all(user_id))
        # The profile response embeds a subscription summary
        await CacheManager.delete(CacheKeys.profile(user_id))
