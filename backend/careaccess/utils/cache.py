"""Redis caching for resolved permission sets.

Effective permission ids are memoized per (user, context type,
organization) under the `effective:` prefix. Every mutation that can
change a resolution result calls `invalidate_effective_permissions()`.

Caching is off unless `settings.permission_cache_enabled` is set; when
Redis is unreachable every helper logs and falls back to a miss.
"""

import json
import logging
from typing import Optional

import redis.asyncio as redis

from careaccess.config import settings

logger = logging.getLogger(__name__)

EFFECTIVE_PREFIX = "effective"

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def effective_key(
    user_id: str,
    context_type: str | None,
    organization_id: str | None,
    enforce_window: bool,
) -> str:
    return (
        f"{EFFECTIVE_PREFIX}:{user_id}:{context_type or '*'}:"
        f"{organization_id or '*'}:{int(enforce_window)}"
    )


async def get_cached_permission_ids(key: str) -> set[str] | None:
    """Return the cached id set, or None on miss / disabled / Redis error."""
    if not settings.permission_cache_enabled:
        return None
    try:
        redis_client = await get_redis()
        cached_value = await redis_client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis error (falling back to uncached): {e}")
        return None

    if cached_value is None:
        logger.debug(f"Cache MISS: {key}")
        return None
    logger.debug(f"Cache HIT: {key}")
    return set(json.loads(cached_value))


async def store_permission_ids(key: str, permission_ids: set[str]) -> None:
    if not settings.permission_cache_enabled:
        return
    try:
        redis_client = await get_redis()
        await redis_client.setex(
            key,
            settings.permission_cache_ttl,
            json.dumps(sorted(permission_ids)),
        )
    except redis.RedisError as e:
        logger.warning(f"Failed to cache {key}: {e}")


async def invalidate_cache(pattern: str):
    """Invalidate cache keys matching a pattern.

    Args:
        pattern: Redis key pattern (e.g., "effective:*")
    """
    if not settings.permission_cache_enabled:
        return
    try:
        redis_client = await get_redis()
        keys = []
        async for key in redis_client.scan_iter(match=pattern):
            keys.append(key)

        if keys:
            await redis_client.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching {pattern}")
    except redis.RedisError as e:
        logger.warning(f"Failed to invalidate cache: {e}")


async def invalidate_effective_permissions(user_id: str | None = None):
    """Drop cached resolutions for one user, or for everyone."""
    if user_id:
        await invalidate_cache(f"{EFFECTIVE_PREFIX}:{user_id}:*")
    else:
        await invalidate_cache(f"{EFFECTIVE_PREFIX}:*")
