"""
Redis cache layer: async Redis client with JSON helpers.

Used for the area listing served to map/dashboard clients. The monitor
clears the ``areas`` namespace whenever a cycle changes any risk level,
so consumers never see a stale classification for longer than one cycle.

Every helper degrades to a cache miss when Redis is unset or unreachable.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from floodwatch.core.config import settings

logger = logging.getLogger(__name__)

AREAS_PREFIX = "areas"

# Lazy Redis client: initialised on first use
_redis_client = None


async def _get_redis():
    """Get or create the async Redis client (None when caching is disabled)."""
    global _redis_client
    if not settings.REDIS_URL:
        return None
    if _redis_client is None:
        try:
            import redis.asyncio as aioredis
            _redis_client = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as e:
            logger.warning("Redis unavailable: %s: caching disabled", e)
            return None
    return _redis_client


async def cache_get(key: str) -> Optional[Any]:
    """Get a cached value by key. Returns None on miss or error."""
    client = await _get_redis()
    if not client:
        return None
    try:
        raw = await client.get(key)
        if raw is not None:
            return json.loads(raw)
    except Exception as e:
        logger.warning("Cache GET error for %s: %s", key, e)
    return None


async def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    """Set a cached value with optional TTL (seconds)."""
    client = await _get_redis()
    if not client:
        return False
    try:
        await client.set(key, json.dumps(value, default=str), ex=ttl or settings.REDIS_CACHE_TTL)
        return True
    except Exception as e:
        logger.warning("Cache SET error for %s: %s", key, e)
        return False


async def cache_clear_prefix(prefix: str) -> int:
    """Delete all keys under a prefix. Returns the number removed."""
    client = await _get_redis()
    if not client:
        return 0
    try:
        keys = [key async for key in client.scan_iter(f"{prefix}*")]
        if keys:
            await client.delete(*keys)
        return len(keys)
    except Exception as e:
        logger.warning("Cache CLEAR error for %s*: %s", prefix, e)
        return 0


async def invalidate_area_cache(*_: Any) -> int:
    """Risk-change listener: drop every cached area view."""
    removed = await cache_clear_prefix(AREAS_PREFIX)
    if removed:
        logger.debug("Invalidated %d cached area views", removed)
    return removed


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
