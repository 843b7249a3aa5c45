"""
Optional Redis connection manager.

Provides an async Redis client singleton that degrades gracefully
when REDIS_URL is not set or Redis is unreachable. Used to fan out
committed notifications to the realtime socket layer.
"""

import json
import logging
from typing import Optional

_log = logging.getLogger("careerhub.redis")

_redis_client = None  # type: Optional["redis.asyncio.Redis"]

NOTIFICATION_CHANNEL_PREFIX = "careerhub:notifications:"


async def init_redis() -> None:
    """Connect to Redis if REDIS_URL is configured. Safe to call always."""
    global _redis_client
    from careerhub.config import get_settings

    url = get_settings().redis_url
    if not url:
        _log.info("[redis] REDIS_URL not set - realtime push disabled")
        return

    try:
        import redis.asyncio as aioredis

        _redis_client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        await _redis_client.ping()
        _log.info("[redis] Connected successfully")
    except Exception as exc:
        _log.warning(f"[redis] Connection failed ({exc}) - running without Redis")
        _redis_client = None


async def close_redis() -> None:
    """Gracefully close the Redis connection pool."""
    global _redis_client
    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            _log.info("[redis] Connection closed")
        except Exception as exc:
            _log.warning(f"[redis] Error while closing: {exc}")
        _redis_client = None


def get_redis():
    """Return the Redis client or None if unavailable."""
    return _redis_client


def set_redis(client) -> None:
    """Swap the client (tests, or an externally managed pool)."""
    global _redis_client
    _redis_client = client


async def publish_notification(user_id: int, payload: dict) -> bool:
    """Publish one notification to the user's channel. Returns False when Redis is off."""
    r = get_redis()
    if r is None:
        return False
    await r.publish(f"{NOTIFICATION_CHANNEL_PREFIX}{user_id}", json.dumps(payload, default=str))
    return True
