# ruff: noqa: PLW0603
"""Redis connection management.

Redis backs the per-user rate limits and the comment statistics cache. It is
optional: when the connection fails at startup the app keeps running without
rate limiting or caching.
"""

import redis.asyncio as redis

from src.config import get_settings
from src.core.logging import get_logger


logger = get_logger(__name__)

_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Create the connection pool and verify it with a ping."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    try:
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url)
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        raise

    return _redis_client


async def shutdown_redis() -> None:
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


# Key layout
def rate_limit_key(scope: str, user_id: str, window: str) -> str:
    """Counter key for ``scope`` (comments, reports) in a time window."""
    return f"rate_limit:{scope}:{user_id}:{window}"


def comment_stats_key(content_type: str | None, content_id: str | None) -> str:
    """Cache key for comment statistics, ``all`` standing for no filter."""
    return f"comments:stats:{content_type or 'all'}:{content_id or 'all'}"
