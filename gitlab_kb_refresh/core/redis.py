"""Redis connection management - no caching to avoid event loop issues."""

import logging
from typing import Optional

from redis.asyncio import Redis

from gitlab_kb_refresh.core.config import settings

logger = logging.getLogger(__name__)


def get_redis_client(url: Optional[str] = None) -> Redis:
    """Get Redis client (creates fresh client to avoid event loop issues)."""
    redis_url = url or settings.redis_url.get_secret_value()
    redis_password = settings.redis_password.get_secret_value() if settings.redis_password else None
    return Redis.from_url(
        url=redis_url,
        password=redis_password,
        decode_responses=False,
    )


async def ping_redis(redis_client: Optional[Redis] = None) -> bool:
    """Check Redis connectivity."""
    client = redis_client or get_redis_client()
    try:
        return bool(await client.ping())
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        return False
