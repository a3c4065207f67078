from functools import lru_cache

from redis.asyncio import Redis

from crm_webhooks.core.config import get_settings


@lru_cache
def get_redis_client() -> Redis | None:
    """Return the shared Redis client, or None when no REDIS_URL is configured."""
    settings = get_settings()
    if settings.REDIS_URL is None:
        return None

    return Redis.from_url(settings.REDIS_URL.get_secret_value(), decode_responses=True)
