# classifieds/core/redis.py
import logging

import redis
from redis.asyncio import Redis
from classifieds.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis = None
cache_client: redis.Redis = None

async def get_redis_client() -> Redis:
    global redis_client
    if redis_client is None:
        redis_client = Redis.from_url(settings.REDIS_URL)
    return redis_client

def get_cache_client() -> redis.Redis:
    """Synchronous client for the read-through caches used by sync request handlers."""
    global cache_client
    if cache_client is None:
        cache_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return cache_client

async def is_email_resend_throttled(email: str) -> bool:
    client = await get_redis_client()
    key = f"email_resend_cooldown:{email}"
    try:
        # SETNX + EXPIRE in one pipeline; SETNX returns 0 when the key already existed
        pipe = client.pipeline()
        pipe.setnx(key, 1)
        pipe.expire(key, settings.EMAIL_RESEND_COOLDOWN_SECONDS)
        results = await pipe.execute()
    except redis.RedisError as e:
        logger.warning("Resend throttle unavailable for %s: %s", email, e)
        return False

    return results[0] == 0
