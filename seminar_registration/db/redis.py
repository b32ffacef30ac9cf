# seminar_registration/db/redis.py
from typing import Optional

import redis

from seminar_registration.core.config import settings

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Shared Redis client, or None when REDIS_URL is not configured.

    Redis only coordinates the periodic jobs between instances, so a
    single-instance deployment can run without it.
    """
    global _redis_client
    if _redis_client is None and settings.REDIS_URL:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client
