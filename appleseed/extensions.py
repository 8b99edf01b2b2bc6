"""
Shared client instances.

The Redis connection is created lazily so importing this module never needs a
running server (tests, dry runs, SQLite-only use).
"""
import logging

import redis

from appleseed.config import REDIS_URL

logger = logging.getLogger('appleseed.extensions')

_redis_client = None


def get_redis(url=None):
    """Process-wide Redis client for breaker state."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(url or REDIS_URL, decode_responses=True,
                                       socket_connect_timeout=2, socket_timeout=2)
        logger.debug("Redis client created for %s", url or REDIS_URL)
    return _redis_client
