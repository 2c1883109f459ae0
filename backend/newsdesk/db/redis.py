"""Redis clients plus rate limiting and lock helpers"""
import redis
import redis.asyncio as aioredis
import logging
from newsdesk.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None
_async_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def get_async_redis_client():
    """Get or create async Redis client (lazy initialization)

    Automatically recreates the client if it's tied to a different event loop,
    which can happen when tests create new event loops.
    """
    global _async_client
    import asyncio

    try:
        current_loop = asyncio.get_running_loop()
    except RuntimeError:
        return None

    if _async_client is not None:
        client_loop = getattr(_async_client.connection_pool, '_loop', None)
        if client_loop is not current_loop:
            _async_client = None

    if _async_client is None:
        _async_client = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=20
        )
        _async_client.connection_pool._loop = current_loop

    return _async_client


# Public newsletter endpoints (subscribe/unsubscribe) are rate limited per client IP
if settings.ENVIRONMENT == "development":
    RATE_LIMIT_WINDOW = 60  # seconds
    RATE_LIMIT_REQUESTS = 1000  # very lenient for dev
else:
    RATE_LIMIT_WINDOW = 60  # seconds
    RATE_LIMIT_REQUESTS = settings.PUBLIC_RATE_LIMIT_REQUESTS

SCHEDULER_LOCK_KEY = "lock:newsletter_scheduler"


def increment_rate_limit(identifier: str, window: int) -> int:
    """Increment a fixed-window rate limit counter and return the current count"""
    key = f"ratelimit:{identifier}"
    client = get_redis_client()
    count = client.incr(key)
    if count == 1:
        client.expire(key, window)
    return int(count)


def check_rate_limit(identifier: str) -> bool:
    """Check if request is within rate limit. Returns True if allowed, False if rate limited."""
    current_count = increment_rate_limit(identifier, RATE_LIMIT_WINDOW)
    return current_count <= RATE_LIMIT_REQUESTS


def acquire_lock(lock_key: str, timeout: int = 30) -> bool:
    """Acquire a distributed lock using Redis SET with NX and EX.

    Args:
        lock_key: The lock key to acquire
        timeout: Lock timeout in seconds (default 30)

    Returns:
        True if lock was acquired, False if lock already exists
    """
    result = get_redis_client().set(lock_key, "1", nx=True, ex=timeout)
    return result is True


def release_lock(lock_key: str) -> None:
    """Release a distributed lock by deleting the key."""
    get_redis_client().delete(lock_key)


def campaign_dispatch_lock_key(campaign_id: int) -> str:
    return f"lock:campaign_dispatch:{campaign_id}"


def refresh_lock(lock_key: str, timeout: int) -> bool:
    """Extend a held lock. Returns False if the lock has already expired."""
    return bool(get_redis_client().expire(lock_key, timeout))
