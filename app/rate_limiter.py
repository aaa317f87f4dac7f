"""
Hybrid in-memory + Redis rate limiting utilities
Counts live in process memory and are synced to Redis every few seconds so that
several API processes share roughly the same window. Without Redis the limiter
keeps working from memory alone.
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None
redis_retry_after = 0

# In-memory cache for rate limiting
# Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
memory_cache: dict[str, dict] = {}
cache_lock = Lock()

# Configuration
MEMORY_CACHE_SYNC_INTERVAL = 10  # Sync to Redis every 10 seconds
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds
REDIS_RECONNECT_INTERVAL = 60
last_cleanup_time = 0


def _connect() -> redis.Redis:
    redis_url = os.getenv("REDIS_URL")
    options = {
        "decode_responses": True,
        "socket_connect_timeout": 5,
        "socket_timeout": 5,
        "retry_on_timeout": True,
        "health_check_interval": 30,
        "max_connections": 20,
    }

    if redis_url:
        masked_url = f"{redis_url.split(':')[0]}:****@{redis_url.split('@')[-1]}" if "@" in redis_url else "****"
        logger.info(f"📡 Using Redis URL connection: {masked_url}")
        client = redis.from_url(redis_url, **options)
    else:
        redis_host = os.getenv("REDIS_HOST", "localhost")
        redis_port = int(os.getenv("REDIS_PORT", "6379"))
        redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
        logger.info(f"📡 Using Redis at {redis_host}:{redis_port} ({'SSL' if redis_ssl else 'no SSL'})")
        client = redis.Redis(
            host=redis_host,
            port=redis_port,
            password=os.getenv("REDIS_PASSWORD") or None,
            db=int(os.getenv("REDIS_DB", "0")),
            ssl=redis_ssl,
            **options,
        )

    client.ping()
    return client


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client.

    Returns None while Redis is unreachable; a new connection is attempted at
    most once per REDIS_RECONNECT_INTERVAL.
    """
    global redis_client, redis_retry_after

    if redis_client is not None:
        return redis_client

    now = int(time.time())
    if now < redis_retry_after:
        return None

    logger.info("🔄 Initializing Redis connection for rate limiting...")
    try:
        redis_client = _connect()
        logger.info("✅ Redis connected for rate limiting")
    except Exception as e:
        redis_retry_after = now + REDIS_RECONNECT_INTERVAL
        logger.warning(f"⚠️ Redis unavailable, rate limiting from memory only: {e}")
        return None

    return redis_client


def cleanup_expired_cache():
    """Remove expired entries from memory cache"""
    global last_cleanup_time
    current_time = int(time.time())

    if current_time - last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
        return

    with cache_lock:
        expired_keys = [k for k, v in memory_cache.items() if current_time >= v.get("reset_time", 0)]
        for k in expired_keys:
            del memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

    last_cleanup_time = current_time


def _new_entry(key: str, window_seconds: int, current_time: int, client: Optional[redis.Redis]) -> dict:
    """Seed a window from Redis when another process already started it"""
    if client is not None:
        try:
            redis_count = client.get(key)
            redis_ttl = client.ttl(key)
            if redis_count and redis_ttl > 0:
                return {
                    "count": int(redis_count),
                    "reset_time": current_time + redis_ttl,
                    "last_redis_sync": current_time,
                }
        except Exception as e:
            logger.warning(f"⚠️ Failed to load from Redis, using memory only: {e}")

    return {"count": 0, "reset_time": current_time + window_seconds, "last_redis_sync": current_time}


def check_rate_limit(
    key: str, limit: int, window_seconds: int, redis_client: Optional[redis.Redis]
) -> tuple[bool, int, int]:
    """Fixed-window check against the in-memory cache, periodically synced to Redis

    Args:
        key: Redis key for this rate limit
        limit: Maximum number of requests allowed
        window_seconds: Time window in seconds
        redis_client: Redis client instance, or None for memory only

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    current_time = int(time.time())
    cleanup_expired_cache()

    with cache_lock:
        if key not in memory_cache:
            memory_cache[key] = _new_entry(key, window_seconds, current_time, redis_client)

        cache_entry = memory_cache[key]

        # Window expired
        if current_time >= cache_entry["reset_time"]:
            cache_entry["count"] = 0
            cache_entry["reset_time"] = current_time + window_seconds
            cache_entry["last_redis_sync"] = 0

        is_allowed = cache_entry["count"] < limit
        if is_allowed:
            cache_entry["count"] += 1

        # Sync to Redis periodically (not on every request!)
        time_since_sync = current_time - cache_entry.get("last_redis_sync", 0)
        if redis_client is not None and time_since_sync >= MEMORY_CACHE_SYNC_INTERVAL:
            try:
                ttl_left = max(1, cache_entry["reset_time"] - current_time)
                redis_client.set(key, cache_entry["count"], ex=ttl_left)
                cache_entry["last_redis_sync"] = current_time
                logger.debug(f"📡 Synced {key} to Redis: {cache_entry['count']}/{limit}")
            except Exception as e:
                logger.warning(f"⚠️ Failed to sync to Redis: {e}")

        ttl = cache_entry["reset_time"] - current_time
        return is_allowed, cache_entry["count"], max(0, ttl)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
):
    """
    FastAPI dependency for rate limiting

    Args:
        request: FastAPI request object
        limit: Maximum requests allowed
        window_seconds: Time window in seconds
        key_prefix: Prefix for Redis key
        use_ip: If True, use client IP in key (per-IP limit), otherwise global
    """
    key = f"{key_prefix}:{get_client_ip(request)}" if use_ip else f"{key_prefix}:global"

    is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, get_redis_client())

    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
        raise HTTPException(
            status_code=429,
            detail={
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after": ttl,
                "limit": limit,
                "window_seconds": window_seconds,
            },
            headers={"Retry-After": str(ttl)},
        )

    request.state.rate_limit_remaining = limit - current_count
    request.state.rate_limit_limit = limit
    request.state.rate_limit_reset = int(time.time()) + ttl


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        rate_limit_5_per_hour = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="password_reset")

        @router.post("/reset-password")
        async def reset_password(
            data: ResetPasswordRequest,
            _: None = Depends(rate_limit_5_per_hour)
        ):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter


# Presets
auth_rate_limit = create_rate_limiter(limit=5, window_seconds=60, key_prefix="login")
prospect_rate_limit = create_rate_limiter(limit=5, window_seconds=60, key_prefix="prospect")
feedback_rate_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="feedback")
cron_rate_limit = create_rate_limiter(limit=2, window_seconds=60, key_prefix="cron", use_ip=False)
bulk_rate_limit = create_rate_limiter(limit=5, window_seconds=60, key_prefix="bulk")
