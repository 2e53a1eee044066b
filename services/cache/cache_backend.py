# services/cache/cache_backend.py
"""
Two-level TTL cache for quote-like numeric values.

Level 1 is a per-process dict. Level 2 is Redis, used only when
CACHE_REDIS_URL is set, so several API workers share recent prices.
A Redis outage degrades to process-local caching; it never fails a lookup.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Dict, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = int(os.getenv("CACHE_DEFAULT_TTL_SEC", "60"))
LOCAL_TTL_CAP_SEC = int(os.getenv("CACHE_LOCAL_TTL_SEC", "60"))
REDIS_PREFIX = os.getenv("REDIS_PREFIX", "kongbot:")
REDIS_URL = os.getenv("CACHE_REDIS_URL")

# key -> (expires_at, value)
_LOCAL: Dict[str, Tuple[float, float]] = {}

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Shared client, created on first use. None when Redis is not configured."""
    global _redis_client
    if _redis_client is None and REDIS_URL:
        _redis_client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
    return _redis_client


def _key(key: str) -> str:
    return (key or "").strip().upper()


def cache_clear_local() -> None:
    _LOCAL.clear()


def cache_get(key: str) -> Optional[float]:
    k = _key(key)
    if not k:
        return None

    hit = _LOCAL.get(k)
    if hit is not None:
        expires_at, value = hit
        if time.time() <= expires_at:
            return value
        del _LOCAL[k]

    r = get_redis_client()
    if r is None:
        return None
    try:
        raw = r.get(REDIS_PREFIX + k)
    except redis.RedisError as e:
        logger.warning("cache_redis_get_failed error=%s", e)
        return None
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    _LOCAL[k] = (time.time() + LOCAL_TTL_CAP_SEC, value)
    return value


def cache_set(key: str, value: float, ttl_seconds: int = DEFAULT_TTL_SEC) -> None:
    k = _key(key)
    if not k:
        return
    ttl = ttl_seconds if ttl_seconds and ttl_seconds > 0 else DEFAULT_TTL_SEC
    _LOCAL[k] = (time.time() + min(ttl, LOCAL_TTL_CAP_SEC), value)

    r = get_redis_client()
    if r is None:
        return
    try:
        r.setex(REDIS_PREFIX + k, ttl, repr(value))
    except redis.RedisError as e:
        logger.warning("cache_redis_set_failed error=%s", e)
