"""Read-through cache with best-effort invalidation.

Redis backs the cache when ``REDIS_URL`` is configured; otherwise entries
live in a per-process dictionary. Cache failures are logged and swallowed:
a stale or missing entry never fails a committed transaction.
"""

from __future__ import annotations

import json
import time
from typing import Any, Iterable
from uuid import UUID

import redis
from redis.exceptions import RedisError

from storefront.core.config import settings
from storefront.core.logging import get_logger

logger = get_logger(__name__)


def product_key(product_id: UUID | str) -> str:
    return f"product:{product_id}:stock"


def stock_keys(lines: Iterable[Any]) -> list[str]:
    """Stock-level keys for lines carrying ``product_id`` and ``variant_id``."""
    keys = []
    for line in lines:
        keys.append(product_key(line.product_id))
        if line.variant_id:
            keys.append(product_key(line.variant_id))
    return keys


VALID_COUPONS_KEY = "coupons:valid"


class CacheStore:
    def __init__(self, redis_url: str | None = None, prefix: str = "storefront", ttl_seconds: int = 300) -> None:
        self._prefix = prefix
        self._ttl = max(int(ttl_seconds), 1)
        self._store: dict[str, tuple[float, str]] = {}
        self._redis = redis.Redis.from_url(redis_url, decode_responses=True) if redis_url else None

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def get(self, key: str) -> dict | None:
        if self._redis:
            try:
                payload = self._redis.get(self._key(key))
            except RedisError as exc:
                logger.warning("Cache read failed", extra={"key": key, "error": str(exc)})
                return None
            return json.loads(payload) if payload else None

        entry = self._store.get(key)
        if not entry:
            return None
        expires_at, payload = entry
        if expires_at < time.time():
            self._store.pop(key, None)
            return None
        return json.loads(payload)

    def set(self, key: str, payload: dict[str, Any]) -> None:
        raw = json.dumps(payload, default=str)
        if self._redis:
            try:
                self._redis.setex(self._key(key), self._ttl, raw)
            except RedisError as exc:
                logger.warning("Cache write failed", extra={"key": key, "error": str(exc)})
            return
        self._store[key] = (time.time() + self._ttl, raw)

    def invalidate(self, keys: Iterable[str]) -> None:
        keys = [key for key in keys if key]
        if not keys:
            return
        if self._redis:
            try:
                self._redis.delete(*(self._key(key) for key in keys))
            except RedisError as exc:
                logger.warning("Cache invalidation failed", extra={"keys": keys, "error": str(exc)})
            return
        for key in keys:
            self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()


_cache: CacheStore | None = None


def get_cache() -> CacheStore:
    global _cache
    if _cache is None:
        _cache = CacheStore(
            redis_url=settings.REDIS_URL,
            prefix=settings.CACHE_PREFIX,
            ttl_seconds=settings.CACHE_TTL_SECONDS,
        )
    return _cache


def invalidate(*keys: str) -> None:
    get_cache().invalidate(keys)
