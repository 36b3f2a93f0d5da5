import time
import json
import fnmatch
import logging
from typing import Any, Callable, Optional

import redis

from .settings import settings

logger = logging.getLogger(__name__)

# Mutations call invalidate_content_caches(), which clears these
CONTENT_CACHE_PATTERNS = ("stats_*", "articles_featured_*")


class CacheManager:
    """
    Redis-backed cache when REDIS_URL is configured, otherwise a per-process
    dict with TTLs. Values must be JSON-serializable.
    """
    def __init__(self, redis_url: Optional[str] = None):
        self.redis_client = None
        self.memory_cache: dict[str, tuple[Any, float]] = {}

        if redis_url:
            try:
                self.redis_client = redis.from_url(redis_url)
                self.redis_client.ping()
                logger.info("Connected to Redis for caching.")
            except redis.RedisError as e:
                logger.error(f"Redis connection failed: {e}. Using in-process cache.")
                self.redis_client = None

    def _memory_get(self, key: str) -> Optional[Any]:
        entry = self.memory_cache.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.time() >= expires_at:
            self.memory_cache.pop(key, None)
            return None
        return value

    def get(self, key: str) -> Optional[Any]:
        if self.redis_client is None:
            return self._memory_get(key)
        try:
            raw = self.redis_client.get(key)
        except redis.RedisError as e:
            logger.error(f"Redis get {key} failed: {e}")
            return None
        return json.loads(raw) if raw else None

    def set(self, key: str, value: Any, ttl: int = 300):
        if self.redis_client is not None:
            try:
                self.redis_client.setex(key, ttl, json.dumps(value, default=str))
                return
            except redis.RedisError as e:
                logger.error(f"Redis set {key} failed: {e}")
        self.memory_cache[key] = (value, time.time() + ttl)

    def get_or_set(self, key: str, factory: Callable[[], Any], ttl: int = 300) -> tuple[Any, bool]:
        """Return ``(value, hit)``; ``factory`` only runs on a miss."""
        cached = self.get(key)
        if cached is not None:
            return cached, True
        value = factory()
        self.set(key, value, ttl=ttl)
        return value, False

    def delete(self, key: str):
        if self.redis_client is not None:
            try:
                self.redis_client.delete(key)
            except redis.RedisError as e:
                logger.error(f"Redis delete {key} failed: {e}")
        self.memory_cache.pop(key, None)

    def delete_match(self, pattern: str):
        """Delete every key matching a glob pattern such as 'stats_*'."""
        if self.redis_client is not None:
            try:
                keys = list(self.redis_client.scan_iter(match=pattern, count=100))
                if keys:
                    self.redis_client.delete(*keys)
            except redis.RedisError as e:
                logger.error(f"Redis delete {pattern} failed: {e}")

        for key in [k for k in self.memory_cache if fnmatch.fnmatch(k, pattern)]:
            del self.memory_cache[key]

    def clear(self):
        self.delete_match("*")


cache = CacheManager(settings.redis_url)


def invalidate_content_caches():
    for pattern in CONTENT_CACHE_PATTERNS:
        cache.delete_match(pattern)
