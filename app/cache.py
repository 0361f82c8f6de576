import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import settings

logger = logging.getLogger(__name__)

ARTICLE_LIST_PATTERN = "articles:list:*"
CATEGORY_LIST_KEY = "categories:list"


def article_list_key(page: int, page_size: int, category: int | None) -> str:
    return f"articles:list:{page}:{page_size}:{category or 'all'}"


def article_detail_key(slug: str) -> str:
    return f"articles:detail:{slug}"


class CacheManager:
    """
    Cache-aside store for public read endpoints, backed by Redis.

    Reads fall back to the database on any miss.  When Redis is down or
    was never connected, ``get`` reports a miss and writes/deletes are
    skipped, so a cache failure never turns into a failed request.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

    async def connect(self) -> None:
        """Open the connection pool at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except RedisError as exc:  # pragma: no cover
            logger.warning("Redis ping failed, caching disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> dict | list | None:
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
        except RedisError as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None
        if data is None:
            self._misses += 1
            return None
        self._hits += 1
        return json.loads(data)

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except RedisError as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete(self, *keys: str) -> None:
        if not self._redis or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except RedisError as exc:
            logger.debug("Cache DELETE error for keys=%r: %s", keys, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN (never KEYS)."""
        if not self._redis:
            return
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
        except RedisError as exc:
            logger.debug("Cache SCAN error for pattern=%r: %s", pattern, exc)
            return
        await self.delete(*keys)

    # ------------------------------------------------------------------
    # Invalidation on writes
    # ------------------------------------------------------------------

    async def invalidate_articles(self, *slugs: str) -> None:
        """Drop every list page, plus the detail entries for *slugs*."""
        await self.delete_pattern(ARTICLE_LIST_PATTERN)
        await self.delete(*(article_detail_key(slug) for slug in slugs))

    async def invalidate_categories(self) -> None:
        # Article payloads embed the category name.
        await self.delete(CATEGORY_LIST_KEY)
        await self.delete_pattern("articles:*")

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
