import hashlib
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError

from feedstream.main.logging import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

PAGE_PREFIX = "feedstream:page:"
USER_INDEX_PREFIX = "feedstream:page-index:user:"
FEED_INDEX_PREFIX = "feedstream:page-index:feed:"


def page_cache_key(
    feed_ids: Iterable[int],
    offset: int,
    page_size: int,
    user_id: Optional[str] = None,
    scope: str = "merged",
) -> str:
    """Key for one page request; independent of feed id order."""
    ids = ",".join(str(feed_id) for feed_id in sorted(set(feed_ids)))
    digest = hashlib.sha1(ids.encode()).hexdigest()[:16]
    return f"{PAGE_PREFIX}{scope}:{user_id or 'anonymous'}:{digest}:{offset}:{page_size}"


class ResponseCache:
    """Short-lived page cache in redis.

    Advisory only: when redis misbehaves the value is computed directly.
    Every stored key is also recorded in per-user and per-feed index sets,
    which is what the invalidation calls walk.
    """

    def __init__(self, redis_client: aioredis.Redis, default_ttl_seconds: int = 300):
        self.redis = redis_client
        self.default_ttl_seconds = default_ttl_seconds

    async def get_or_compute(
        self,
        key: str,
        ttl: Optional[int],
        compute: Callable[[], Awaitable[M]],
        model: type[M],
        user_id: Optional[str] = None,
        feed_ids: Iterable[int] = (),
        cacheable: Optional[Callable[[M], bool]] = None,
    ) -> M:
        ttl = ttl or self.default_ttl_seconds

        try:
            cached = await self.redis.get(key)
        except RedisError as exc:
            logger.warning("Response cache unavailable, computing directly", extra={"error": str(exc)})
            return await compute()

        if cached is not None:
            try:
                return model.model_validate_json(cached)
            except ValidationError:
                logger.warning("Discarding unreadable cache entry", extra={"cache_key": key})

        value = await compute()

        if cacheable is not None and not cacheable(value):
            return value

        try:
            await self.redis.set(key, value.model_dump_json(by_alias=True), ex=ttl)
            index_keys = [f"{FEED_INDEX_PREFIX}{feed_id}" for feed_id in set(feed_ids)]
            if user_id is not None:
                index_keys.append(f"{USER_INDEX_PREFIX}{user_id}")
            for index_key in index_keys:
                await self.redis.sadd(index_key, key)
                await self.redis.expire(index_key, ttl)
        except RedisError as exc:
            logger.warning("Could not store response in cache", extra={"error": str(exc)})

        return value

    async def invalidate_user(self, user_id: str) -> int:
        return await self._invalidate([f"{USER_INDEX_PREFIX}{user_id}"])

    async def invalidate_feeds(self, feed_ids: Iterable[int]) -> int:
        return await self._invalidate(
            [f"{FEED_INDEX_PREFIX}{feed_id}" for feed_id in set(feed_ids)]
        )

    async def _invalidate(self, index_keys: list[str]) -> int:
        if not index_keys:
            return 0

        try:
            keys = set()
            for index_key in index_keys:
                keys.update(await self.redis.smembers(index_key))

            if keys:
                await self.redis.delete(*keys)
            await self.redis.delete(*index_keys)
        except RedisError as exc:
            logger.warning("Response cache invalidation failed", extra={"error": str(exc)})
            return 0

        logger.debug(f"Invalidated {len(keys)} cached pages")
        return len(keys)
