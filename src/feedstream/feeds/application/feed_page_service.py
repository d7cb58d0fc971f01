from typing import Optional, Sequence

from feedstream.database.database import SessionScope
from feedstream.feeds.application.merge_service import MergeService
from feedstream.feeds.domain.merged_page import MergedPage
from feedstream.feeds.infrastructure.feed_repo import FeedRepository
from feedstream.feeds.infrastructure.response_cache import ResponseCache, page_cache_key
from feedstream.main.exceptions import NotFoundException, StoreUnavailableError
from feedstream.main.logging import get_logger

logger = get_logger(__name__)


class FeedPageService:
    """Cached page reads; ``refresh`` drops the affected cache entries first."""

    def __init__(
        self,
        session_scope: SessionScope,
        merge_service: MergeService,
        response_cache: ResponseCache,
        cache_ttl_seconds: int,
    ):
        self.session_scope = session_scope
        self.merge_service = merge_service
        self.response_cache = response_cache
        self.cache_ttl_seconds = cache_ttl_seconds

    async def get_page(
        self,
        offset: int,
        page_size: int,
        feed_ids: Optional[Sequence[int]] = None,
        post_titles: Optional[Sequence[str]] = None,
        feed_urls: Optional[Sequence[str]] = None,
        user_id: Optional[str] = None,
        refresh: bool = False,
    ) -> MergedPage:
        try:
            async with self.session_scope() as session:
                resolved = await FeedRepository(session).resolve_feed_ids(
                    feed_ids=feed_ids, titles=post_titles, feed_urls=feed_urls
                )
        except StoreUnavailableError:
            return MergedPage(offset=offset, page_size=page_size, degraded=True)

        if refresh:
            await self._invalidate(resolved, user_id)

        return await self.response_cache.get_or_compute(
            page_cache_key(resolved, offset, page_size, user_id=user_id),
            self.cache_ttl_seconds,
            lambda: self.merge_service.page(resolved, offset, page_size, user_id=user_id),
            MergedPage,
            user_id=user_id,
            feed_ids=resolved,
            cacheable=lambda page: page.cacheable,
        )

    async def get_feed_page(
        self,
        feed_id: int,
        offset: int,
        page_size: int,
        user_id: Optional[str] = None,
        refresh: bool = False,
    ) -> MergedPage:
        try:
            async with self.session_scope() as session:
                feed = await FeedRepository(session).get(feed_id)
        except StoreUnavailableError:
            return MergedPage(offset=offset, page_size=page_size, degraded=True)

        if feed is None:
            raise NotFoundException(f"Feed {feed_id} not found")

        if refresh:
            await self._invalidate([feed_id], user_id)

        return await self.response_cache.get_or_compute(
            page_cache_key([feed_id], offset, page_size, user_id=user_id, scope="feed"),
            self.cache_ttl_seconds,
            lambda: self.merge_service.page([feed_id], offset, page_size, user_id=user_id),
            MergedPage,
            user_id=user_id,
            feed_ids=[feed_id],
            cacheable=lambda page: page.cacheable,
        )

    async def _invalidate(self, feed_ids: Sequence[int], user_id: Optional[str]) -> None:
        if user_id is not None:
            await self.response_cache.invalidate_user(user_id)
        await self.response_cache.invalidate_feeds(feed_ids)
        logger.debug("Cache invalidated on refresh request", extra={"user_id": user_id})
