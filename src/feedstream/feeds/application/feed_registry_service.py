from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from feedstream.database.database import SessionScope
from feedstream.feeds.domain.feed import Feed, utcnow
from feedstream.feeds.domain.refresh_batch import RefreshFeedItem
from feedstream.feeds.domain.staleness import StalenessChecker
from feedstream.feeds.infrastructure.feed_repo import FeedRepository


@dataclass
class StaleCheck:
    stale_feed_titles: list[str] = field(default_factory=list)
    total_checked: int = 0

    @property
    def stale_count(self) -> int:
        return len(self.stale_feed_titles)


class FeedRegistryService:
    def __init__(self, session_scope: SessionScope, staleness_checker: StalenessChecker):
        self.session_scope = session_scope
        self.staleness_checker = staleness_checker

    async def register(self, items: Sequence[RefreshFeedItem]) -> list[Feed]:
        """Get or create a feed per item, in item order, once per URL."""
        feeds: dict[str, Feed] = {}
        async with self.session_scope() as session:
            repo = FeedRepository(session)
            for item in items:
                if item.feed_url in feeds:
                    continue
                feeds[item.feed_url] = await repo.get_or_create(
                    item.feed_url, item.post_title, item.media_type
                )
        return list(feeds.values())

    async def check_stale(
        self, post_titles: Sequence[str], now: Optional[datetime] = None
    ) -> StaleCheck:
        """Which of the given titles need a refresh; unknown titles are left out."""
        now = now or utcnow()
        titles = list(dict.fromkeys(post_titles))
        if not titles:
            return StaleCheck()

        async with self.session_scope() as session:
            stale = await FeedRepository(session).find_stale_titles(
                titles, now=now, stale_before=self.staleness_checker.stale_before(now)
            )
        return StaleCheck(stale_feed_titles=stale, total_checked=len(titles))

    async def find_stale_feeds(
        self, limit: int, now: Optional[datetime] = None
    ) -> list[Feed]:
        now = now or utcnow()
        async with self.session_scope() as session:
            return await FeedRepository(session).find_stale_feeds(
                now=now, stale_before=self.staleness_checker.stale_before(now), limit=limit
            )
