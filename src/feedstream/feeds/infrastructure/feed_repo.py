from datetime import datetime, timedelta
from typing import Iterable, Optional

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from feedstream.database.tables.feeds_table import Feeds
from feedstream.feeds.domain.feed import Feed


def dialect_insert(session: AsyncSession):
    """`insert()` of the bound dialect, so ON CONFLICT is available on both."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


class FeedRepository:
    """Entity store for feeds.

    Lock state lives on the feed row itself; ``try_acquire_lock`` is a single
    conditional UPDATE and the only way ``lock_until`` gets set.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_many(self, query: sa.Select) -> list[Feed]:
        records = await self.session.scalars(query)
        return [Feed.to_domain(record) for record in records]

    async def get(self, feed_id: int) -> Optional[Feed]:
        record = await self.session.scalar(sa.select(Feeds).where(Feeds.id == feed_id))
        if record is None:
            return None
        return Feed.to_domain(record)

    async def get_by_url(self, feed_url: str) -> Optional[Feed]:
        record = await self.session.scalar(
            sa.select(Feeds).where(Feeds.feed_url == feed_url)
        )
        if record is None:
            return None
        return Feed.to_domain(record)

    async def get_or_create(
        self, feed_url: str, title: str, media_type: Optional[str] = None
    ) -> Feed:
        insert = dialect_insert(self.session)
        stmt = (
            insert(Feeds)
            .values(feed_url=feed_url, title=title, media_type=media_type)
            .on_conflict_do_nothing(index_elements=["feed_url"])
        )
        await self.session.execute(stmt)

        feed = await self.get_by_url(feed_url)

        if media_type is not None and feed.media_type != media_type:
            await self.session.execute(
                sa.update(Feeds).where(Feeds.id == feed.id).values(media_type=media_type)
            )
            feed.media_type = media_type

        return feed

    async def get_by_ids(self, feed_ids: Iterable[int]) -> list[Feed]:
        feed_ids = list(feed_ids)
        if not feed_ids:
            return []
        return await self._get_many(
            sa.select(Feeds).where(Feeds.id.in_(feed_ids)).order_by(Feeds.id)
        )

    async def get_by_titles(self, titles: Iterable[str]) -> list[Feed]:
        titles = list(titles)
        if not titles:
            return []
        return await self._get_many(
            sa.select(Feeds).where(Feeds.title.in_(titles)).order_by(Feeds.id)
        )

    async def get_by_urls(self, feed_urls: Iterable[str]) -> list[Feed]:
        feed_urls = list(feed_urls)
        if not feed_urls:
            return []
        return await self._get_many(
            sa.select(Feeds).where(Feeds.feed_url.in_(feed_urls)).order_by(Feeds.id)
        )

    async def resolve_feed_ids(
        self,
        feed_ids: Optional[Iterable[int]] = None,
        titles: Optional[Iterable[str]] = None,
        feed_urls: Optional[Iterable[str]] = None,
    ) -> list[int]:
        """Ids of every known feed matching any of the given identifiers.

        Unknown identifiers are ignored. Result is sorted and free of duplicates.
        """
        conditions = []
        if feed_ids:
            conditions.append(Feeds.id.in_(list(feed_ids)))
        if titles:
            conditions.append(Feeds.title.in_(list(titles)))
        if feed_urls:
            conditions.append(Feeds.feed_url.in_(list(feed_urls)))

        if not conditions:
            return []

        query = sa.select(Feeds.id).where(sa.or_(*conditions)).order_by(Feeds.id)
        result = await self.session.scalars(query)
        return list(dict.fromkeys(result))

    async def try_acquire_lock(
        self,
        feed_id: int,
        now: datetime,
        ttl: timedelta,
        stale_before: Optional[datetime] = None,
    ) -> Optional[datetime]:
        """Claim the refresh lock with one conditional UPDATE.

        Matches only when the lock is free or expired. With ``stale_before``
        the feed must also still be stale, so a refresh that completed between
        the caller's staleness check and this claim is not repeated.

        Returns the new ``lock_until`` on success, None when someone else owns it.
        """
        lock_until = now + ttl
        conditions = [
            Feeds.id == feed_id,
            sa.or_(Feeds.lock_until.is_(None), Feeds.lock_until < now),
        ]
        if stale_before is not None:
            conditions.append(
                sa.or_(
                    Feeds.last_fetched_at.is_(None),
                    Feeds.last_fetched_at <= stale_before,
                )
            )

        stmt = (
            sa.update(Feeds)
            .where(*conditions)
            .values(lock_until=lock_until)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount != 1:
            return None

        return lock_until

    async def release_lock_success(
        self, feed_id: int, now: datetime, lock_until: Optional[datetime] = None
    ) -> bool:
        stmt = sa.update(Feeds).where(Feeds.id == feed_id)
        if lock_until is not None:
            stmt = stmt.where(Feeds.lock_until == lock_until)

        result = await self.session.execute(
            stmt.values(
                lock_until=None,
                last_fetched_at=now,
                consecutive_failures=0,
                next_retry_at=None,
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_lock_failure(
        self,
        feed_id: int,
        next_retry_at: Optional[datetime],
        lock_until: Optional[datetime] = None,
    ) -> bool:
        """Clear the lock without freshness credit and count the failure."""
        stmt = sa.update(Feeds).where(Feeds.id == feed_id)
        if lock_until is not None:
            stmt = stmt.where(Feeds.lock_until == lock_until)

        result = await self.session.execute(
            stmt.values(
                lock_until=None,
                consecutive_failures=Feeds.consecutive_failures + 1,
                next_retry_at=next_retry_at,
            ).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_stale_titles(
        self, titles: Iterable[str], now: datetime, stale_before: datetime
    ) -> list[str]:
        titles = list(titles)
        if not titles:
            return []

        query = (
            sa.select(Feeds.title)
            .where(
                Feeds.title.in_(titles),
                sa.or_(
                    Feeds.last_fetched_at.is_(None),
                    Feeds.last_fetched_at <= stale_before,
                ),
                sa.or_(Feeds.next_retry_at.is_(None), Feeds.next_retry_at <= now),
            )
            .order_by(Feeds.title)
        )
        result = await self.session.scalars(query)
        return list(dict.fromkeys(result))

    async def find_stale_feeds(
        self, now: datetime, stale_before: datetime, limit: int
    ) -> list[Feed]:
        """Stale, unlocked feeds not backing off; never-fetched and oldest first."""
        query = (
            sa.select(Feeds)
            .where(
                sa.or_(
                    Feeds.last_fetched_at.is_(None),
                    Feeds.last_fetched_at <= stale_before,
                ),
                sa.or_(Feeds.lock_until.is_(None), Feeds.lock_until < now),
                sa.or_(Feeds.next_retry_at.is_(None), Feeds.next_retry_at <= now),
            )
            .order_by(sa.nulls_first(Feeds.last_fetched_at.asc()), Feeds.id)
            .limit(limit)
        )
        return await self._get_many(query)

    async def clear_expired_locks(self, now: datetime) -> int:
        stmt = (
            sa.update(Feeds)
            .where(Feeds.lock_until.is_not(None), Feeds.lock_until < now)
            .values(lock_until=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount
