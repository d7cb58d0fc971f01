from typing import Iterable, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from feedstream.database.tables.feed_entries_table import FeedEntries
from feedstream.database.tables.feeds_table import Feeds
from feedstream.feeds.domain.feed import FeedEntry, StoredEntry
from feedstream.feeds.infrastructure.feed_repo import dialect_insert

# Newest first; row id breaks publish-date ties
ENTRY_ORDER = (FeedEntries.published_at.desc(), FeedEntries.id.desc())


class EntryRepository:
    """Append-only entry store keyed by (feed_id, guid)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _select_entries(self):
        return sa.select(FeedEntries, Feeds.title, Feeds.feed_url).join(
            Feeds, Feeds.id == FeedEntries.feed_id
        )

    async def _get_many(self, query) -> list[StoredEntry]:
        result = await self.session.execute(query)
        return [
            StoredEntry.to_domain(record, feed_title=title, feed_url=feed_url)
            for record, title, feed_url in result.all()
        ]

    async def existing_guids(self, feed_id: int, guids: Iterable[str]) -> set[str]:
        guids = list(guids)
        if not guids:
            return set()

        query = sa.select(FeedEntries.guid).where(
            FeedEntries.feed_id == feed_id, FeedEntries.guid.in_(guids)
        )
        result = await self.session.scalars(query)
        return set(result)

    async def insert_if_absent(self, feed_id: int, entries: Sequence[FeedEntry]) -> int:
        """Insert entries whose guid is new for the feed; returns rows inserted.

        Existing rows are never touched. Duplicate guids within ``entries``
        keep the first occurrence.
        """
        rows = {}
        for entry in entries:
            if entry.guid in rows:
                continue
            rows[entry.guid] = {
                "feed_id": feed_id,
                "guid": entry.guid,
                "title": entry.title,
                "link": entry.link,
                "description": entry.description,
                "published_at": entry.published_at,
                "image": entry.image,
                "enclosure_url": entry.enclosure_url,
                "enclosure_type": entry.enclosure_type,
                "media_type": entry.media_type,
            }

        if not rows:
            return 0

        insert = dialect_insert(self.session)
        stmt = (
            insert(FeedEntries)
            .values(list(rows.values()))
            .on_conflict_do_nothing(index_elements=["feed_id", "guid"])
            .returning(FeedEntries.id)
        )
        result = await self.session.execute(stmt)
        return len(result.all())

    async def list_for_feed(
        self, feed_id: int, limit: int, offset: int = 0
    ) -> list[StoredEntry]:
        query = (
            self._select_entries()
            .where(FeedEntries.feed_id == feed_id)
            .order_by(*ENTRY_ORDER)
            .offset(offset)
            .limit(limit)
        )
        return await self._get_many(query)

    async def list_for_feeds(
        self, feed_ids: Sequence[int], limit: int, offset: int = 0
    ) -> list[StoredEntry]:
        """One ordered page over all given feeds, sorted and sliced by the store."""
        if not feed_ids:
            return []

        query = (
            self._select_entries()
            .where(FeedEntries.feed_id.in_(list(feed_ids)))
            .order_by(*ENTRY_ORDER)
            .offset(offset)
            .limit(limit)
        )
        return await self._get_many(query)

    async def count_for_feeds(self, feed_ids: Sequence[int]) -> int:
        if not feed_ids:
            return 0

        query = sa.select(sa.func.count(FeedEntries.id)).where(
            FeedEntries.feed_id.in_(list(feed_ids))
        )
        return await self.session.scalar(query) or 0

    async def newest_guids_for_feeds(
        self, feed_ids: Sequence[int], limit: int
    ) -> list[str]:
        if not feed_ids:
            return []

        query = (
            sa.select(FeedEntries.guid)
            .where(FeedEntries.feed_id.in_(list(feed_ids)))
            .order_by(*ENTRY_ORDER)
            .limit(limit)
        )
        result = await self.session.scalars(query)
        return list(result)
