import heapq
from itertools import islice
from typing import Iterable, Optional

from feedstream.database.database import SessionScope
from feedstream.feeds.domain.feed import StoredEntry
from feedstream.feeds.domain.merged_page import EntryMetrics, MergedPage, PageEntry, PageItem
from feedstream.feeds.infrastructure.entry_repo import EntryRepository
from feedstream.feeds.infrastructure.metrics_client import MetricsClient
from feedstream.main.exceptions import MetricsUnavailableError, StoreUnavailableError
from feedstream.main.logging import get_logger

logger = get_logger(__name__)


class MergeService:
    """Builds one page of the reverse-chronological stream over many feeds.

    Order is publish date descending, then entry id descending, so repeated
    calls partition the stream the same way. Up to ``fanout_threshold``
    feeds are read one by one (bounded to ``offset + page_size`` rows each)
    and merged in memory; larger sets are sorted and sliced by the store.
    """

    def __init__(
        self,
        session_scope: SessionScope,
        metrics_client: MetricsClient,
        fanout_threshold: int = 8,
    ):
        self.session_scope = session_scope
        self.metrics_client = metrics_client
        self.fanout_threshold = fanout_threshold

    async def page(
        self,
        feed_ids: Iterable[int],
        offset: int,
        page_size: int,
        user_id: Optional[str] = None,
    ) -> MergedPage:
        feed_ids = sorted(set(feed_ids))
        page = MergedPage(offset=offset, page_size=page_size)

        if not feed_ids:
            return page

        try:
            entries, total = await self._read(feed_ids, offset, page_size)
        except StoreUnavailableError:
            logger.warning(
                "Entry store unavailable, serving an empty page",
                extra={"feed_count": len(feed_ids)},
            )
            page.degraded = True
            return page

        page.total_entries = total
        page.has_more = total > offset + len(entries)

        metrics: dict[str, EntryMetrics] = {}
        if entries:
            try:
                metrics = await self.metrics_client.get_metrics(
                    [entry.guid for entry in entries], user_id
                )
            except MetricsUnavailableError as exc:
                logger.warning(f"Serving page without metrics: {exc}")
                page.metrics_unavailable = True

        page.entries = [
            PageItem(
                entry=PageEntry.from_stored(entry),
                metrics=metrics.get(entry.guid) or EntryMetrics(),
            )
            for entry in entries
        ]
        return page

    async def _read(
        self, feed_ids: list[int], offset: int, page_size: int
    ) -> tuple[list[StoredEntry], int]:
        async with self.session_scope() as session:
            repo = EntryRepository(session)

            total = await repo.count_for_feeds(feed_ids)
            if offset >= total:
                return [], total

            if len(feed_ids) > self.fanout_threshold:
                entries = await repo.list_for_feeds(feed_ids, limit=page_size, offset=offset)
                return entries, total

            window = offset + page_size
            per_feed = [await repo.list_for_feed(feed_id, limit=window) for feed_id in feed_ids]

        merged = heapq.merge(*per_feed, key=lambda entry: entry.sort_key, reverse=True)
        return list(islice(merged, offset, offset + page_size)), total
