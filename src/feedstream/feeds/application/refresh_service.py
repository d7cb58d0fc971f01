import asyncio
from datetime import datetime
from typing import Optional, Sequence

from feedstream.feeds.application.entry_writer import EntryWriter
from feedstream.feeds.application.refresh_lock import RefreshLockManager
from feedstream.feeds.domain.feed import (
    Feed,
    FeedFailure,
    FeedRefreshOutcome,
    RefreshReport,
    RefreshSkipReason,
    utcnow,
)
from feedstream.feeds.domain.staleness import StalenessChecker
from feedstream.feeds.infrastructure.feed_fetcher import FeedFetcher
from feedstream.feeds.infrastructure.feed_parser import FeedParser
from feedstream.main.exceptions import FeedFetchError, StoreUnavailableError
from feedstream.main.logging import get_logger

logger = get_logger(__name__)


class RefreshService:
    """Stale check, lock, fetch, parse, write, release; per feed.

    ``refresh_many`` fans feeds out in chunks of ``concurrency``. A feed's
    failure is recorded in the report without touching the rest of the batch.
    Store unavailability is the exception: it is raised once the chunk has
    settled, since nothing after it can make progress.
    """

    def __init__(
        self,
        staleness_checker: StalenessChecker,
        lock_manager: RefreshLockManager,
        fetcher: FeedFetcher,
        parser: FeedParser,
        entry_writer: EntryWriter,
        concurrency: int = 15,
    ):
        self.staleness_checker = staleness_checker
        self.lock_manager = lock_manager
        self.fetcher = fetcher
        self.parser = parser
        self.entry_writer = entry_writer
        self.concurrency = concurrency

    async def refresh(self, feed: Feed, now: Optional[datetime] = None) -> FeedRefreshOutcome:
        now = now or utcnow()
        outcome = FeedRefreshOutcome(feed_url=feed.feed_url, title=feed.title, feed_id=feed.id)

        if not self.staleness_checker.is_stale(feed, now):
            outcome.skip_reason = RefreshSkipReason.FRESH
            return outcome

        lock = await self.lock_manager.try_acquire(
            feed.id, now=now, stale_before=self.staleness_checker.stale_before(now)
        )
        if not lock.acquired:
            outcome.skip_reason = RefreshSkipReason.LOCKED
            return outcome

        try:
            raw = await self.fetcher.fetch(feed.feed_url)
        except FeedFetchError:
            await self.lock_manager.release(feed.id, success=False, lock_until=lock.lock_until)
            raise

        try:
            parsed = await asyncio.to_thread(
                self.parser.parse_document,
                raw,
                feed_url=feed.feed_url,
                media_type=feed.media_type,
                fetched_at=utcnow(),
            )
            if not parsed.is_feed:
                # Error pages served with a 200 count as a failed fetch
                raise FeedFetchError(feed.feed_url, "response is not an RSS or Atom document")

            entries = parsed.entries
            inserted = await self.entry_writer.write(feed.id, entries)
        except StoreUnavailableError:
            # The release would hit the same store; the claim expires on its own
            raise
        except Exception:
            await self.lock_manager.release(feed.id, success=False, lock_until=lock.lock_until)
            raise

        await self.lock_manager.release(feed.id, success=True, lock_until=lock.lock_until)

        logger.info(
            f"Refreshed feed, {inserted} new of {len(entries)} parsed entries",
            extra={"feed_url": feed.feed_url, "feed_id": feed.id},
        )

        outcome.refreshed = True
        outcome.new_entry_count = inserted
        return outcome

    async def refresh_many(
        self, feeds: Sequence[Feed], now: Optional[datetime] = None
    ) -> RefreshReport:
        report = RefreshReport()

        for start in range(0, len(feeds), self.concurrency):
            chunk = feeds[start : start + self.concurrency]
            results = await asyncio.gather(
                *(self.refresh(feed, now) for feed in chunk), return_exceptions=True
            )

            store_error: Optional[StoreUnavailableError] = None
            for feed, result in zip(chunk, results):
                if isinstance(result, StoreUnavailableError):
                    store_error = result
                elif isinstance(result, Exception):
                    logger.warning(
                        f"Feed refresh failed: {result}",
                        extra={"feed_url": feed.feed_url, "error_type": type(result).__name__},
                    )
                    report.failures.append(
                        FeedFailure(feed_url=feed.feed_url, title=feed.title, error=str(result))
                    )
                elif isinstance(result, BaseException):
                    raise result
                else:
                    report.outcomes.append(result)

            if store_error is not None:
                raise store_error

        return report
