from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from feedstream.database.database import SessionScope
from feedstream.feeds.domain.feed import LockAcquisition, utcnow
from feedstream.feeds.domain.staleness import failure_backoff
from feedstream.feeds.infrastructure.feed_repo import FeedRepository
from feedstream.main.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LockResult:
    status: LockAcquisition
    lock_until: Optional[datetime] = None

    @property
    def acquired(self) -> bool:
        return self.status is LockAcquisition.ACQUIRED


class RefreshLockManager:
    """Per-feed refresh lock backed by the feed row.

    Every call runs in its own short transaction so the claim is visible to
    other workers as soon as ``try_acquire`` returns. A lock that is never
    released expires after ``ttl`` and can be claimed again.
    """

    def __init__(
        self,
        session_scope: SessionScope,
        ttl: timedelta,
        backoff_base_seconds: int = 0,
        backoff_max_seconds: int = 0,
    ):
        self.session_scope = session_scope
        self.ttl = ttl
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds

    async def try_acquire(
        self,
        feed_id: int,
        now: Optional[datetime] = None,
        stale_before: Optional[datetime] = None,
    ) -> LockResult:
        now = now or utcnow()

        async with self.session_scope() as session:
            lock_until = await FeedRepository(session).try_acquire_lock(
                feed_id, now=now, ttl=self.ttl, stale_before=stale_before
            )

        if lock_until is None:
            logger.debug("Feed is being refreshed elsewhere", extra={"feed_id": feed_id})
            return LockResult(status=LockAcquisition.ALREADY_LOCKED)

        return LockResult(status=LockAcquisition.ACQUIRED, lock_until=lock_until)

    async def release(
        self,
        feed_id: int,
        success: bool,
        lock_until: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Clear the lock; on success also record the fetch time.

        With ``lock_until`` the release only applies while that claim is still
        the current one, so a refresh that outlived its TTL cannot clear a
        lock taken over by another worker.
        """
        now = now or utcnow()

        async with self.session_scope() as session:
            repo = FeedRepository(session)

            if success:
                released = await repo.release_lock_success(
                    feed_id, now=now, lock_until=lock_until
                )
            else:
                feed = await repo.get(feed_id)
                failures = (feed.consecutive_failures if feed else 0) + 1
                delay = failure_backoff(
                    failures, self.backoff_base_seconds, self.backoff_max_seconds
                )
                released = await repo.release_lock_failure(
                    feed_id,
                    next_retry_at=now + delay if delay is not None else None,
                    lock_until=lock_until,
                )
                if released and delay is not None:
                    logger.info(
                        f"Feed refresh failed {failures} time(s) in a row, "
                        f"backing off for {int(delay.total_seconds())}s",
                        extra={"feed_id": feed_id},
                    )

        if not released:
            logger.warning(
                "Refresh lock expired before release",
                extra={"feed_id": feed_id, "success": success},
            )

    async def clear_expired(self, now: Optional[datetime] = None) -> int:
        async with self.session_scope() as session:
            return await FeedRepository(session).clear_expired_locks(now or utcnow())
