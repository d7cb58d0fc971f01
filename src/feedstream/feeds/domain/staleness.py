from datetime import datetime, timedelta
from typing import Optional

from feedstream.feeds.domain.feed import Feed, utcnow


class StalenessChecker:
    """Decides whether a feed is due for a refresh.

    A feed is stale when it was never fetched, or when at least the freshness
    window has passed since its last successful refresh. A feed that is
    backing off after failed refreshes is not stale until ``next_retry_at``.
    """

    def __init__(self, window: timedelta):
        self.window = window

    def is_stale(self, feed: Feed, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()

        if feed.next_retry_at is not None and now < feed.next_retry_at:
            return False

        if feed.last_fetched_at is None:
            return True

        return now - feed.last_fetched_at >= self.window

    def stale_before(self, now: Optional[datetime] = None) -> datetime:
        """Feeds last fetched at or before this instant are stale."""
        return (now or utcnow()) - self.window


def failure_backoff(
    consecutive_failures: int, base_seconds: int, max_seconds: int
) -> Optional[timedelta]:
    """Delay before a failing feed is retried: base * 2^(failures-1), capped.

    Returns None when backoff is disabled (base of zero) or nothing failed.
    """
    if base_seconds <= 0 or consecutive_failures <= 0:
        return None

    delay = base_seconds * (2 ** (consecutive_failures - 1))
    return timedelta(seconds=min(delay, max_seconds))
