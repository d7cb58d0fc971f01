from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from feedstream.database.tables.feed_entries_table import FeedEntries
    from feedstream.database.tables.feeds_table import Feeds


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LockAcquisition(str, Enum):
    ACQUIRED = "acquired"
    ALREADY_LOCKED = "already_locked"


class RefreshSkipReason(str, Enum):
    FRESH = "fresh"
    LOCKED = "locked"


@dataclass
class Feed:
    id: int
    feed_url: str
    title: str
    media_type: Optional[str] = None
    last_fetched_at: Optional[datetime] = None
    lock_until: Optional[datetime] = None
    consecutive_failures: int = 0
    next_retry_at: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now

    @classmethod
    def to_domain(cls, row: "Feeds") -> "Feed":
        return cls(
            id=row.id,
            feed_url=row.feed_url,
            title=row.title,
            media_type=row.media_type,
            last_fetched_at=ensure_utc(row.last_fetched_at),
            lock_until=ensure_utc(row.lock_until),
            consecutive_failures=row.consecutive_failures or 0,
            next_retry_at=ensure_utc(row.next_retry_at),
        )


@dataclass(frozen=True)
class FeedEntry:
    """One normalized item parsed out of a feed document."""

    guid: str
    title: str
    link: str
    published_at: datetime
    description: str = ""
    image: Optional[str] = None
    enclosure_url: Optional[str] = None
    enclosure_type: Optional[str] = None
    media_type: Optional[str] = None


@dataclass(frozen=True)
class StoredEntry:
    id: int
    feed_id: int
    guid: str
    title: str
    link: str
    published_at: datetime
    description: Optional[str] = None
    image: Optional[str] = None
    enclosure_url: Optional[str] = None
    enclosure_type: Optional[str] = None
    media_type: Optional[str] = None
    feed_title: Optional[str] = None
    feed_url: Optional[str] = None

    @property
    def sort_key(self) -> tuple[datetime, int]:
        """Publish date, then row id; both descending in every listing."""
        return (self.published_at, self.id)

    @classmethod
    def to_domain(
        cls,
        row: "FeedEntries",
        feed_title: Optional[str] = None,
        feed_url: Optional[str] = None,
    ) -> "StoredEntry":
        return cls(
            id=row.id,
            feed_id=row.feed_id,
            guid=row.guid,
            title=row.title,
            link=row.link,
            published_at=ensure_utc(row.published_at),
            description=row.description,
            image=row.image,
            enclosure_url=row.enclosure_url,
            enclosure_type=row.enclosure_type,
            media_type=row.media_type,
            feed_title=feed_title,
            feed_url=feed_url,
        )


@dataclass
class FeedRefreshOutcome:
    feed_url: str
    title: str
    refreshed: bool = False
    new_entry_count: int = 0
    skip_reason: Optional[RefreshSkipReason] = None
    feed_id: Optional[int] = None


@dataclass
class FeedFailure:
    feed_url: str
    title: str
    error: str


@dataclass
class RefreshReport:
    """Fan-in of one refresh_many run: one outcome or failure per feed."""

    outcomes: list[FeedRefreshOutcome] = field(default_factory=list)
    failures: list[FeedFailure] = field(default_factory=list)

    @property
    def refreshed_any(self) -> bool:
        return any(outcome.refreshed for outcome in self.outcomes)

    @property
    def new_entry_count(self) -> int:
        return sum(outcome.new_entry_count for outcome in self.outcomes)

    @property
    def feeds_with_new_entries(self) -> list[int]:
        return [
            outcome.feed_id
            for outcome in self.outcomes
            if outcome.new_entry_count > 0 and outcome.feed_id is not None
        ]
