from datetime import datetime
from typing import Optional

from pydantic import Field

from feedstream.feeds.domain.feed import StoredEntry
from feedstream.main.models import CamelModel


class LikeMetrics(CamelModel):
    count: int = 0
    is_liked: bool = False


class CommentMetrics(CamelModel):
    count: int = 0


class RetweetMetrics(CamelModel):
    count: int = 0
    is_retweeted: bool = False


class BookmarkMetrics(CamelModel):
    is_bookmarked: bool = False


class EntryMetrics(CamelModel):
    likes: LikeMetrics = Field(default_factory=LikeMetrics)
    comments: CommentMetrics = Field(default_factory=CommentMetrics)
    retweets: RetweetMetrics = Field(default_factory=RetweetMetrics)
    bookmarks: BookmarkMetrics = Field(default_factory=BookmarkMetrics)


class PageEntry(CamelModel):
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

    @classmethod
    def from_stored(cls, entry: StoredEntry) -> "PageEntry":
        return cls(
            id=entry.id,
            feed_id=entry.feed_id,
            guid=entry.guid,
            title=entry.title,
            link=entry.link,
            published_at=entry.published_at,
            description=entry.description,
            image=entry.image,
            enclosure_url=entry.enclosure_url,
            enclosure_type=entry.enclosure_type,
            media_type=entry.media_type,
            feed_title=entry.feed_title,
            feed_url=entry.feed_url,
        )


class PageItem(CamelModel):
    entry: PageEntry
    metrics: EntryMetrics = Field(default_factory=EntryMetrics)


class MergedPage(CamelModel):
    """One page of the merged stream; cached, never persisted."""

    entries: list[PageItem] = []
    total_entries: int = 0
    has_more: bool = False
    offset: int = 0
    page_size: int = 0
    degraded: bool = False
    metrics_unavailable: bool = False

    @property
    def cacheable(self) -> bool:
        return not (self.degraded or self.metrics_unavailable)
