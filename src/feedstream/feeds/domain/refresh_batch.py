import secrets
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from feedstream.main.models import CamelModel


def new_batch_id(now: datetime) -> str:
    return f"batch_{int(now.timestamp() * 1000)}_{secrets.token_hex(5)}"


def stale_batch_id(tick: datetime, index: int) -> str:
    """Batch id for the scheduled stale scan; the same tick and chunk give the same id."""
    return f"stale_{tick:%Y%m%dT%H%M}_{index}"


class RefreshFeedItem(CamelModel):
    post_title: str
    feed_url: str
    media_type: Optional[str] = None

    @field_validator("feed_url")
    @classmethod
    def feed_url_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("feedUrl must not be empty")
        return value


class RefreshBatchMessage(CamelModel):
    """Queue message body asking for a batch of feeds to be refreshed."""

    batch_id: str
    feeds: list[RefreshFeedItem] = Field(min_length=1)
    existing_guids: Optional[list[str]] = None
    newest_entry_date: Optional[datetime] = None
    user_id: Optional[str] = None


class FailedFeed(CamelModel):
    post_title: str
    feed_url: str
    error: str


class RefreshResult(CamelModel):
    batch_id: str
    success: bool
    refreshed_any: bool
    new_entries_count: int
    total_entries: int
    post_titles: list[str]
    refresh_timestamp: datetime
    processing_time_ms: int = 0
    failed_feeds: list[FailedFeed] = []
