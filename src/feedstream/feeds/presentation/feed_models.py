from datetime import datetime
from typing import Any, Optional

from pydantic import Field, model_validator

from feedstream.feeds.application.refresh_dispatcher import Delivery
from feedstream.feeds.domain.refresh_batch import RefreshResult
from feedstream.main.models import CamelModel


class StaleCheckRequest(CamelModel):
    post_titles: list[str] = Field(min_length=1)


class StaleCheckResponse(CamelModel):
    success: bool = True
    stale_feed_titles: list[str]
    total_checked: int
    stale_count: int


class RefreshRequest(CamelModel):
    """Producer request; the lists are parallel, one position per feed."""

    post_titles: list[str] = Field(min_length=1)
    feed_urls: list[str] = Field(min_length=1)
    media_types: Optional[list[Optional[str]]] = None
    existing_guids: Optional[list[str]] = None
    newest_entry_date: Optional[datetime] = None
    user_id: Optional[str] = None

    @model_validator(mode="after")
    def lists_line_up(self):
        if len(self.post_titles) != len(self.feed_urls):
            raise ValueError("postTitles and feedUrls must have the same length")
        if self.media_types is not None and len(self.media_types) != len(self.feed_urls):
            raise ValueError("mediaTypes must have the same length as feedUrls")
        return self


class RefreshQueuedResponse(CamelModel):
    batch_id: str
    status: str
    feed_count: int


class QueueMessage(CamelModel):
    id: Optional[str] = None
    body: Any


class QueueConsumerRequest(CamelModel):
    messages: list[QueueMessage]


class QueueMessageResult(CamelModel):
    id: Optional[str] = None
    status: Delivery
    result: Optional[RefreshResult] = None
    error: Optional[str] = None


class QueueConsumerResponse(CamelModel):
    processed: int
    acked: int
    retried: int
    results: list[QueueMessageResult]
