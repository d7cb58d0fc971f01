from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from feedstream.database.tables.base_class import BasePublic


class Feeds(BasePublic):
    """Registry of followed RSS/Atom sources with refresh bookkeeping.

    ``lock_until`` and ``last_fetched_at`` are only ever written through the
    conditional updates in FeedRepository; they are the refresh lock.
    """

    feed_url: Mapped[str] = mapped_column(String(2048), unique=True)
    title: Mapped[str] = mapped_column(Text, index=True)
    media_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_fetched_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    lock_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
