from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from feedstream.database.tables.base_class import BasePublic, IdType
from feedstream.database.tables.feeds_table import Feeds


class FeedEntries(BasePublic):
    """Append-only entries; at most one row per (feed_id, guid)."""

    __tablename__ = "feed_entries"
    __table_args__ = (
        UniqueConstraint("feed_id", "guid", name="uq_feed_entries_feed_id_guid"),
        Index("ix_feed_entries_feed_published", "feed_id", "published_at", "id"),
    )

    feed_id: Mapped[int] = mapped_column(IdType, ForeignKey(Feeds.id, ondelete="CASCADE"))
    guid: Mapped[str] = mapped_column(String(1024), index=True)
    title: Mapped[str] = mapped_column(Text)
    link: Mapped[str] = mapped_column(String(2048))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    image: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    enclosure_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    enclosure_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    media_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
