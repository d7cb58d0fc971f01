"""RSS/Atom documents to normalized feed entries."""

import calendar
import html
import io
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import feedparser

from feedstream.feeds.domain.feed import FeedEntry, utcnow
from feedstream.main.logging import get_logger

logger = get_logger(__name__)

IMAGE_EXTENSION = re.compile(r"\.(jpe?g|png|gif|webp|avif|bmp|svg)(\?.*)?$", re.IGNORECASE)
IMG_SRC = re.compile(r"<img[^>]+src\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
TAG = re.compile(r"<[^>]+>")
WHITESPACE = re.compile(r"\s+")


def sanitize_html(text: Optional[str]) -> str:
    """Strip HTML tags and decode entities from text."""
    if not text:
        return ""
    text = html.unescape(text)
    text = TAG.sub("", text)
    return WHITESPACE.sub(" ", text).strip()


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    cut = text[: max_len - 1].rsplit(" ", 1)[0]
    return cut + "…"


def _is_image(url: Optional[str], mime_type: Optional[str] = None) -> bool:
    if not url:
        return False
    if mime_type and mime_type.lower().startswith("image/"):
        return True
    return bool(IMAGE_EXTENSION.search(url))


def _to_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


@dataclass
class ParsedFeed:
    entries: list[FeedEntry] = field(default_factory=list)
    is_feed: bool = True


class FeedParser:
    """Turns raw feed bytes into at most ``max_items`` newest entries.

    Never raises on malformed input. Items without a title or link are
    skipped, everything else that can be recovered is returned.
    """

    def __init__(self, max_items: int = 10, description_max_length: int = 500):
        self.max_items = max_items
        self.description_max_length = description_max_length

    def parse(
        self,
        raw: bytes | str,
        feed_url: str = "",
        media_type: Optional[str] = None,
        fetched_at: Optional[datetime] = None,
    ) -> list[FeedEntry]:
        return self.parse_document(
            raw, feed_url=feed_url, media_type=media_type, fetched_at=fetched_at
        ).entries

    def parse_document(
        self,
        raw: bytes | str,
        feed_url: str = "",
        media_type: Optional[str] = None,
        fetched_at: Optional[datetime] = None,
    ) -> ParsedFeed:
        """Like ``parse``, but also says whether the body was a feed at all.

        An HTML error page or an empty body has no feed version and no
        items. A real feed without items still has a version.
        """
        fetched_at = fetched_at or utcnow()

        if isinstance(raw, str):
            raw = raw.encode("utf-8")

        try:
            # A stream is never mistaken for a URL or a local path
            document = feedparser.parse(io.BytesIO(raw))
        except Exception as exc:
            logger.warning(
                "Feed document could not be parsed",
                extra={"feed_url": feed_url, "error": str(exc)},
            )
            return ParsedFeed(entries=[], is_feed=False)

        if not document.get("version") and not document.entries:
            logger.debug(
                "Response is not an RSS or Atom document",
                extra={"feed_url": feed_url, "error": str(document.get("bozo_exception"))},
            )
            return ParsedFeed(entries=[], is_feed=False)

        if document.get("bozo"):
            logger.debug(
                "Malformed feed document, keeping recovered entries",
                extra={
                    "feed_url": feed_url,
                    "error": str(document.get("bozo_exception")),
                    "recovered": len(document.entries),
                },
            )

        channel_image = self._channel_image(document.get("feed", {}))

        entries = []
        skipped = 0
        for item in document.entries:
            entry = self._parse_item(item, media_type, fetched_at, channel_image)
            if entry is None:
                skipped += 1
                continue
            entries.append(entry)

        if skipped:
            logger.debug(
                f"Skipped {skipped} feed items without title or link",
                extra={"feed_url": feed_url},
            )

        entries.sort(key=lambda entry: entry.published_at, reverse=True)
        return ParsedFeed(entries=entries[: self.max_items], is_feed=True)

    def _parse_item(
        self,
        item: dict,
        media_type: Optional[str],
        fetched_at: datetime,
        channel_image: Optional[str],
    ) -> Optional[FeedEntry]:
        title = sanitize_html(item.get("title"))
        if not title:
            return None

        enclosure = self._enclosure(item)
        link = self._link(item, enclosure)
        if not link:
            return None

        guid = (item.get("id") or "").strip() or link

        published_at = (
            _to_datetime(item.get("published_parsed"))
            or _to_datetime(item.get("updated_parsed"))
            or fetched_at
        )

        description = sanitize_html(self._description(item))
        if self.description_max_length:
            description = truncate(description, self.description_max_length)

        return FeedEntry(
            guid=guid,
            title=title,
            link=link,
            published_at=published_at,
            description=description,
            image=self._image(item, channel_image),
            enclosure_url=enclosure.get("href") if enclosure else None,
            enclosure_type=enclosure.get("type") if enclosure else None,
            media_type=media_type,
        )

    def _link(self, item: dict, enclosure: Optional[dict]) -> Optional[str]:
        link = (item.get("link") or "").strip()
        if link:
            return link

        for candidate in item.get("links", []):
            if candidate.get("rel", "alternate") == "alternate" and candidate.get("href"):
                return candidate["href"].strip()

        # Podcast items often only carry the audio file
        if enclosure and (enclosure.get("type") or "").startswith(("audio/", "video/")):
            return enclosure.get("href")

        return None

    def _enclosure(self, item: dict) -> Optional[dict]:
        for enclosure in item.get("enclosures", []):
            if enclosure.get("href"):
                return enclosure
        return None

    def _description(self, item: dict) -> str:
        if item.get("summary"):
            return item["summary"]
        for content in item.get("content", []):
            if content.get("value"):
                return content["value"]
        return ""

    def _image(self, item: dict, channel_image: Optional[str]) -> Optional[str]:
        for media in item.get("media_content", []):
            url = media.get("url")
            if url and (media.get("medium") == "image" or _is_image(url, media.get("type"))):
                return url

        for thumbnail in item.get("media_thumbnail", []):
            if thumbnail.get("url"):
                return thumbnail["url"]

        itunes_image = item.get("image")
        if isinstance(itunes_image, dict) and itunes_image.get("href"):
            return itunes_image["href"]

        for enclosure in item.get("enclosures", []):
            if _is_image(enclosure.get("href"), enclosure.get("type")):
                return enclosure["href"]

        bodies = [content.get("value", "") for content in item.get("content", [])]
        bodies.append(item.get("summary", ""))
        for body in bodies:
            for src in IMG_SRC.findall(body or ""):
                if not src.startswith("data:"):
                    return src

        return channel_image

    def _channel_image(self, channel: dict) -> Optional[str]:
        image = channel.get("image")
        if isinstance(image, dict):
            return image.get("href") or image.get("url")
        return None
