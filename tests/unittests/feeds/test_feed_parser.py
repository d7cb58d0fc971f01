from datetime import datetime, timezone

from feedstream.feeds.infrastructure.feed_parser import FeedParser, sanitize_html, truncate

FETCHED_AT = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def rss(items: str, channel_extra: str = "") -> bytes:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:media="http://search.yahoo.com/mrss/"
     xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd"
     xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Example</title>
    <link>https://example.com</link>
    <description>Example feed</description>
    {channel_extra}
    {items}
  </channel>
</rss>""".encode()


def item(
    title="Post",
    link="https://example.com/post",
    guid=None,
    pub_date="Mon, 19 Oct 2026 10:00:00 GMT",
    extra="",
) -> str:
    parts = []
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if link is not None:
        parts.append(f"<link>{link}</link>")
    if guid is not None:
        parts.append(f"<guid>{guid}</guid>")
    if pub_date is not None:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    parts.append(extra)
    return "<item>" + "".join(parts) + "</item>"


def parse(document: bytes, **kwargs):
    return FeedParser(max_items=kwargs.pop("max_items", 10)).parse(
        document, feed_url="https://example.com/rss", fetched_at=FETCHED_AT, **kwargs
    )


def test_item_without_title_is_dropped_not_fatal():
    document = rss(
        item(title="First", link="https://example.com/1")
        + item(title=None, link="https://example.com/2")
        + item(title="Third", link="https://example.com/3")
    )

    entries = parse(document)

    assert [entry.title for entry in entries] == ["First", "Third"]


def test_item_without_link_is_dropped():
    document = rss(item(title="Linked") + item(title="Unlinked", link=None))

    entries = parse(document)

    assert [entry.title for entry in entries] == ["Linked"]


def test_garbage_input_yields_no_entries():
    assert parse(b"\x00\x01 definitely not a feed") == []


def test_error_page_is_not_a_feed():
    parsed = FeedParser().parse_document(b"<html><body>502 Bad Gateway from CDN</body></html>")

    assert parsed.is_feed is False
    assert parsed.entries == []


def test_empty_body_is_not_a_feed():
    assert FeedParser().parse_document(b"").is_feed is False


def test_feed_without_items_is_still_a_feed():
    parsed = FeedParser().parse_document(rss(""))

    assert parsed.is_feed is True
    assert parsed.entries == []


def test_recovered_items_make_a_malformed_document_a_feed():
    document = rss(item(title="Complete")).replace(b"</channel>", b"").replace(b"</rss>", b"")

    parsed = FeedParser().parse_document(document)

    assert parsed.is_feed is True
    assert [entry.title for entry in parsed.entries] == ["Complete"]


def test_unterminated_document_keeps_recovered_items():
    document = (
        rss(item(title="Complete", link="https://example.com/ok"))
        .replace(b"</channel>", b"")
        .replace(b"</rss>", b"")
    )

    entries = parse(document)

    assert [entry.title for entry in entries] == ["Complete"]


def test_guid_prefers_explicit_guid_then_link():
    document = rss(
        item(title="With guid", link="https://example.com/a", guid="urn:post:a")
        + item(title="Without guid", link="https://example.com/b")
    )

    guids = {entry.title: entry.guid for entry in parse(document)}

    assert guids == {"With guid": "urn:post:a", "Without guid": "https://example.com/b"}


def test_repeated_parse_produces_same_guids():
    document = rss(item(title="A", link="https://example.com/a"))

    assert parse(document)[0].guid == parse(document)[0].guid


def test_output_is_newest_first_and_capped():
    items = "".join(
        item(
            title=f"Post {day}",
            link=f"https://example.com/{day}",
            pub_date=f"{day:02d} Oct 2026 10:00:00 GMT",
        )
        for day in range(1, 16)
    )

    entries = parse(rss(items), max_items=10)

    assert len(entries) == 10
    assert entries[0].title == "Post 15"
    assert entries[-1].title == "Post 6"


def test_missing_date_falls_back_to_fetch_time():
    entries = parse(rss(item(pub_date=None)))

    assert entries[0].published_at == FETCHED_AT


def test_published_date_is_utc():
    entries = parse(rss(item(pub_date="Mon, 19 Oct 2026 12:00:00 +0200")))

    assert entries[0].published_at == datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


def test_description_is_stripped_and_truncated():
    long_text = "word " * 200
    document = rss(
        item(extra=f"<description><![CDATA[<p>Hello &amp; <b>welcome</b></p> {long_text}]]></description>")
    )

    entry = FeedParser(description_max_length=50).parse(document, fetched_at=FETCHED_AT)[0]

    assert entry.description.startswith("Hello & welcome")
    assert len(entry.description) <= 50
    assert "<" not in entry.description


def test_image_from_media_content_wins():
    document = rss(
        item(
            extra=(
                '<media:content url="https://cdn.example.com/media.jpg" medium="image"/>'
                '<enclosure url="https://cdn.example.com/enclosure.png" type="image/png" length="1"/>'
            )
        )
    )

    assert parse(document)[0].image == "https://cdn.example.com/media.jpg"


def test_image_from_image_enclosure():
    document = rss(
        item(extra='<enclosure url="https://cdn.example.com/photo.webp" type="image/webp" length="1"/>')
    )

    assert parse(document)[0].image == "https://cdn.example.com/photo.webp"


def test_media_content_without_url_falls_through_to_enclosure():
    document = rss(
        item(
            extra=(
                '<media:content medium="image"/>'
                '<enclosure url="https://cdn.example.com/pic.jpg" type="image/jpeg" length="1"/>'
            )
        )
    )

    assert parse(document)[0].image == "https://cdn.example.com/pic.jpg"


def test_image_from_inline_img_skips_data_uris():
    document = rss(
        item(
            extra=(
                "<description><![CDATA["
                '<img src="data:image/gif;base64,R0lGOD"/>'
                '<img src="https://cdn.example.com/inline.jpg"/> text'
                "]]></description>"
            )
        )
    )

    assert parse(document)[0].image == "https://cdn.example.com/inline.jpg"


def test_image_falls_back_to_channel_image():
    document = rss(
        item(),
        channel_extra=(
            "<image><url>https://example.com/logo.png</url>"
            "<title>Example</title><link>https://example.com</link></image>"
        ),
    )

    assert parse(document)[0].image == "https://example.com/logo.png"


def test_podcast_item_links_to_audio_enclosure():
    document = rss(
        item(
            link=None,
            extra='<enclosure url="https://cdn.example.com/episode.mp3" type="audio/mpeg" length="1"/>',
        )
    )

    entry = parse(document, media_type="podcast")[0]

    assert entry.link == "https://cdn.example.com/episode.mp3"
    assert entry.enclosure_url == "https://cdn.example.com/episode.mp3"
    assert entry.enclosure_type == "audio/mpeg"
    assert entry.media_type == "podcast"


def test_atom_entries_are_parsed():
    document = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom example</title>
  <id>urn:feed</id>
  <updated>2026-10-19T10:00:00Z</updated>
  <entry>
    <title>Atom entry</title>
    <link rel="alternate" href="https://example.com/atom-entry"/>
    <id>urn:entry:1</id>
    <updated>2026-10-19T09:00:00Z</updated>
    <summary>Summary text</summary>
  </entry>
</feed>"""

    entry = parse(document)[0]

    assert entry.guid == "urn:entry:1"
    assert entry.link == "https://example.com/atom-entry"
    assert entry.description == "Summary text"
    assert entry.published_at == datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def test_sanitize_html():
    assert sanitize_html("<p>a &lt;b&gt;\n\n  c</p>") == "a c"
    assert sanitize_html(None) == ""


def test_truncate_cuts_on_word_boundary():
    assert truncate("alpha beta gamma", 12) == "alpha beta…"
    assert truncate("short", 12) == "short"
