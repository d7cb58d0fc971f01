TITLE = "Feedstream"

SUMMARY = "RSS/Atom feed synchronization and merged activity streams"

TAGS_METADATA = [
    {
        "name": "feeds",
        "description": (
            "Feed operations. Read merged entry pages, check which feeds are stale"
            " and queue **refresh** batches."
        ),
    },
]
