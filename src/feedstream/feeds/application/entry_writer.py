from typing import Sequence

from feedstream.database.database import SessionScope
from feedstream.feeds.domain.feed import FeedEntry
from feedstream.feeds.infrastructure.entry_repo import EntryRepository


class EntryWriter:
    """Insert-if-absent writer; first write of a (feed, guid) wins."""

    def __init__(self, session_scope: SessionScope):
        self.session_scope = session_scope

    async def write(self, feed_id: int, entries: Sequence[FeedEntry]) -> int:
        if not entries:
            return 0

        async with self.session_scope() as session:
            repo = EntryRepository(session)

            known = await repo.existing_guids(feed_id, [entry.guid for entry in entries])
            fresh = [entry for entry in entries if entry.guid not in known]
            if not fresh:
                return 0

            return await repo.insert_if_absent(feed_id, fresh)
