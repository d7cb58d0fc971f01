from datetime import datetime, timezone

import pytest
import sqlalchemy as sa

from feedstream.database.database import DatabaseSessionManager
from feedstream.database.tables.base_class import Base
from feedstream.database.tables.feeds_table import Feeds
from feedstream.feeds.domain.feed import FeedEntry
from feedstream.feeds.infrastructure.entry_repo import EntryRepository
from feedstream.feeds.infrastructure.feed_repo import FeedRepository
from feedstream.main.config import Settings, reset_settings, set_settings


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings with explicit values for unit tests.

    Provides a clean, isolated configuration that doesn't depend on the
    .env file or environment variables.
    """
    return Settings(
        # Minimal database settings (unit tests use SQLite instead)
        postgres_user="unit_test_user",
        postgres_host="localhost",
        postgres_password="unit_test_password",
        postgres_port=5432,
        postgres_db="unit_test_db",

        # Redis settings (unit tests use fakes)
        redis_host="localhost",
        redis_port=6379,

        # Pipeline defaults, spelled out so tests can rely on them
        feed_freshness_window_seconds=4 * 60 * 60,
        feed_lock_ttl_seconds=5 * 60,
        feed_fetch_timeout_seconds=30,
        feed_refresh_concurrency=15,
        response_cache_ttl_seconds=300,
        page_size_default=30,
        page_size_max=100,

        # Testing mode
        testing=True,
        dev=True,
    )


@pytest.fixture
def settings(test_settings):
    set_settings(test_settings)
    return test_settings


@pytest.fixture(autouse=True)
def reset_settings_after_test():
    """Reset settings after each test to prevent state leakage."""
    yield
    reset_settings()


@pytest.fixture
async def db(tmp_path):
    """File backed SQLite store; separate connections see each other's commits."""
    manager = DatabaseSessionManager()
    manager.init(f"sqlite+aiosqlite:///{tmp_path / 'feedstream.db'}")

    async with manager.connect() as connection:
        await connection.run_sync(Base.metadata.create_all)

    yield manager

    await manager.close()


@pytest.fixture
def now():
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_feed(db):
    """Create a feed row, optionally forcing its refresh bookkeeping columns."""

    async def _make_feed(feed_url="https://example.com/rss", title="Example", **values):
        async with db.transaction() as session:
            feed = await FeedRepository(session).get_or_create(feed_url, title)
            if values:
                await session.execute(
                    sa.update(Feeds).where(Feeds.id == feed.id).values(**values)
                )

        async with db.transaction() as session:
            return await FeedRepository(session).get(feed.id)

    return _make_feed


@pytest.fixture
def get_feed(db):
    async def _get_feed(feed_id):
        async with db.transaction() as session:
            return await FeedRepository(session).get(feed_id)

    return _get_feed


@pytest.fixture
def add_entries(db):
    """Insert entries as (guid, published_at) pairs for a feed."""

    async def _add_entries(feed_id, items: list[tuple[str, datetime]]):
        entries = [
            FeedEntry(
                guid=guid,
                title=f"Entry {guid}",
                link=f"https://example.com/{guid}",
                published_at=published_at,
            )
            for guid, published_at in items
        ]
        async with db.transaction() as session:
            return await EntryRepository(session).insert_if_absent(feed_id, entries)

    return _add_entries


class FakeRedis:
    """Minimal async Redis stub covering the string and set commands in use."""

    def __init__(self):
        self.store: dict[str, bytes] = {}
        self.sets: dict[str, set] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if isinstance(value, str):
            value = value.encode()
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def expire(self, key, ttl):
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if isinstance(key, bytes):
                key = key.decode()
            removed += int(self.store.pop(key, None) is not None)
            removed += int(self.sets.pop(key, None) is not None)
            self.ttls.pop(key, None)
        return removed


@pytest.fixture
def fake_redis():
    return FakeRedis()
