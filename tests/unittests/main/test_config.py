import logging

import pytest

from feedstream.main.config import Settings, get_loglevel, get_settings, reset_settings, set_settings

BASE = dict(
    postgres_user="user",
    postgres_host="db",
    postgres_password="secret",
    postgres_port=5432,
    postgres_db="feeds",
    redis_host="redis",
    redis_port=6379,
)


def test_pipeline_defaults():
    settings = Settings(**BASE)

    assert settings.feed_freshness_window_seconds == 4 * 60 * 60
    assert settings.feed_lock_ttl_seconds == 5 * 60
    assert settings.feed_fetch_timeout_seconds == 30
    assert settings.feed_refresh_concurrency == 15
    assert settings.response_cache_ttl_seconds == 5 * 60
    assert settings.feed_max_items_per_fetch == 10


def test_database_urls_are_computed():
    settings = Settings(**BASE)

    assert settings.database_url == "postgresql+asyncpg://user:secret@db:5432/feeds"
    assert settings.sync_database_url == "postgresql://user:secret@db:5432/feeds"


def test_lock_ttl_must_be_shorter_than_freshness_window():
    with pytest.raises(SystemExit):
        Settings(**BASE, feed_lock_ttl_seconds=3600, feed_freshness_window_seconds=3600)


@pytest.mark.parametrize(
    "field", ["feed_refresh_concurrency", "feed_lock_ttl_seconds", "page_size_max"]
)
def test_non_positive_values_are_rejected(field):
    with pytest.raises(SystemExit):
        Settings(**BASE, **{field: 0})


def test_negative_backoff_is_rejected():
    with pytest.raises(SystemExit):
        Settings(**BASE, feed_failure_backoff_base_seconds=-1)


def test_set_settings_overrides_singleton(test_settings):
    set_settings(test_settings)
    assert get_settings() is test_settings

    reset_settings()
    assert get_settings() is not test_settings


@pytest.mark.parametrize(
    "value, expected",
    [("DEBUG", logging.DEBUG), ("ERROR", logging.ERROR), ("nonsense", logging.INFO)],
)
def test_get_loglevel(monkeypatch, value, expected):
    monkeypatch.setenv("LOGLEVEL", value)
    assert get_loglevel() == expected
