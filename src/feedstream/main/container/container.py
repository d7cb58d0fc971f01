from datetime import timedelta

from dependency_injector import containers, providers

from feedstream.database.database import sessionmanager
from feedstream.feeds.application.entry_writer import EntryWriter
from feedstream.feeds.application.feed_page_service import FeedPageService
from feedstream.feeds.application.feed_registry_service import FeedRegistryService
from feedstream.feeds.application.merge_service import MergeService
from feedstream.feeds.application.refresh_dispatcher import RefreshDispatcher
from feedstream.feeds.application.refresh_lock import RefreshLockManager
from feedstream.feeds.application.refresh_service import RefreshService
from feedstream.feeds.domain.staleness import StalenessChecker
from feedstream.feeds.infrastructure.feed_fetcher import FeedFetcher
from feedstream.feeds.infrastructure.feed_parser import FeedParser
from feedstream.feeds.infrastructure.metrics_client import build_metrics_client
from feedstream.feeds.infrastructure.refresh_notifier import RefreshResultNotifier
from feedstream.feeds.infrastructure.response_cache import ResponseCache
from feedstream.jobs.job_manager import job_manager
from feedstream.main.config import get_settings
from feedstream.redis.connection import get_redis


class Container(containers.DeclarativeContainer):
    settings = providers.Callable(get_settings)

    # Infrastructure handles; override these in tests
    session_scope = providers.Object(sessionmanager.transaction)
    redis_client = providers.Callable(get_redis)
    job_manager = providers.Object(job_manager)

    # Domain
    staleness_checker = providers.Factory(
        StalenessChecker,
        window=providers.Factory(
            timedelta, seconds=settings.provided.feed_freshness_window_seconds
        ),
    )

    # Infrastructure
    feed_fetcher = providers.Factory(
        FeedFetcher,
        timeout_seconds=settings.provided.feed_fetch_timeout_seconds,
        user_agent=settings.provided.feed_user_agent,
    )
    feed_parser = providers.Factory(
        FeedParser,
        max_items=settings.provided.feed_max_items_per_fetch,
        description_max_length=settings.provided.feed_description_max_length,
    )
    response_cache = providers.Factory(
        ResponseCache,
        redis_client=redis_client,
        default_ttl_seconds=settings.provided.response_cache_ttl_seconds,
    )
    metrics_client = providers.Factory(
        build_metrics_client,
        url=settings.provided.metrics_service_url,
        timeout_seconds=settings.provided.metrics_timeout_seconds,
    )
    refresh_result_notifier = providers.Factory(
        RefreshResultNotifier,
        redis_client=redis_client,
        ttl_seconds=settings.provided.refresh_result_ttl_seconds,
        callback_url=settings.provided.refresh_callback_url,
    )

    # Refresh path
    refresh_lock_manager = providers.Factory(
        RefreshLockManager,
        session_scope=session_scope,
        ttl=providers.Factory(timedelta, seconds=settings.provided.feed_lock_ttl_seconds),
        backoff_base_seconds=settings.provided.feed_failure_backoff_base_seconds,
        backoff_max_seconds=settings.provided.feed_failure_backoff_max_seconds,
    )
    entry_writer = providers.Factory(EntryWriter, session_scope=session_scope)
    refresh_service = providers.Factory(
        RefreshService,
        staleness_checker=staleness_checker,
        lock_manager=refresh_lock_manager,
        fetcher=feed_fetcher,
        parser=feed_parser,
        entry_writer=entry_writer,
        concurrency=settings.provided.feed_refresh_concurrency,
    )
    feed_registry_service = providers.Factory(
        FeedRegistryService,
        session_scope=session_scope,
        staleness_checker=staleness_checker,
    )
    refresh_dispatcher = providers.Factory(
        RefreshDispatcher,
        session_scope=session_scope,
        registry_service=feed_registry_service,
        refresh_service=refresh_service,
        response_cache=response_cache,
        notifier=refresh_result_notifier,
    )

    # Read path
    merge_service = providers.Factory(
        MergeService,
        session_scope=session_scope,
        metrics_client=metrics_client,
        fanout_threshold=settings.provided.merge_fanout_threshold,
    )
    feed_page_service = providers.Factory(
        FeedPageService,
        session_scope=session_scope,
        merge_service=merge_service,
        response_cache=response_cache,
        cache_ttl_seconds=settings.provided.response_cache_ttl_seconds,
    )
