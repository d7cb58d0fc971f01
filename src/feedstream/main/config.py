import logging
import os
import sys
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from pydantic import computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _set_app_version():
    try:
        app_version = version("feedstream")
    except PackageNotFoundError:
        return "DEV"

    if os.environ.get("DEV", False):
        return f"{app_version}-dev"

    return app_version


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    app_version: str = _set_app_version()

    # Infrastructure dependencies
    postgres_user: str
    postgres_host: str
    postgres_password: str
    postgres_port: int
    postgres_db: str
    redis_host: str
    redis_port: int
    redis_db: Optional[int] = None

    # Redis connection resilience
    redis_conn_timeout: int = 5
    redis_conn_retries: int = 5
    redis_conn_retry_delay: int = 1
    redis_retry_on_timeout: bool = True
    redis_max_connections: Optional[int] = None
    redis_socket_keepalive: bool = True
    redis_health_check_interval: int = 30

    # Feed refresh pipeline
    feed_freshness_window_seconds: int = 60 * 60 * 4  # 4 hours
    feed_lock_ttl_seconds: int = 60 * 5  # 5 minutes
    feed_fetch_timeout_seconds: float = 30.0
    feed_refresh_concurrency: int = 15
    feed_max_items_per_fetch: int = 10
    feed_description_max_length: int = 500
    feed_user_agent: str = "Mozilla/5.0 (compatible; feedstream/1.0; +https://github.com/feedstream)"
    http_max_connections: int = 100
    http_max_connections_per_host: int = 4

    # Failure backoff: base * 2^(failures-1), capped. Zero disables backoff.
    feed_failure_backoff_base_seconds: int = 60
    feed_failure_backoff_max_seconds: int = 60 * 60 * 24

    # Read path
    response_cache_ttl_seconds: int = 60 * 5
    merge_fanout_threshold: int = 8
    page_size_default: int = 30
    page_size_max: int = 100

    # Background worker configuration
    worker_max_jobs: int = 20
    refresh_job_timeout_seconds: int = 60 * 10
    refresh_job_max_tries: int = 5
    refresh_retry_defer_seconds: int = 30
    stale_feed_scan_limit: int = 500

    # External collaborators
    metrics_service_url: Optional[str] = None
    metrics_timeout_seconds: float = 5.0
    refresh_callback_url: Optional[str] = None
    refresh_result_ttl_seconds: int = 60 * 60

    api_prefix: str = "/api/v1"

    # Dev
    testing: bool = False
    dev: bool = False

    @model_validator(mode="after")
    def validate_pipeline_settings(self):
        """Ensure refresh pipeline values are sane."""
        positive = {
            "FEED_FRESHNESS_WINDOW_SECONDS": self.feed_freshness_window_seconds,
            "FEED_LOCK_TTL_SECONDS": self.feed_lock_ttl_seconds,
            "FEED_FETCH_TIMEOUT_SECONDS": self.feed_fetch_timeout_seconds,
            "FEED_REFRESH_CONCURRENCY": self.feed_refresh_concurrency,
            "FEED_MAX_ITEMS_PER_FETCH": self.feed_max_items_per_fetch,
            "RESPONSE_CACHE_TTL_SECONDS": self.response_cache_ttl_seconds,
            "PAGE_SIZE_DEFAULT": self.page_size_default,
            "PAGE_SIZE_MAX": self.page_size_max,
            "WORKER_MAX_JOBS": self.worker_max_jobs,
        }
        for name, value in positive.items():
            if value <= 0:
                logging.error(
                    "%s must be greater than zero. Current value: %s", name, value
                )
                sys.exit(1)

        if self.feed_lock_ttl_seconds >= self.feed_freshness_window_seconds:
            logging.error(
                "FEED_LOCK_TTL_SECONDS (%s) must be shorter than FEED_FRESHNESS_WINDOW_SECONDS (%s).",
                self.feed_lock_ttl_seconds,
                self.feed_freshness_window_seconds,
            )
            sys.exit(1)

        if self.feed_failure_backoff_base_seconds < 0:
            logging.error(
                "FEED_FAILURE_BACKOFF_BASE_SECONDS cannot be negative. Current value: %s",
                self.feed_failure_backoff_base_seconds,
            )
            sys.exit(1)

        if self.page_size_default > self.page_size_max:
            logging.warning(
                "PAGE_SIZE_DEFAULT (%s) exceeds PAGE_SIZE_MAX (%s). Requests will be capped.",
                self.page_size_default,
                self.page_size_max,
            )

        return self

    @computed_field
    @property
    def sync_database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:"
            f"{self.postgres_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.postgres_user}:"
            f"{self.postgres_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton, creating it if needed.

    Returns:
        Settings: The application settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Override settings (primarily for testing).

    Args:
        settings: The Settings instance to use.
    """
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings to None (for test cleanup)."""
    global _settings
    _settings = None


def get_loglevel():
    loglevel = os.getenv("LOGLEVEL", "INFO")

    match loglevel:
        case "INFO":
            return logging.INFO
        case "WARNING":
            return logging.WARNING
        case "ERROR":
            return logging.ERROR
        case "CRITICAL":
            return logging.CRITICAL
        case "DEBUG":
            return logging.DEBUG
        case _:
            return logging.INFO
