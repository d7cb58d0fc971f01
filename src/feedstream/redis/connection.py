"""Redis connections for the refresh queue (arq), the page cache and batch results."""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis
from arq.connections import RedisSettings

from feedstream.main.config import Settings, get_settings


def build_arq_redis_settings(settings: Settings | None = None) -> RedisSettings:
    """Settings for the arq pool used by the job manager and the worker."""
    settings = settings or get_settings()
    return RedisSettings(
        host=settings.redis_host,
        port=settings.redis_port,
        database=settings.redis_db or 0,
        conn_timeout=settings.redis_conn_timeout,
        conn_retries=settings.redis_conn_retries,
        conn_retry_delay=settings.redis_conn_retry_delay,
        retry_on_timeout=settings.redis_retry_on_timeout,
        max_connections=settings.redis_max_connections,
    )


def build_redis_pool_kwargs(
    settings: Settings | None = None,
    *,
    decode_responses: bool,
) -> dict[str, Any]:
    """Keyword arguments for a ``redis.asyncio`` pool; unset options are left out."""
    settings = settings or get_settings()
    optional = {"max_connections": settings.redis_max_connections, "db": settings.redis_db}

    return {
        "decode_responses": decode_responses,
        "socket_connect_timeout": settings.redis_conn_timeout,
        "retry_on_timeout": settings.redis_retry_on_timeout,
        "socket_keepalive": settings.redis_socket_keepalive,
        "health_check_interval": settings.redis_health_check_interval,
        **{key: value for key, value in optional.items() if value is not None},
    }


def create_redis_client(settings: Settings | None = None) -> aioredis.Redis:
    settings = settings or get_settings()
    redis_url = f"redis://{settings.redis_host}:{settings.redis_port}"
    pool = aioredis.ConnectionPool.from_url(
        redis_url, **build_redis_pool_kwargs(settings, decode_responses=False)
    )
    return aioredis.Redis(connection_pool=pool)


_redis_client: aioredis.Redis | None = None


def get_redis() -> aioredis.Redis:
    """Get the process-wide Redis client, creating it if needed."""
    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis_client()
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
