"""Shared Redis connection utilities."""

from feedstream.redis.connection import (
    build_arq_redis_settings,
    build_redis_pool_kwargs,
    close_redis,
    get_redis,
)

__all__ = ["build_arq_redis_settings", "build_redis_pool_kwargs", "close_redis", "get_redis"]
