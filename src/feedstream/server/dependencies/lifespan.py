"""Process lifecycle shared by the api and the arq worker."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from feedstream.database.database import sessionmanager
from feedstream.jobs.job_manager import job_manager
from feedstream.main.config import get_settings
from feedstream.main.http_client import http_client
from feedstream.main.logging import get_logger
from feedstream.redis.connection import close_redis

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup()
    try:
        yield
    finally:
        await shutdown()


async def startup():
    settings = get_settings()

    http_client.start(
        max_connections=settings.http_max_connections,
        max_connections_per_host=settings.http_max_connections_per_host,
    )
    sessionmanager.init(settings.database_url)
    await job_manager.init()

    logger.info("Feed store, refresh queue and HTTP client ready")


async def shutdown():
    # Reverse order of startup; the redis pool goes last since the job manager uses it
    await job_manager.close()
    await sessionmanager.close()
    await http_client.stop()
    await close_redis()
