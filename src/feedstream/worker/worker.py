from __future__ import annotations

from functools import wraps

from arq.cron import cron

from feedstream.main.config import get_settings
from feedstream.main.container.container import Container
from feedstream.main.log_context import log_context
from feedstream.main.logging import get_logger
from feedstream.redis.connection import build_arq_redis_settings
from feedstream.server.dependencies import lifespan

logger = get_logger(__name__)


class Worker:
    """
    Registry of arq functions and cron jobs plus the worker-wide settings.

    Attributes:
        functions (list): Registered functions.
        cron_jobs (list): Registered cron jobs.
        redis_settings (RedisSettings): Redis settings for the worker.
        retry_jobs (bool): Jobs raising ``arq.Retry`` are redelivered.
        max_tries (int): Attempts per job before arq gives up on it.
        job_timeout (int): Timeout for jobs in seconds.
        max_jobs (int): Jobs run concurrently by one worker process.

    Methods:
        function():
            Decorator to register a function; it receives ``(ctx, params, container)``.

        cron_job(**decorator_kwargs):
            Decorator to register a cron job; it receives ``container``.

        include_subworker(sub_worker: Worker):
            Includes functions and cron jobs from a sub-worker.
    """

    def __init__(self):
        settings = get_settings()
        self.functions = []
        self.cron_jobs = []
        self.redis_settings = build_arq_redis_settings(settings)
        self.on_startup = self.startup
        self.on_shutdown = self.shutdown
        self.retry_jobs = True
        self.max_tries = settings.refresh_job_max_tries
        self.job_timeout = settings.refresh_job_timeout_seconds
        self.max_jobs = settings.worker_max_jobs
        self.keep_result = settings.refresh_result_ttl_seconds

        # How often to update worker health key in Redis
        self.health_check_interval = 60  # seconds (default is 3600)

    def _create_container(self) -> Container:
        return Container()

    async def startup(self, ctx):
        await lifespan.startup()

    async def shutdown(self, ctx):
        await lifespan.shutdown()

    def function(self):
        def decorator(func):
            @wraps(func)
            async def wrapper(*args):
                ctx, params = args[0], args[1]
                with log_context(job_id=ctx.get("job_id"), job_try=ctx.get("job_try")):
                    logger.debug(f"Executing {func.__name__}")
                    return await func(ctx, params, container=self._create_container())

            self.functions.append(wrapper)
            return wrapper

        return decorator

    def cron_job(self, **decorator_kwargs):
        def decorator(func):
            @wraps(func)
            async def wrapper(*args):
                logger.debug(f"Executing {func.__name__}")
                return await func(container=self._create_container())

            self.cron_jobs.append(cron(wrapper, **decorator_kwargs))
            return wrapper

        return decorator

    def include_subworker(self, sub_worker: Worker):
        self.functions.extend(sub_worker.functions)
        self.cron_jobs.extend(sub_worker.cron_jobs)

        logger.debug(
            "Including functions from subworker: %s",
            [func.__name__ for func in sub_worker.functions],
        )
