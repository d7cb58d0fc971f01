"""Entry point for ``arq feedstream.worker.arq.WorkerSettings``."""

from feedstream.worker.routes import worker as refresh_worker
from feedstream.worker.worker import Worker

# Worker attributes handed to arq as its settings class
ARQ_SETTING_NAMES = (
    "functions",
    "cron_jobs",
    "redis_settings",
    "on_startup",
    "on_shutdown",
    "retry_jobs",
    "max_tries",
    "job_timeout",
    "max_jobs",
    "keep_result",
    "health_check_interval",
)

worker = Worker()
worker.include_subworker(refresh_worker)

WorkerSettings = type(
    "WorkerSettings",
    (),
    {name: getattr(worker, name) for name in ARQ_SETTING_NAMES},
)
