from arq import create_pool
from arq.connections import ArqRedis
from arq.constants import default_queue_name

from feedstream.feeds.domain.refresh_batch import RefreshBatchMessage
from feedstream.main.config import get_settings
from feedstream.main.exceptions import NotReadyException
from feedstream.main.logging import get_logger
from feedstream.redis.connection import build_arq_redis_settings

logger = get_logger(__name__)

REFRESH_FEED_BATCH = "refresh_feed_batch"


class JobManager:
    def __init__(self):
        self._redis: ArqRedis | None = None

    async def init(self):
        settings = get_settings()
        self._redis = await create_pool(build_arq_redis_settings(settings))

        logger.debug(
            f"Job manager connected to redis on host {settings.redis_host}"
            f" and port {settings.redis_port}"
        )

    async def close(self):
        if self._redis is None:
            return
        await self._redis.aclose()
        self._redis = None

    async def enqueue_refresh(self, message: RefreshBatchMessage) -> bool:
        """Queue a refresh batch; the batch id doubles as the arq job id.

        Returns False when a job with that id is already queued or running.
        """
        if self._redis is None:
            raise NotReadyException("Job manager is not initialized!")

        job = await self._redis.enqueue_job(
            REFRESH_FEED_BATCH,
            message.model_dump(mode="json", by_alias=True),
            _job_id=message.batch_id,
        )
        if job is None:
            logger.info("Refresh batch already queued", extra={"batch_id": message.batch_id})
            return False

        logger.debug(
            f"Queued refresh of {len(message.feeds)} feeds",
            extra={"batch_id": message.batch_id},
        )
        return True

    async def pending_job_count(self) -> int:
        """Jobs in the arq queue; a job stays there until it has finished running."""
        if self._redis is None:
            raise NotReadyException("Job manager is not initialized!")

        return await self._redis.zcard(default_queue_name)


job_manager = JobManager()
