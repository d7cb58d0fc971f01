from arq import Retry

from feedstream.feeds.application.refresh_dispatcher import Delivery
from feedstream.feeds.domain.feed import utcnow
from feedstream.feeds.domain.refresh_batch import (
    RefreshBatchMessage,
    RefreshFeedItem,
    stale_batch_id,
)
from feedstream.main.config import get_settings
from feedstream.main.container.container import Container
from feedstream.main.logging import get_logger
from feedstream.worker.worker import Worker

logger = get_logger(__name__)

worker = Worker()


@worker.function()
async def refresh_feed_batch(ctx: dict, params: dict, container: Container):
    """Queue consumer for refresh batches.

    Returning acknowledges the job. ``Retry`` hands it back to arq, which
    redelivers it until ``max_tries`` is reached.
    """
    outcome = await container.refresh_dispatcher().consume(params, message_id=ctx.get("job_id"))

    if outcome.delivery is Delivery.RETRY:
        job_try = ctx.get("job_try", 1)
        raise Retry(defer=get_settings().refresh_retry_defer_seconds * job_try)

    return {
        "acked": True,
        "error": outcome.error,
        "result": outcome.result.model_dump(mode="json", by_alias=True) if outcome.result else None,
    }


@worker.cron_job(minute={0, 15, 30, 45})
async def enqueue_stale_feeds(container: Container):
    """Queue every stale, unlocked feed in batches of the refresh concurrency.

    Nothing is queued while earlier batches are still waiting, so a worker
    that falls behind does not get the same feeds again every tick.
    """
    settings = get_settings()
    job_manager = container.job_manager()

    pending = await job_manager.pending_job_count()
    if pending:
        logger.info(f"Skipping stale feed scan, {pending} jobs still queued")
        return 0

    feeds = await container.feed_registry_service().find_stale_feeds(
        limit=settings.stale_feed_scan_limit
    )
    if not feeds:
        logger.debug("No stale feeds to queue")
        return 0

    batch_size = settings.feed_refresh_concurrency
    tick = utcnow().replace(second=0, microsecond=0)
    queued = 0

    for start in range(0, len(feeds), batch_size):
        chunk = feeds[start : start + batch_size]
        message = RefreshBatchMessage(
            batch_id=stale_batch_id(tick, start // batch_size),
            feeds=[
                RefreshFeedItem(
                    post_title=feed.title, feed_url=feed.feed_url, media_type=feed.media_type
                )
                for feed in chunk
            ],
        )
        if await job_manager.enqueue_refresh(message):
            queued += 1

    logger.info(f"Queued {queued} refresh batches for {len(feeds)} stale feeds")
    return queued


@worker.cron_job(minute=0)
async def clear_expired_feed_locks(container: Container):
    cleared = await container.refresh_lock_manager().clear_expired()
    if cleared:
        logger.info(f"Cleared {cleared} expired feed refresh locks")
    return cleared
