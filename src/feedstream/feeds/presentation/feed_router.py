from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from feedstream.feeds.application.refresh_dispatcher import Delivery
from feedstream.feeds.domain.feed import utcnow
from feedstream.feeds.domain.merged_page import MergedPage
from feedstream.feeds.domain.refresh_batch import (
    RefreshBatchMessage,
    RefreshFeedItem,
    RefreshResult,
    new_batch_id,
)
from feedstream.feeds.presentation.feed_models import (
    QueueConsumerRequest,
    QueueConsumerResponse,
    QueueMessageResult,
    RefreshQueuedResponse,
    RefreshRequest,
    StaleCheckRequest,
    StaleCheckResponse,
)
from feedstream.main.config import get_settings
from feedstream.main.container.container import Container
from feedstream.main.exceptions import (
    BadRequestException,
    NotFoundException,
    NotReadyException,
)
from feedstream.main.logging import get_logger
from feedstream.server.dependencies.container import get_container
from feedstream.server.protocol import responses

logger = get_logger(__name__)

router = APIRouter()


def _resolve_window(
    page: int, offset: Optional[int], page_size: Optional[int]
) -> tuple[int, int]:
    settings = get_settings()
    size = min(page_size or settings.page_size_default, settings.page_size_max)
    if offset is None:
        offset = (page - 1) * size
    return offset, size


@router.get(
    "/entries",
    response_model=MergedPage,
    responses=responses.get_responses([400]),
    summary="Merged entry stream",
    description="""
    One page of entries from all requested feeds, newest first, with social
    metrics attached. Feeds can be named by id, post title or feed URL.

    `page` is 1-based; `offset` takes precedence when given. `refresh=true`
    drops cached pages for the user and the feeds before reading.
    """,
)
async def get_entries(
    feed_ids: list[int] = Query(default=[]),
    post_titles: list[str] = Query(default=[]),
    feed_urls: list[str] = Query(default=[]),
    page: int = Query(default=1, ge=1),
    offset: Optional[int] = Query(default=None, ge=0),
    page_size: Optional[int] = Query(default=None, ge=1),
    refresh: bool = False,
    user_id: Optional[str] = None,
    container: Container = Depends(get_container),
):
    if not (feed_ids or post_titles or feed_urls):
        raise BadRequestException("Provide at least one of feed_ids, post_titles or feed_urls")

    offset, size = _resolve_window(page, offset, page_size)

    return await container.feed_page_service().get_page(
        offset=offset,
        page_size=size,
        feed_ids=feed_ids,
        post_titles=post_titles,
        feed_urls=feed_urls,
        user_id=user_id,
        refresh=refresh,
    )


@router.get(
    "/{feed_id}/entries",
    response_model=MergedPage,
    responses=responses.get_responses([404]),
    summary="Entries of a single feed",
)
async def get_feed_entries(
    feed_id: int,
    page: int = Query(default=1, ge=1),
    offset: Optional[int] = Query(default=None, ge=0),
    page_size: Optional[int] = Query(default=None, ge=1),
    refresh: bool = False,
    user_id: Optional[str] = None,
    container: Container = Depends(get_container),
):
    offset, size = _resolve_window(page, offset, page_size)

    return await container.feed_page_service().get_feed_page(
        feed_id, offset=offset, page_size=size, user_id=user_id, refresh=refresh
    )


@router.post(
    "/stale-check",
    response_model=StaleCheckResponse,
    responses=responses.get_responses([503]),
    summary="Which feeds need a refresh",
)
async def stale_check(
    request: StaleCheckRequest,
    container: Container = Depends(get_container),
):
    check = await container.feed_registry_service().check_stale(request.post_titles)

    return StaleCheckResponse(
        stale_feed_titles=check.stale_feed_titles,
        total_checked=check.total_checked,
        stale_count=check.stale_count,
    )


@router.post(
    "/refresh",
    response_model=RefreshQueuedResponse,
    status_code=202,
    responses=responses.get_responses([400, 503]),
    summary="Queue a refresh batch",
)
async def queue_refresh(
    request: RefreshRequest,
    container: Container = Depends(get_container),
):
    media_types = request.media_types or [None] * len(request.feed_urls)
    message = RefreshBatchMessage(
        batch_id=new_batch_id(utcnow()),
        feeds=[
            RefreshFeedItem(post_title=title, feed_url=url, media_type=media_type)
            for title, url, media_type in zip(request.post_titles, request.feed_urls, media_types)
        ],
        existing_guids=request.existing_guids,
        newest_entry_date=request.newest_entry_date,
        user_id=request.user_id,
    )

    queued = await container.job_manager().enqueue_refresh(message)

    return RefreshQueuedResponse(
        batch_id=message.batch_id,
        status="queued" if queued else "already_queued",
        feed_count=len(message.feeds),
    )


@router.get(
    "/refresh/{batch_id}",
    response_model=RefreshResult,
    responses=responses.get_responses([404, 503]),
    summary="Result of a refresh batch",
)
async def get_refresh_result(
    batch_id: str,
    container: Container = Depends(get_container),
):
    try:
        result = await container.refresh_result_notifier().get(batch_id)
    except RedisError as exc:
        raise NotReadyException("Refresh results are unavailable") from exc

    if result is None:
        raise NotFoundException(f"No result for batch {batch_id}")

    return result


@router.post(
    "/queue-consumer",
    response_model=QueueConsumerResponse,
    responses=responses.get_responses([503]),
    summary="Consume refresh messages pushed by a queue",
    description="""
    HTTP bridge for push-based queues. A 200 response acknowledges every
    message. A 503 asks the transport to redeliver the request because at
    least one batch hit a pipeline-level failure; redelivery is safe.
    """,
)
async def consume_queue(
    request: QueueConsumerRequest,
    container: Container = Depends(get_container),
):
    dispatcher = container.refresh_dispatcher()

    results = []
    for message in request.messages:
        outcome = await dispatcher.consume(message.body, message_id=message.id)
        results.append(
            QueueMessageResult(
                id=outcome.message_id,
                status=outcome.delivery,
                result=outcome.result,
                error=outcome.error,
            )
        )

    retried = sum(1 for result in results if result.status is Delivery.RETRY)
    response = QueueConsumerResponse(
        processed=len(results),
        acked=len(results) - retried,
        retried=retried,
        results=results,
    )

    if retried:
        logger.warning(f"{retried} of {len(results)} refresh messages need redelivery")
        return JSONResponse(
            status_code=503, content=response.model_dump(mode="json", by_alias=True)
        )

    return response
