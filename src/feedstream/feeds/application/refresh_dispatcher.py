import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError

from feedstream.database.database import SessionScope
from feedstream.feeds.application.feed_registry_service import FeedRegistryService
from feedstream.feeds.application.refresh_service import RefreshService
from feedstream.feeds.domain.feed import utcnow
from feedstream.feeds.domain.refresh_batch import (
    FailedFeed,
    RefreshBatchMessage,
    RefreshResult,
)
from feedstream.feeds.infrastructure.entry_repo import EntryRepository
from feedstream.feeds.infrastructure.refresh_notifier import RefreshResultNotifier
from feedstream.feeds.infrastructure.response_cache import ResponseCache
from feedstream.main.exceptions import StoreUnavailableError
from feedstream.main.log_context import log_context
from feedstream.main.logging import get_logger

logger = get_logger(__name__)

# How many of the newest entries are compared against the caller's guids
NEW_ENTRIES_WINDOW = 50


class Delivery(str, Enum):
    ACK = "ack"
    RETRY = "retry"


@dataclass
class DeliveryOutcome:
    message_id: Optional[str]
    delivery: Delivery
    result: Optional[RefreshResult] = None
    error: Optional[str] = None


class RefreshDispatcher:
    """Consumer side of the refresh queue.

    Per-feed failures end up in ``failedFeeds`` of an acknowledged result.
    Only store unavailability asks the transport to redeliver the batch,
    which is safe because entry writes are idempotent and locks expire.
    """

    def __init__(
        self,
        session_scope: SessionScope,
        registry_service: FeedRegistryService,
        refresh_service: RefreshService,
        response_cache: ResponseCache,
        notifier: RefreshResultNotifier,
    ):
        self.session_scope = session_scope
        self.registry_service = registry_service
        self.refresh_service = refresh_service
        self.response_cache = response_cache
        self.notifier = notifier

    async def consume(self, body: Any, message_id: Optional[str] = None) -> DeliveryOutcome:
        try:
            message = RefreshBatchMessage.model_validate(body)
        except ValidationError as exc:
            logger.error(
                "Dropping malformed refresh message",
                extra={"message_id": message_id, "error": str(exc)},
            )
            return DeliveryOutcome(message_id, Delivery.ACK, error="malformed message")

        try:
            result = await self.handle(message)
        except StoreUnavailableError as exc:
            logger.error(
                "Refresh batch failed, requesting redelivery",
                extra={"batch_id": message.batch_id, "message_id": message_id},
            )
            return DeliveryOutcome(message_id, Delivery.RETRY, error=str(exc))

        return DeliveryOutcome(message_id, Delivery.ACK, result=result)

    async def handle(self, message: RefreshBatchMessage) -> RefreshResult:
        with log_context(batch_id=message.batch_id):
            return await self._refresh_batch(message)

    async def _refresh_batch(self, message: RefreshBatchMessage) -> RefreshResult:
        started = time.monotonic()
        feeds = await self.registry_service.register(message.feeds)
        report = await self.refresh_service.refresh_many(feeds)

        feed_ids = [feed.id for feed in feeds]
        async with self.session_scope() as session:
            entry_repo = EntryRepository(session)
            total_entries = await entry_repo.count_for_feeds(feed_ids)

            if message.existing_guids is not None:
                known = set(message.existing_guids)
                newest = await entry_repo.newest_guids_for_feeds(
                    feed_ids, limit=NEW_ENTRIES_WINDOW
                )
                new_entries_count = sum(1 for guid in newest if guid not in known)
            else:
                new_entries_count = report.new_entry_count

        if report.feeds_with_new_entries:
            await self.response_cache.invalidate_feeds(report.feeds_with_new_entries)

        result = RefreshResult(
            batch_id=message.batch_id,
            success=True,
            refreshed_any=report.refreshed_any,
            new_entries_count=new_entries_count,
            total_entries=total_entries,
            post_titles=[item.post_title for item in message.feeds],
            refresh_timestamp=utcnow(),
            processing_time_ms=int((time.monotonic() - started) * 1000),
            failed_feeds=[
                FailedFeed(post_title=failure.title, feed_url=failure.feed_url, error=failure.error)
                for failure in report.failures
            ],
        )

        logger.info(
            f"Refresh batch done: {len(feeds)} feeds, {new_entries_count} new entries, "
            f"{len(report.failures)} failed",
            extra={"batch_id": message.batch_id},
        )

        await self.notifier.publish(result)
        return result
