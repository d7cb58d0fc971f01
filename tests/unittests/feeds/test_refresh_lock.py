import asyncio
from datetime import timedelta

import pytest

from feedstream.feeds.application.refresh_lock import RefreshLockManager
from feedstream.feeds.domain.feed import LockAcquisition

TTL = timedelta(minutes=5)


@pytest.fixture
def lock_manager(db):
    return RefreshLockManager(
        db.transaction, ttl=TTL, backoff_base_seconds=60, backoff_max_seconds=3600
    )


@pytest.mark.asyncio
async def test_only_one_of_many_concurrent_claims_wins(lock_manager, make_feed, now):
    feed = await make_feed()

    results = await asyncio.gather(
        *(lock_manager.try_acquire(feed.id, now=now) for _ in range(10))
    )

    statuses = [result.status for result in results]
    assert statuses.count(LockAcquisition.ACQUIRED) == 1
    assert statuses.count(LockAcquisition.ALREADY_LOCKED) == 9


@pytest.mark.asyncio
async def test_acquire_sets_lock_until(lock_manager, make_feed, get_feed, now):
    feed = await make_feed()

    result = await lock_manager.try_acquire(feed.id, now=now)

    assert result.acquired
    assert result.lock_until == now + TTL
    assert (await get_feed(feed.id)).lock_until == now + TTL


@pytest.mark.asyncio
async def test_lock_is_held_until_ttl(lock_manager, make_feed, now):
    feed = await make_feed()
    await lock_manager.try_acquire(feed.id, now=now)

    result = await lock_manager.try_acquire(feed.id, now=now + TTL - timedelta(seconds=1))

    assert result.status is LockAcquisition.ALREADY_LOCKED


@pytest.mark.asyncio
async def test_abandoned_lock_is_reclaimable_after_ttl(lock_manager, make_feed, now):
    feed = await make_feed()
    await lock_manager.try_acquire(feed.id, now=now)

    result = await lock_manager.try_acquire(feed.id, now=now + TTL + timedelta(seconds=1))

    assert result.acquired


@pytest.mark.asyncio
async def test_successful_release_records_fetch_time(lock_manager, make_feed, get_feed, now):
    feed = await make_feed(consecutive_failures=2, next_retry_at=now - timedelta(seconds=1))
    lock = await lock_manager.try_acquire(feed.id, now=now)

    done = now + timedelta(seconds=20)
    await lock_manager.release(feed.id, success=True, lock_until=lock.lock_until, now=done)

    stored = await get_feed(feed.id)
    assert stored.lock_until is None
    assert stored.last_fetched_at == done
    assert stored.consecutive_failures == 0
    assert stored.next_retry_at is None


@pytest.mark.asyncio
async def test_failed_release_gives_no_freshness_credit(lock_manager, make_feed, get_feed, now):
    previous = now - timedelta(hours=5)
    feed = await make_feed(last_fetched_at=previous)
    lock = await lock_manager.try_acquire(feed.id, now=now)

    await lock_manager.release(feed.id, success=False, lock_until=lock.lock_until, now=now)

    stored = await get_feed(feed.id)
    assert stored.lock_until is None
    assert stored.last_fetched_at == previous
    assert stored.consecutive_failures == 1
    assert stored.next_retry_at == now + timedelta(seconds=60)


@pytest.mark.asyncio
async def test_repeated_failures_back_off_exponentially(lock_manager, make_feed, get_feed, now):
    feed = await make_feed(consecutive_failures=2)
    lock = await lock_manager.try_acquire(feed.id, now=now)

    await lock_manager.release(feed.id, success=False, lock_until=lock.lock_until, now=now)

    stored = await get_feed(feed.id)
    assert stored.consecutive_failures == 3
    assert stored.next_retry_at == now + timedelta(seconds=240)


@pytest.mark.asyncio
async def test_failure_without_backoff_is_immediately_retryable(db, make_feed, get_feed, now):
    manager = RefreshLockManager(db.transaction, ttl=TTL)
    feed = await make_feed()
    lock = await manager.try_acquire(feed.id, now=now)

    await manager.release(feed.id, success=False, lock_until=lock.lock_until, now=now)

    assert (await get_feed(feed.id)).next_retry_at is None
    assert (await manager.try_acquire(feed.id, now=now)).acquired


@pytest.mark.asyncio
async def test_release_of_a_lost_claim_keeps_the_new_owner(lock_manager, make_feed, get_feed, now):
    feed = await make_feed()
    first = await lock_manager.try_acquire(feed.id, now=now)
    later = now + TTL + timedelta(minutes=1)
    second = await lock_manager.try_acquire(feed.id, now=later)

    await lock_manager.release(feed.id, success=True, lock_until=first.lock_until, now=later)

    stored = await get_feed(feed.id)
    assert stored.lock_until == second.lock_until
    assert stored.last_fetched_at is None


@pytest.mark.asyncio
async def test_claim_requires_feed_to_still_be_stale(lock_manager, make_feed, now):
    feed = await make_feed(last_fetched_at=now - timedelta(minutes=10))

    result = await lock_manager.try_acquire(
        feed.id, now=now, stale_before=now - timedelta(hours=4)
    )

    assert result.status is LockAcquisition.ALREADY_LOCKED


@pytest.mark.asyncio
async def test_clear_expired(lock_manager, make_feed, now):
    await make_feed(lock_until=now - timedelta(minutes=1))

    assert await lock_manager.clear_expired(now=now) == 1
