import asyncio

import pytest

from feedstream.main.log_context import (
    bind_log_context,
    clear_log_context,
    get_log_context,
    log_context,
)


@pytest.fixture(autouse=True)
def empty_context():
    clear_log_context()
    yield
    clear_log_context()


def test_bind_merges_and_none_unbinds():
    bind_log_context(correlation_id="c-1", batch_id="batch_1")
    bind_log_context(batch_id=None, job_id="j-1")

    assert get_log_context() == {"correlation_id": "c-1", "job_id": "j-1"}


def test_returned_context_is_a_copy():
    get_log_context()["batch_id"] = "leak"

    assert get_log_context() == {}


def test_block_restores_previous_fields():
    bind_log_context(correlation_id="c-1")

    with log_context(batch_id="batch_1") as fields:
        assert fields == {"correlation_id": "c-1", "batch_id": "batch_1"}

    assert get_log_context() == {"correlation_id": "c-1"}


def test_block_restores_fields_after_an_error():
    with pytest.raises(RuntimeError):
        with log_context(batch_id="batch_1"):
            raise RuntimeError("boom")

    assert get_log_context() == {}


@pytest.mark.asyncio
async def test_concurrent_tasks_do_not_share_fields():
    seen = {}

    async def job(batch_id):
        with log_context(batch_id=batch_id):
            await asyncio.sleep(0)
            seen[batch_id] = get_log_context()["batch_id"]

    await asyncio.gather(job("batch_1"), job("batch_2"))

    assert seen == {"batch_1": "batch_1", "batch_2": "batch_2"}
