import asyncio

import aiohttp
import pytest

from feedstream.feeds.infrastructure.metrics_client import (
    HttpMetricsClient,
    NullMetricsClient,
    build_metrics_client,
)
from feedstream.main.exceptions import MetricsUnavailableError

URL = "http://metrics.internal/batch"


@pytest.fixture
def client(http_session):
    return HttpMetricsClient(URL, timeout_seconds=2, session_provider=http_session.provider)


@pytest.mark.asyncio
async def test_one_request_for_all_guids(client, http_session):
    http_session.response.json_data = {
        "metrics": {
            "g1": {
                "likes": {"count": 3, "isLiked": True},
                "comments": {"count": 1},
                "retweets": {"count": 0, "isRetweeted": False},
                "bookmarks": {"isBookmarked": True},
            }
        }
    }

    metrics = await client.get_metrics(["g1", "g2"], user_id="u1")

    assert len(http_session.calls) == 1
    method, url, kwargs = http_session.calls[0]
    assert (method, url) == ("POST", URL)
    assert kwargs["json"] == {"guids": ["g1", "g2"], "userId": "u1"}
    assert metrics["g1"].likes.count == 3
    assert metrics["g1"].likes.is_liked
    assert metrics["g1"].bookmarks.is_bookmarked
    assert "g2" not in metrics


@pytest.mark.asyncio
async def test_no_guids_makes_no_request(client, http_session):
    assert await client.get_metrics([]) == {}
    assert http_session.calls == []


@pytest.mark.asyncio
async def test_error_status_is_unavailable(client, http_session):
    http_session.response.status = 502

    with pytest.raises(MetricsUnavailableError):
        await client.get_metrics(["g1"])


@pytest.mark.parametrize("error", [asyncio.TimeoutError(), aiohttp.ClientConnectionError("refused")])
@pytest.mark.asyncio
async def test_transport_errors_are_unavailable(client, http_session, error):
    http_session.error = error

    with pytest.raises(MetricsUnavailableError):
        await client.get_metrics(["g1"])


@pytest.mark.asyncio
async def test_malformed_body_is_unavailable(client, http_session):
    http_session.response.json_data = ["not", "an", "object"]

    with pytest.raises(MetricsUnavailableError):
        await client.get_metrics(["g1"])


@pytest.mark.asyncio
async def test_non_json_body_is_unavailable(client, http_session):
    http_session.response.body = b"<html>oops</html>"

    with pytest.raises(MetricsUnavailableError, match="not JSON"):
        await client.get_metrics(["g1"])


@pytest.mark.asyncio
async def test_build_without_url_gives_null_client():
    client = build_metrics_client(None, timeout_seconds=5)

    assert isinstance(client, NullMetricsClient)
    assert await client.get_metrics(["g1"]) == {}


def test_build_with_url_gives_http_client():
    assert isinstance(build_metrics_client(URL, timeout_seconds=5), HttpMetricsClient)
