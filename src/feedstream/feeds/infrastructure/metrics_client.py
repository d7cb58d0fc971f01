"""Read-only client for the social metrics service."""

import asyncio
from typing import Optional, Protocol, Sequence

import aiohttp
from pydantic import ValidationError

from feedstream.feeds.domain.merged_page import EntryMetrics
from feedstream.main.exceptions import MetricsUnavailableError
from feedstream.main.http_client import http_client
from feedstream.main.logging import get_logger

logger = get_logger(__name__)


class MetricsClient(Protocol):
    async def get_metrics(
        self, guids: Sequence[str], user_id: Optional[str] = None
    ) -> dict[str, EntryMetrics]: ...


class NullMetricsClient:
    """Used when no metrics service is configured; every entry gets zeros."""

    async def get_metrics(
        self, guids: Sequence[str], user_id: Optional[str] = None
    ) -> dict[str, EntryMetrics]:
        return {}


class HttpMetricsClient:
    """POSTs ``{guids, userId}`` and expects ``{metrics: {guid: EntryMetrics}}``."""

    def __init__(self, url: str, timeout_seconds: float = 5.0, session_provider=http_client):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.session_provider = session_provider

    async def get_metrics(
        self, guids: Sequence[str], user_id: Optional[str] = None
    ) -> dict[str, EntryMetrics]:
        if not guids:
            return {}

        payload = {"guids": list(guids), "userId": user_id}

        try:
            async with self.session_provider().post(
                self.url, json=payload, timeout=self.timeout
            ) as response:
                if response.status != 200:
                    raise MetricsUnavailableError(
                        f"Metrics service responded with HTTP {response.status}"
                    )
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise MetricsUnavailableError(f"Metrics service unreachable: {exc}") from exc
        except ValueError as exc:
            # A 200 whose body is not JSON, e.g. a proxy error page
            raise MetricsUnavailableError("Metrics response is not JSON") from exc

        try:
            return {
                guid: EntryMetrics.model_validate(metrics)
                for guid, metrics in data.get("metrics", {}).items()
            }
        except (AttributeError, ValidationError) as exc:
            raise MetricsUnavailableError("Malformed metrics response") from exc


def build_metrics_client(url: Optional[str], timeout_seconds: float) -> MetricsClient:
    if not url:
        return NullMetricsClient()
    return HttpMetricsClient(url, timeout_seconds=timeout_seconds)
