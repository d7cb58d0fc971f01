import asyncio

import aiohttp

from feedstream.main.exceptions import FeedFetchError
from feedstream.main.http_client import http_client
from feedstream.main.logging import get_logger

logger = get_logger(__name__)

FEED_ACCEPT = (
    "application/rss+xml, application/atom+xml, application/xml;q=0.9, "
    "text/xml;q=0.9, */*;q=0.8"
)


class FeedFetcher:
    def __init__(
        self,
        timeout_seconds: float,
        user_agent: str,
        session_provider=http_client,
    ):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.user_agent = user_agent
        self.session_provider = session_provider

    async def fetch(self, feed_url: str) -> bytes:
        """Download a feed document.

        Raises:
            FeedFetchError: on timeout, connection failure or a non-2xx response.
        """
        headers = {"User-Agent": self.user_agent, "Accept": FEED_ACCEPT}

        try:
            async with self.session_provider().get(
                feed_url, headers=headers, timeout=self.timeout, allow_redirects=True
            ) as response:
                if response.status < 200 or response.status >= 300:
                    raise FeedFetchError(
                        feed_url, f"HTTP {response.status}", status_code=response.status
                    )
                return await response.read()
        except asyncio.TimeoutError as exc:
            raise FeedFetchError(
                feed_url, f"timed out after {self.timeout.total}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise FeedFetchError(feed_url, f"{type(exc).__name__}: {exc}") from exc
