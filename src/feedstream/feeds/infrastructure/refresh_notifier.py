import asyncio
from typing import Optional

import aiohttp
import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from feedstream.feeds.domain.refresh_batch import RefreshResult
from feedstream.main.http_client import http_client
from feedstream.main.logging import get_logger

logger = get_logger(__name__)

RESULT_KEY_PREFIX = "feedstream:refresh-result:"


class RefreshResultNotifier:
    """Publishes batch results to redis and, if configured, a callback URL.

    Publishing is best effort. A failure is logged and the batch still counts
    as processed.
    """

    def __init__(
        self,
        redis_client: aioredis.Redis,
        ttl_seconds: int,
        callback_url: Optional[str] = None,
        timeout_seconds: float = 10.0,
        session_provider=http_client,
    ):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.callback_url = callback_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.session_provider = session_provider

    async def publish(self, result: RefreshResult) -> None:
        payload = result.model_dump_json(by_alias=True)

        try:
            await self.redis.set(
                f"{RESULT_KEY_PREFIX}{result.batch_id}", payload, ex=self.ttl_seconds
            )
        except RedisError as exc:
            logger.warning(
                "Could not store refresh result",
                extra={"batch_id": result.batch_id, "error": str(exc)},
            )

        if self.callback_url:
            await self._post(result.batch_id, payload)

    async def _post(self, batch_id: str, payload: str) -> None:
        try:
            async with self.session_provider().post(
                self.callback_url,
                data=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            ) as response:
                if response.status >= 400:
                    logger.warning(
                        "Refresh callback rejected the result",
                        extra={"batch_id": batch_id, "status_code": response.status},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Refresh callback failed",
                extra={"batch_id": batch_id, "error": str(exc)},
            )

    async def get(self, batch_id: str) -> Optional[RefreshResult]:
        raw = await self.redis.get(f"{RESULT_KEY_PREFIX}{batch_id}")
        if raw is None:
            return None

        try:
            return RefreshResult.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored refresh result is unreadable", extra={"batch_id": batch_id})
            return None
