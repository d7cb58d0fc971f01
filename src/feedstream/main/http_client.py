import time

import aiohttp

from feedstream.main.logging import get_logger

logger = get_logger(__name__)

SLOW_REQUEST_MS = 5000


class HttpClient:
    """Owns the aiohttp session shared by feed downloads and outbound webhooks.

    Instances are callable so collaborators can take it as a session provider
    and only resolve the session once the lifespan has started it.
    """

    session: aiohttp.ClientSession = None

    def __init__(self, slow_request_ms: int = SLOW_REQUEST_MS):
        self.slow_request_ms = slow_request_ms

    def _timing_trace(self) -> aiohttp.TraceConfig:
        trace = aiohttp.TraceConfig()

        async def on_request_start(session, trace_config_ctx, params):
            trace_config_ctx.started = time.perf_counter()

        async def on_request_end(session, trace_config_ctx, params):
            elapsed_ms = int((time.perf_counter() - trace_config_ctx.started) * 1000)
            if elapsed_ms >= self.slow_request_ms:
                logger.warning(
                    f"Slow {params.method} to {params.url.host}: {elapsed_ms}ms",
                    extra={
                        "event": "http_slow",
                        "host": params.url.host,
                        "status_code": params.response.status,
                        "duration_ms": elapsed_ms,
                    },
                )

        trace.on_request_start.append(on_request_start)
        trace.on_request_end.append(on_request_end)
        return trace

    def start(self, max_connections: int = 100, max_connections_per_host: int = 4):
        # Per-request timeouts are set by each caller; this is only a ceiling
        timeout = aiohttp.ClientTimeout(total=60.0, connect=10.0)

        # Many feeds live on the same hosting platform, keep per-host load low
        connector = aiohttp.TCPConnector(
            limit=max_connections,
            limit_per_host=max_connections_per_host,
            enable_cleanup_closed=True,
            ttl_dns_cache=300,
        )

        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            trace_configs=[self._timing_trace()],
        )

    async def stop(self):
        if self.session is None:
            return
        await self.session.close()
        self.session = None

    def __call__(self) -> aiohttp.ClientSession:
        assert self.session is not None, "HTTP client used before startup"
        return self.session


http_client = HttpClient()
