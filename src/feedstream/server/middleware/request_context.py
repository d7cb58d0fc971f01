from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from feedstream.main.log_context import bind_log_context, clear_log_context

CORRELATION_HEADER = "X-Correlation-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every log line of a request with its correlation id."""

    async def dispatch(self, request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid4())
        bind_log_context(correlation_id=correlation_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_log_context()

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
