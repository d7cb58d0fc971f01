from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from feedstream.main.config import get_settings
from feedstream.main.exceptions import EXCEPTION_MAP, ErrorCodes
from feedstream.main.logging import get_logger
from feedstream.main.models import GeneralError

logger = get_logger(__name__)


def _error_response(status_code: int, message: str, error_code: ErrorCodes) -> JSONResponse:
    headers = None
    if status_code == 503:
        # Store and cache outages are transient; callers may poll again
        headers = {"Retry-After": str(get_settings().refresh_retry_defer_seconds)}

    return JSONResponse(
        status_code=status_code,
        content=GeneralError(message=message, error_code=error_code).model_dump(),
        headers=headers,
    )


def add_exception_handlers(app: FastAPI):
    for exception, (status_code, error_message, error_code) in EXCEPTION_MAP.items():

        def handler(
            request: Request,
            exc: Exception,
            status_code=status_code,
            error_message=error_message,
            error_code=error_code,
        ):
            if status_code >= 500:
                logger.warning(
                    f"{request.method} {request.url.path} answered {status_code}: {exc}",
                    extra={
                        "path": request.url.path,
                        "error_code": int(error_code),
                        "status_code": status_code,
                    },
                )

            return _error_response(status_code, error_message or str(exc), error_code)

        app.add_exception_handler(exception, handler)
