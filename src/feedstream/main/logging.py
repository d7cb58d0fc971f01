import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from rich.logging import RichHandler

from feedstream.main.config import get_loglevel
from feedstream.main.log_context import get_log_context


JSON_LOGS_ENABLED = os.getenv("JSON_LOGS", "true").lower() in {"1", "true", "yes", "on"}

# Attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}

# Libraries that log per request or per statement
NOISY_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
    "sqlalchemy.dialects",
    "aiohttp.access",
    "aiosqlite",
    "feedparser",
)


class FeedLogFormatter(logging.Formatter):
    """One JSON object per line.

    Field precedence is the fixed record fields first, then the bound log
    context (correlation id, job id, batch id), then ``extra`` values.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in get_log_context().items():
            entry.setdefault(key, value)

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS or key.startswith("_") or value is None:
                continue
            entry.setdefault(key, value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = record.stack_info

        return json.dumps(entry, default=str)


def _quiet_third_party(level: int):
    quiet_level = logging.INFO if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(quiet_level)
        noisy.propagate = False


def _console_handler(level: int) -> logging.Handler:
    if JSON_LOGS_ENABLED:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(FeedLogFormatter())
    else:
        handler = RichHandler(rich_tracebacks=True, markup=False, show_path=True)
    handler.setLevel(level)
    return handler


_quiet_third_party(get_loglevel())


def get_logger(module_name: str) -> logging.Logger:
    """Module logger with a single console handler.

    JSON lines when ``JSON_LOGS`` is on, which is the default for the api and
    the worker containers, and rich output for local runs otherwise.
    """
    level = get_loglevel()
    logger = logging.getLogger(module_name)
    logger.setLevel(level)
    logger.propagate = False
    if not logger.handlers:
        logger.addHandler(_console_handler(level))
    return logger
