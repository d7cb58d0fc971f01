"""Fields that are attached to every log record of the current task.

The HTTP middleware binds a correlation id, the worker binds the arq job id
and the refresh dispatcher binds the batch id it is working on. The JSON
formatter in ``feedstream.main.logging`` reads them back.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Mapping

_log_fields: ContextVar[Mapping[str, Any]] = ContextVar("feedstream_log_fields", default={})


def get_log_context() -> dict[str, Any]:
    return dict(_log_fields.get())


def bind_log_context(**fields: Any) -> dict[str, Any]:
    """Add fields to the current task. A ``None`` value unbinds the field."""
    merged = {**_log_fields.get(), **fields}
    bound = {key: value for key, value in merged.items() if value is not None}
    _log_fields.set(bound)
    return dict(bound)


def clear_log_context() -> None:
    _log_fields.set({})


@contextmanager
def log_context(**fields: Any) -> Iterator[dict[str, Any]]:
    """Bind fields for the duration of a block and restore the previous ones after."""
    token = _log_fields.set(
        {key: value for key, value in {**_log_fields.get(), **fields}.items() if value is not None}
    )
    try:
        yield get_log_context()
    finally:
        _log_fields.reset(token)
