"""Context management for structured logging.

Fields set with ``set_log_context`` (request id, acting user, the object
being checked) are injected into every record emitted from the same task,
so ACL decisions can be correlated with the request that triggered them.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

_log_context: ContextVar[dict[str, Any] | None] = ContextVar("log_context", default=None)


def set_log_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task.

    Example:
        ```python
        set_log_context(request_id="abc-123", user="alice")
        logger.info("Checking permission")  # includes request_id and user
        ```
    """
    current = dict(_log_context.get() or {})
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    return dict(_log_context.get() or {})


def clear_log_context() -> None:
    _log_context.set(None)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Temporarily add fields to the logging context.

    Example:
        ```python
        with log_context(object_type="Document", object_id=42):
            await service.grant(...)
        ```
    """
    token = _log_context.set({**(_log_context.get() or {}), **kwargs})
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Copy context fields onto each LogRecord without overwriting attributes."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in (_log_context.get() or {}).items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
