"""Logging infrastructure.

Structured logging for the ACL engine:
- JSONL format with OpenTelemetry trace correlation
- Automatic context injection (request_id, user, object under check)
- Lazy evaluation for debug messages on the evaluation hot path

Basic usage:
    from object_acl.infra.logging import setup_logging, set_log_context

    setup_logging()
    set_log_context(request_id="abc-123")
"""

from object_acl.infra.logging.config import configure_logging, setup_logging
from object_acl.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    log_context,
    set_log_context,
)
from object_acl.infra.logging.formatters import JSONFormatter
from object_acl.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger, lazy

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "LazyLoggerAdapter",
    "clear_log_context",
    "configure_logging",
    "get_lazy_logger",
    "get_log_context",
    "lazy",
    "log_context",
    "set_log_context",
    "setup_logging",
]
