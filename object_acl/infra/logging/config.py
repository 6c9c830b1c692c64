"""Logging configuration setup.

Uses ``logging.config.dictConfig``. All handlers hang off the root logger and
library loggers (``object_acl.*``) propagate up. The library itself never
calls this; embedding services call ``setup_logging`` once at startup.
"""

from __future__ import annotations

import logging
import logging.config
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from object_acl.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)
_LOGGING_INITIALIZED = False

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Configure logging once across entrypoints.

    Args:
        log_settings: Logging settings; loaded via get_logging_settings() if omitted.
        force: Reconfigure even if logging was already initialized.
        **configure_kwargs: Overrides passed to configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    settings_obj = log_settings
    if settings_obj is None:
        from object_acl.core.settings import get_logging_settings

        settings_obj = get_logging_settings()

    log_config = {**settings_obj.to_logging_kwargs(), **configure_kwargs}
    configure_logging(**log_config)
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    include_context: bool = True,
    service_name: str | None = None,
    audit_level: str | None = None,
    capture_warnings: bool = True,
) -> None:
    """Configure the root logger with a single stderr handler.

    Args:
        log_level: Root logger level.
        json_logs: Emit JSON Lines instead of plain text.
        include_context: Attach ContextInjectingFilter to the handler.
        service_name: Static ``service`` field for JSON records.
        audit_level: Level for the ``object_acl.audit`` logger (defaults to log_level).
        capture_warnings: Route ``warnings`` through logging.
    """
    formatter: dict[str, Any]
    if json_logs:
        formatter = {
            "()": "object_acl.infra.logging.formatters.JSONFormatter",
            "static": {"service": service_name} if service_name else None,
        }
    else:
        formatter = {"format": PLAIN_FORMAT}

    handler: dict[str, Any] = {
        "class": "logging.StreamHandler",
        "formatter": "default",
        "stream": "ext://sys.stderr",
    }
    filters: dict[str, Any] = {}
    if include_context:
        filters["context"] = {"()": "object_acl.infra.logging.context.ContextInjectingFilter"}
        handler["filters"] = ["context"]

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "filters": filters,
        "handlers": {"console": handler},
        "loggers": {
            "object_acl.audit": {"level": (audit_level or log_level).upper()},
        },
        "root": {"level": log_level.upper(), "handlers": ["console"]},
    }

    logging.config.dictConfig(config)
    logging.captureWarnings(capture_warnings)
    logger.debug(
        "Logging configured",
        extra={"log_level": log_level, "json_logs": json_logs},
    )
