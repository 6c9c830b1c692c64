"""Logging configuration settings."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Structured logging configuration.

    Environment variables use LOG_ prefix.
    Example: LOG_LEVEL=INFO, LOG_JSON_LOGS=true, LOG_AUDIT_LEVEL=WARNING
    """

    service_name: str = Field(
        default="object-acl",
        description="Service name included in JSON records",
    )

    level: LogLevel = Field(default="INFO", description="Root logger level")

    audit_level: LogLevel | None = Field(
        default=None,
        description="Level for the object_acl.audit logger. If None, uses level.",
    )

    json_logs: bool = Field(
        default=True,
        description="Enable JSON Lines formatted structured logs",
    )

    include_context: bool = Field(
        default=True,
        description="Inject log context (request_id, user, ...) into records",
    )

    capture_warnings: bool = Field(default=True)

    @field_validator("level", "audit_level", mode="before")
    @classmethod
    def normalize_level(cls, v: str | None) -> str | None:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Return kwargs suitable for configure_logging(...)."""
        return {
            "log_level": self.level,
            "json_logs": self.json_logs,
            "include_context": self.include_context,
            "service_name": self.service_name,
            "audit_level": self.audit_level,
            "capture_warnings": self.capture_warnings,
        }

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
    )
