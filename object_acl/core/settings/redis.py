"""Redis settings for the shared ACL cache store."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis connection settings, used when ACL_CACHE_BACKEND=redis.

    Environment variables use REDIS_ prefix.
    Example: REDIS_URL="redis://localhost:6379/0"
    """

    redis_url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection URL. If provided, overrides component fields.",
    )

    host: str = Field(default="localhost")
    port: int = Field(default=6379, ge=1, le=65535)
    db: int = Field(default=0, ge=0, le=15)
    username: str | None = Field(default=None, description="Redis username (Redis 6+ ACL)")
    password: SecretStr | None = Field(default=None)

    max_connections: int = Field(default=50, ge=1, le=1000)
    socket_timeout: float = Field(default=5.0, ge=0.1, le=30.0)
    socket_connect_timeout: float = Field(default=5.0, ge=0.1, le=30.0)
    health_check_interval: int = Field(default=30, ge=0, le=300)

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def url(self) -> str:
        """Connection URL built from components unless REDIS_URL is set."""
        if self.redis_url:
            return self.redis_url
        auth = ""
        if self.password is not None:
            secret = quote(self.password.get_secret_value(), safe="")
            user = quote(self.username, safe="") if self.username else ""
            auth = f"{user}:{secret}@"
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"

    def connection_pool_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ConnectionPool.from_url()."""
        return {
            "max_connections": self.max_connections,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "health_check_interval": self.health_check_interval,
            "decode_responses": True,
        }
