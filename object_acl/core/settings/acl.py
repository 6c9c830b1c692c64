"""ACL engine settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AclSettings(BaseSettings):
    """Cache, repository and audit settings for the ACL engine.

    Environment variables use ACL_ prefix.
    Example: ACL_CACHE_BACKEND=redis, ACL_REPOSITORY_TIMEOUT=2.5
    """

    # ──────────────────────────────────────────────────────────────
    # Cache
    # ──────────────────────────────────────────────────────────────

    cache_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Where Acl snapshots are cached: in-process memory or a shared Redis",
    )

    cache_negative_results: bool = Field(
        default=True,
        description="Cache 'no Acl exists' results; create_acl invalidates them",
    )

    cache_max_entries: int = Field(
        default=10_000,
        ge=1,
        le=10_000_000,
        description="Maximum Acl snapshots held by the in-memory store (LRU eviction)",
    )

    cache_ttl: int = Field(
        default=3600,
        ge=1,
        description="TTL in seconds for snapshots in the Redis store",
    )

    cache_key_prefix: str = Field(
        default="acl",
        min_length=1,
        description="Key prefix for the Redis store",
    )

    # ──────────────────────────────────────────────────────────────
    # Repository
    # ──────────────────────────────────────────────────────────────

    repository_timeout: float = Field(
        default=5.0,
        gt=0.0,
        le=300.0,
        description="Upper bound in seconds for one repository call",
    )

    # ──────────────────────────────────────────────────────────────
    # Auditing
    # ──────────────────────────────────────────────────────────────

    audit_enabled: bool = Field(
        default=True,
        description="Emit audit records for entries flagged audit_success/audit_failure",
    )

    # ──────────────────────────────────────────────────────────────
    # Change authorization
    # ──────────────────────────────────────────────────────────────

    ownership_authority: str = Field(
        default="ROLE_ADMIN",
        min_length=1,
        description="Authority allowed to change any Acl's owner",
    )

    auditing_authority: str = Field(
        default="ROLE_ADMIN",
        min_length=1,
        description="Authority allowed to change any Acl's audit flags",
    )

    general_authority: str = Field(
        default="ROLE_ADMIN",
        min_length=1,
        description="Authority allowed to change any Acl's entries, parent and inheritance",
    )

    model_config = SettingsConfigDict(
        env_prefix="ACL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
