"""Modular Pydantic Settings v2 configuration.

Settings are split by concern, each with its own environment prefix:
- AclSettings (ACL_): cache backend, negative caching, repository timeout, audit,
  change authorities
- DatabaseSettings (DB_ / DATABASE_URL): ACL tables connection
- RedisSettings (REDIS_ / REDIS_URL): shared cache store
- LoggingSettings (LOG_): structured logging

Import settings via cached loaders:
    from object_acl.core.settings import get_acl_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .acl import AclSettings
from .database import DatabaseSettings
from .loader import (
    clear_all_caches,
    get_acl_settings,
    get_db_settings,
    get_logging_settings,
    get_redis_settings,
)
from .logs import LoggingSettings
from .redis import RedisSettings

__all__ = [
    "AclSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "RedisSettings",
    "clear_all_caches",
    "get_acl_settings",
    "get_db_settings",
    "get_logging_settings",
    "get_redis_settings",
]
