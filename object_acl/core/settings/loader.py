"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Usage:
    from object_acl.core.settings.loader import get_acl_settings

    settings = get_acl_settings()  # First call: loads and validates
    settings = get_acl_settings()  # Subsequent calls: returns cached instance

Testing:
    Clear the caches to force a reload after changing the environment:
    clear_all_caches()

    Or construct settings directly:
    settings = AclSettings(cache_backend="memory")
"""

from __future__ import annotations

from functools import lru_cache

from .acl import AclSettings
from .database import DatabaseSettings
from .logs import LoggingSettings
from .redis import RedisSettings


@lru_cache(maxsize=1)
def get_acl_settings() -> AclSettings:
    """Get cached ACL engine settings.

    Returns:
        Validated and frozen AclSettings instance.
    """
    return AclSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings.

    Returns:
        Validated and frozen DatabaseSettings instance.
    """
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_redis_settings() -> RedisSettings:
    """Get cached Redis settings.

    Returns:
        Validated and frozen RedisSettings instance.
    """
    return RedisSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


def clear_all_caches() -> None:
    """Clear every cached settings instance."""
    get_acl_settings.cache_clear()
    get_db_settings.cache_clear()
    get_redis_settings.cache_clear()
    get_logging_settings.cache_clear()
