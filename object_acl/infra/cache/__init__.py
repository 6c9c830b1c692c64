"""Acl snapshot caching: read-through cache plus memory and Redis stores."""

from __future__ import annotations

from object_acl.infra.cache.acl_cache import STORE_ERRORS, AclCache
from object_acl.infra.cache.redis import RedisAclStore, create_redis_client
from object_acl.infra.cache.stores import ABSENT, AclCacheStore, CacheValue, MemoryAclStore

__all__ = [
    "ABSENT",
    "STORE_ERRORS",
    "AclCache",
    "AclCacheStore",
    "CacheValue",
    "MemoryAclStore",
    "RedisAclStore",
    "create_redis_client",
]
