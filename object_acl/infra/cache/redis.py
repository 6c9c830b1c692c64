"""Redis-backed Acl snapshot store.

Shares cached Acls between processes. Snapshots are stored as JSON produced
by AclSchema under ``{prefix}:{type}:{id}`` with a TTL; an identity known to
have no Acl is stored as ``{"absent": true}``.

Example:
    client = create_redis_client(get_redis_settings())
    store = RedisAclStore(client, prefix="acl", ttl=3600)
    cache = AclCache(repository, store)
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from redis.asyncio import ConnectionPool, Redis

from object_acl.core.schemas.acl import AclSchema
from object_acl.infra.cache.stores import ABSENT

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from object_acl.core.acl.identity import ObjectIdentity
    from object_acl.core.settings.redis import RedisSettings
    from object_acl.infra.cache.stores import CacheValue

logger = logging.getLogger(__name__)

_ABSENT_PAYLOAD = json.dumps({"absent": True})
_CLEAR_BATCH = 500


def create_redis_client(settings: RedisSettings) -> Redis:
    """Create a pooled Redis client; closing the client closes the pool."""
    logger.info(
        "Creating Redis client for ACL cache",
        extra={
            "host": settings.host,
            "port": settings.port,
            "db": settings.db,
            "max_connections": settings.max_connections,
        },
    )
    pool = ConnectionPool.from_url(settings.url, **settings.connection_pool_kwargs())
    return Redis.from_pool(pool)


class RedisAclStore:
    """AclCacheStore on top of a redis.asyncio client.

    Redis errors propagate to AclCache, which decides whether a failure
    degrades to a repository read or must be surfaced.
    """

    backend = "redis"

    def __init__(self, client: Redis, *, prefix: str = "acl", ttl: int | None = 3600) -> None:
        self._client = client
        self._prefix = prefix
        self._ttl = ttl

    def key_for(self, object_identity: ObjectIdentity) -> str:
        return f"{self._prefix}:{object_identity.cache_key}"

    async def get_many(self, keys: Iterable[ObjectIdentity]) -> dict[ObjectIdentity, CacheValue]:
        identities = list(keys)
        if not identities:
            return {}
        payloads = await self._client.mget([self.key_for(oi) for oi in identities])

        found: dict[ObjectIdentity, CacheValue] = {}
        for object_identity, payload in zip(identities, payloads, strict=True):
            if payload is None:
                continue
            value = self._decode(object_identity, payload)
            if value is not None:
                found[object_identity] = value
        return found

    async def set_many(self, items: Mapping[ObjectIdentity, CacheValue]) -> None:
        if not items:
            return
        async with self._client.pipeline(transaction=False) as pipe:
            for object_identity, value in items.items():
                pipe.set(self.key_for(object_identity), self._encode(value), ex=self._ttl)
            await pipe.execute()

    async def delete_many(self, keys: Iterable[ObjectIdentity]) -> int:
        redis_keys = [self.key_for(oi) for oi in keys]
        if not redis_keys:
            return 0
        return int(await self._client.delete(*redis_keys))

    async def clear(self) -> None:
        batch: list[str] = []
        removed = 0
        async for key in self._client.scan_iter(match=f"{self._prefix}:*", count=_CLEAR_BATCH):
            batch.append(key)
            if len(batch) >= _CLEAR_BATCH:
                removed += int(await self._client.delete(*batch))
                batch.clear()
        if batch:
            removed += int(await self._client.delete(*batch))
        logger.info("ACL cache cleared", extra={"prefix": self._prefix, "removed": removed})

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _encode(value: CacheValue) -> str:
        if value is ABSENT:
            return _ABSENT_PAYLOAD
        return AclSchema.from_domain(value).model_dump_json()

    def _decode(self, object_identity: ObjectIdentity, payload: str | bytes) -> CacheValue | None:
        try:
            data: Any = json.loads(payload)
            if isinstance(data, dict) and data.get("absent") is True:
                return ABSENT
            return AclSchema.model_validate(data).to_domain()
        except (ValueError, ValidationError) as e:
            # Unreadable entries are treated as misses and refetched
            logger.warning(
                "Discarding undecodable ACL cache entry",
                extra={"key": self.key_for(object_identity), "error": str(e)},
            )
            return None


__all__ = ["RedisAclStore", "create_redis_client"]
