"""Read-through cache of Acl snapshots.

AclCache sits between the evaluator and the repository. Reads are served
from the store when possible; misses are loaded from the repository in one
batch and written back.

Coherence with concurrent mutations:
    Every invalidation advances a tick. While a repository fetch is in
    flight, invalidated keys remember the tick at which they were
    invalidated. A fetch only writes back keys that were not invalidated
    after it started, and re-checks after the write so an invalidation that
    lands mid-write still wins. A snapshot loaded before an admin commit can
    therefore never overwrite the invalidation that followed the commit.

    Admin mutations additionally hold their keys with ``mutating()`` from
    before the repository read until after the final invalidation. Reads of
    a held key still go to the repository, but their result is never
    written back, so nothing loaded before the commit can be served from
    the store between the commit and the final invalidation.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from object_acl.core.exceptions import InfrastructureError
from object_acl.infra.cache.stores import ABSENT
from object_acl.infra.logging import get_lazy_logger
from object_acl.infra.metrics.prometheus import (
    acl_cache_hits_total,
    acl_cache_invalidations_total,
    acl_cache_misses_total,
    acl_cache_stale_discards_total,
    acl_cache_store_errors_total,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from object_acl.core.acl.identity import ObjectIdentity
    from object_acl.core.acl.model import Acl
    from object_acl.core.repositories.acl import AclRepository
    from object_acl.infra.cache.stores import AclCacheStore, CacheValue

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

# Failures a cache backend may raise for an unreachable or broken store
STORE_ERRORS: tuple[type[Exception], ...] = (RedisError, OSError, TimeoutError)


class AclCache:
    """Read-through Acl cache with invalidation-safe write-back.

    Args:
        repository: Source of truth for misses
        store: Backend holding snapshots (MemoryAclStore, RedisAclStore)
        negative_caching: Also cache "no Acl exists" results
    """

    def __init__(
        self,
        repository: AclRepository,
        store: AclCacheStore,
        *,
        negative_caching: bool = True,
    ) -> None:
        self._repository = repository
        self._store = store
        self._negative_caching = negative_caching
        self._tick = 0
        self._in_flight = 0
        self._invalidated_at: dict[ObjectIdentity, int] = {}
        self._cleared_at = -1
        self._pending: dict[ObjectIdentity, int] = {}

    @property
    def store(self) -> AclCacheStore:
        return self._store

    @property
    def backend(self) -> str:
        return self._store.backend

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, object_identity: ObjectIdentity) -> Acl | None:
        """Acl for ``object_identity``, or None if it has none."""
        return (await self.get_batch([object_identity])).get(object_identity)

    async def get_batch(self, object_identities: Iterable[ObjectIdentity]) -> dict[ObjectIdentity, Acl]:
        """Acls for many identities; at most one repository call for all misses.

        Identities without an Acl are omitted from the result.
        """
        keys = list(dict.fromkeys(object_identities))
        if not keys:
            return {}

        cached = await self._read_store(keys)
        found: dict[ObjectIdentity, Acl] = {}
        misses: list[ObjectIdentity] = []
        for key in keys:
            value = cached.get(key)
            if value is None:
                misses.append(key)
            elif value is not ABSENT:
                found[key] = value

        hits = len(keys) - len(misses)
        if hits:
            acl_cache_hits_total.labels(backend=self.backend).inc(hits)
        if misses:
            acl_cache_misses_total.labels(backend=self.backend).inc(len(misses))
            found.update(await self._fetch(misses))

        lazy_logger.debug(lambda: f"cache.get_batch: keys={len(keys)} hits={hits} misses={len(misses)}")
        return found

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate(self, object_identity: ObjectIdentity) -> None:
        await self.invalidate_many([object_identity])

    async def invalidate_many(self, object_identities: Iterable[ObjectIdentity]) -> None:
        """Drop cached snapshots for the given identities.

        Raises:
            InfrastructureError: If the store could not be updated.
        """
        keys = list(dict.fromkeys(object_identities))
        if not keys:
            return

        self._tick += 1
        if self._in_flight:
            for key in keys:
                self._invalidated_at[key] = self._tick

        try:
            await self._store.delete_many(keys)
        except STORE_ERRORS as e:
            acl_cache_store_errors_total.labels(backend=self.backend, operation="delete").inc()
            logger.exception(
                "ACL cache invalidation failed",
                extra={"backend": self.backend, "keys": [str(key) for key in keys]},
            )
            msg = "ACL cache invalidation failed"
            raise InfrastructureError(msg, operation="cache.invalidate") from e

        acl_cache_invalidations_total.labels(backend=self.backend, scope="key").inc(len(keys))
        lazy_logger.debug(lambda: f"cache.invalidate: {', '.join(str(key) for key in keys)}")

    async def invalidate_all(self) -> None:
        """Drop every cached snapshot."""
        self._tick += 1
        self._cleared_at = self._tick

        try:
            await self._store.clear()
        except STORE_ERRORS as e:
            acl_cache_store_errors_total.labels(backend=self.backend, operation="clear").inc()
            logger.exception("ACL cache clear failed", extra={"backend": self.backend})
            msg = "ACL cache clear failed"
            raise InfrastructureError(msg, operation="cache.invalidate_all") from e

        acl_cache_invalidations_total.labels(backend=self.backend, scope="all").inc()
        logger.info("ACL cache cleared", extra={"backend": self.backend})

    @contextmanager
    def mutating(self, object_identities: Iterable[ObjectIdentity]) -> Iterator[None]:
        """Mark keys as being mutated for the duration of the block.

        Reads of a marked key are served from the repository without write-back.
        Blocks may nest and overlap; a key stays marked until every block
        holding it has exited.
        """
        keys = list(dict.fromkeys(object_identities))
        for key in keys:
            self._pending[key] = self._pending.get(key, 0) + 1
        try:
            yield
        finally:
            for key in keys:
                remaining = self._pending[key] - 1
                if remaining:
                    self._pending[key] = remaining
                else:
                    del self._pending[key]

    def is_mutating(self, object_identity: ObjectIdentity) -> bool:
        return object_identity in self._pending

    async def close(self) -> None:
        await self._store.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _invalidated_since(self, key: ObjectIdentity, tick: int) -> bool:
        return (
            key in self._pending
            or self._cleared_at > tick
            or self._invalidated_at.get(key, -1) > tick
        )

    async def _read_store(self, keys: list[ObjectIdentity]) -> dict[ObjectIdentity, CacheValue]:
        try:
            return await self._store.get_many(keys)
        except STORE_ERRORS as e:
            # A broken store degrades to repository reads
            acl_cache_store_errors_total.labels(backend=self.backend, operation="get").inc()
            logger.warning(
                "ACL cache read failed, falling back to repository",
                extra={"backend": self.backend, "error": str(e)},
            )
            return {}

    async def _fetch(self, keys: list[ObjectIdentity]) -> dict[ObjectIdentity, Acl]:
        started = self._tick
        self._in_flight += 1
        try:
            loaded = await self._repository.load_batch(keys)

            fresh: dict[ObjectIdentity, CacheValue] = {}
            stale = 0
            for key in keys:
                value = loaded.get(key, ABSENT)
                if value is ABSENT and not self._negative_caching:
                    continue
                if self._invalidated_since(key, started):
                    stale += 1
                    continue
                fresh[key] = value

            if stale:
                acl_cache_stale_discards_total.labels(backend=self.backend).inc(stale)
            if fresh:
                await self._write_back(fresh, started)
            return loaded
        finally:
            self._in_flight -= 1
            if not self._in_flight:
                self._invalidated_at.clear()

    async def _write_back(self, fresh: dict[ObjectIdentity, CacheValue], started: int) -> None:
        try:
            await self._store.set_many(fresh)
            # An invalidation may have landed while the write was in progress
            raced = [key for key in fresh if self._invalidated_since(key, started)]
            if raced:
                acl_cache_stale_discards_total.labels(backend=self.backend).inc(len(raced))
                await self._store.delete_many(raced)
        except STORE_ERRORS as e:
            acl_cache_store_errors_total.labels(backend=self.backend, operation="set").inc()
            logger.warning(
                "ACL cache write-back failed",
                extra={"backend": self.backend, "keys": len(fresh), "error": str(e)},
            )


__all__ = ["STORE_ERRORS", "AclCache"]
