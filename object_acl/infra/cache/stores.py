"""Cache stores for Acl snapshots.

A store is dumb storage keyed by ObjectIdentity. Coherence (stale-fetch
detection, invalidation ordering) lives in AclCache, so every backend only
has to implement batched get/set/delete and clear.

Values are either an Acl snapshot or the ABSENT marker, meaning "the
repository was asked and has no Acl for this identity".
"""

from __future__ import annotations

from collections import OrderedDict
from enum import Enum
import logging
from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from object_acl.core.acl.identity import ObjectIdentity
    from object_acl.core.acl.model import Acl

logger = logging.getLogger(__name__)


class _Absent(Enum):
    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent.ABSENT
"""Cached marker for an identity that has no Acl."""

type CacheValue = Acl | Literal[_Absent.ABSENT]


@runtime_checkable
class AclCacheStore(Protocol):
    """Storage backend used by AclCache."""

    backend: str

    async def get_many(self, keys: Iterable[ObjectIdentity]) -> dict[ObjectIdentity, CacheValue]:
        """Return the cached values for ``keys``; missing keys are omitted."""
        ...

    async def set_many(self, items: Mapping[ObjectIdentity, CacheValue]) -> None: ...

    async def delete_many(self, keys: Iterable[ObjectIdentity]) -> int:
        """Remove ``keys``; returns how many were present."""
        ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


class MemoryAclStore:
    """In-process LRU store.

    Bounded by ``max_entries``; the least recently read or written snapshot
    is evicted first. Snapshots are immutable, so they are shared by
    reference rather than copied.
    """

    backend = "memory"

    def __init__(self, max_entries: int = 10_000) -> None:
        if max_entries < 1:
            msg = "max_entries must be at least 1"
            raise ValueError(msg)
        self.max_entries = max_entries
        self._entries: OrderedDict[ObjectIdentity, CacheValue] = OrderedDict()

    async def get_many(self, keys: Iterable[ObjectIdentity]) -> dict[ObjectIdentity, CacheValue]:
        found: dict[ObjectIdentity, CacheValue] = {}
        for key in keys:
            value = self._entries.get(key)
            if value is not None:
                self._entries.move_to_end(key)
                found[key] = value
        return found

    async def set_many(self, items: Mapping[ObjectIdentity, CacheValue]) -> None:
        for key, value in items.items():
            self._entries[key] = value
            self._entries.move_to_end(key)
        evicted = 0
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            evicted += 1
        if evicted:
            logger.debug("Evicted ACL snapshots", extra={"evicted": evicted})

    async def delete_many(self, keys: Iterable[ObjectIdentity]) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed

    async def clear(self) -> None:
        self._entries.clear()

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


__all__ = ["ABSENT", "AclCacheStore", "CacheValue", "MemoryAclStore"]
