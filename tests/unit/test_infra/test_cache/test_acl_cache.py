"""Tests for the read-through AclCache."""

from __future__ import annotations

import asyncio
import logging

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from object_acl.core.acl.identity import ObjectIdentity
from object_acl.core.acl.model import Acl
from object_acl.core.acl.permission import BasePermission
from object_acl.core.exceptions import InfrastructureError
from object_acl.infra.cache import ABSENT, AclCache, MemoryAclStore
from object_acl.infra.metrics import REGISTRY
from tests.conftest import FakeAclRepository


class GatedRepository(FakeAclRepository):
    """Loads its snapshot immediately but returns only once ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.loading = asyncio.Event()

    async def load_batch(self, object_identities):
        result = await super().load_batch(object_identities)
        self.loading.set()
        await self.gate.wait()
        return result


class GatedStore(MemoryAclStore):
    """Holds writes until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.writing = asyncio.Event()

    async def set_many(self, items) -> None:
        self.writing.set()
        await self.gate.wait()
        await super().set_many(items)


class BrokenStore(MemoryAclStore):
    def __init__(self, *, reads: bool = False, writes: bool = False, deletes: bool = False) -> None:
        super().__init__()
        self.fail_reads = reads
        self.fail_writes = writes
        self.fail_deletes = deletes

    async def get_many(self, keys):
        if self.fail_reads:
            raise RedisConnectionError("connection refused")
        return await super().get_many(keys)

    async def set_many(self, items) -> None:
        if self.fail_writes:
            raise RedisConnectionError("connection reset")
        await super().set_many(items)

    async def delete_many(self, keys) -> int:
        if self.fail_deletes:
            raise RedisConnectionError("connection reset")
        return await super().delete_many(keys)

    async def clear(self) -> None:
        if self.fail_deletes:
            raise RedisConnectionError("connection reset")
        await super().clear()


def stale_discards() -> float:
    return REGISTRY.get_sample_value("acl_cache_stale_discards_total", {"backend": "memory"}) or 0.0


@pytest.mark.unit
class TestReadThrough:
    async def test_miss_loads_and_stores(self, acl_cache: AclCache, fake_repository, memory_store, document, alice) -> None:
        acl = Acl(document, alice)
        fake_repository.acls[document] = acl

        assert await acl_cache.get(document) is acl
        assert await acl_cache.get(document) is acl

        assert fake_repository.round_trips == 1
        assert document in memory_store

    async def test_batch_fetches_all_misses_at_once(
        self, acl_cache: AclCache, fake_repository, alice
    ) -> None:
        identities = [ObjectIdentity("Document", i) for i in range(5)]
        for oi in identities:
            fake_repository.acls[oi] = Acl(oi, alice)
        await acl_cache.get_batch(identities[:2])

        result = await acl_cache.get_batch([*identities, identities[0]])

        assert list(result) == identities
        assert fake_repository.load_batch_calls == [identities[:2], identities[2:]]

    async def test_batch_matches_sequential_gets(
        self, acl_cache: AclCache, fake_repository, folder, alice, bob
    ) -> None:
        first = ObjectIdentity("Document", 1)
        second = ObjectIdentity("Document", 2)
        fake_repository.acls[first] = Acl(first, alice).insert_ace(0, bob, BasePermission.READ, True)
        fake_repository.acls[second] = Acl(second, bob, parent=first)
        identities = [first, folder, second]

        batch = await acl_cache.get_batch(identities)
        await acl_cache.invalidate_all()
        sequential = [await acl_cache.get(oi) for oi in identities]

        assert [batch.get(oi) for oi in identities] == sequential
        assert sequential[1] is None

    async def test_missing_acls_are_omitted(self, acl_cache: AclCache, fake_repository, document, folder, alice) -> None:
        fake_repository.acls[folder] = Acl(folder, alice)

        result = await acl_cache.get_batch([document, folder])

        assert set(result) == {folder}

    async def test_empty_batch_does_not_touch_repository(self, acl_cache: AclCache, fake_repository) -> None:
        assert await acl_cache.get_batch([]) == {}
        assert fake_repository.round_trips == 0

    async def test_backend_name(self, acl_cache: AclCache) -> None:
        assert acl_cache.backend == "memory"


@pytest.mark.unit
class TestNegativeCaching:
    async def test_absence_is_cached(self, acl_cache: AclCache, fake_repository, memory_store, document) -> None:
        assert await acl_cache.get(document) is None
        assert await acl_cache.get(document) is None

        assert fake_repository.round_trips == 1
        assert (await memory_store.get_many([document]))[document] is ABSENT

    async def test_disabled_negative_caching_refetches(self, fake_repository, document) -> None:
        store = MemoryAclStore()
        cache = AclCache(fake_repository, store, negative_caching=False)

        assert await cache.get(document) is None
        assert await cache.get(document) is None

        assert fake_repository.round_trips == 2
        assert document not in store


@pytest.mark.unit
class TestInvalidation:
    async def test_invalidate_forces_reload(self, acl_cache: AclCache, fake_repository, document, alice, bob) -> None:
        fake_repository.acls[document] = Acl(document, alice)
        await acl_cache.get(document)
        updated = Acl(document, alice).insert_ace(0, bob, BasePermission.READ, True)
        fake_repository.acls[document] = updated

        await acl_cache.invalidate(document)

        assert await acl_cache.get(document) is updated

    async def test_invalidate_many_and_all(self, acl_cache: AclCache, fake_repository, memory_store, alice) -> None:
        identities = [ObjectIdentity("Document", i) for i in range(4)]
        for oi in identities:
            fake_repository.acls[oi] = Acl(oi, alice)
        await acl_cache.get_batch(identities)

        await acl_cache.invalidate_many(identities[:2])
        assert len(memory_store) == 2

        await acl_cache.invalidate_all()
        assert len(memory_store) == 0

    async def test_in_flight_fetch_does_not_resurrect_invalidated_snapshot(
        self, memory_store, document, alice, bob
    ) -> None:
        repository = GatedRepository()
        cache = AclCache(repository, memory_store)
        repository.acls[document] = Acl(document, alice)
        before = stale_discards()

        reader = asyncio.create_task(cache.get(document))
        await repository.loading.wait()
        # An admin commit lands while the read is still in flight
        updated = repository.acls[document].insert_ace(0, bob, BasePermission.READ, True)
        repository.acls[document] = updated
        await cache.invalidate(document)
        repository.gate.set()
        await reader

        assert document not in memory_store
        assert stale_discards() == before + 1
        assert await cache.get(document) is updated

    async def test_invalidation_during_write_back_wins(self, fake_repository, document, alice, bob) -> None:
        store = GatedStore()
        cache = AclCache(fake_repository, store)
        fake_repository.acls[document] = Acl(document, alice)

        reader = asyncio.create_task(cache.get(document))
        await store.writing.wait()
        fake_repository.acls[document] = fake_repository.acls[document].insert_ace(0, bob, BasePermission.READ, True)
        await cache.invalidate(document)
        store.gate.set()
        await reader

        assert document not in store

    async def test_clear_during_fetch_discards_result(self, memory_store, document, alice) -> None:
        repository = GatedRepository()
        cache = AclCache(repository, memory_store)
        repository.acls[document] = Acl(document, alice)

        reader = asyncio.create_task(cache.get(document))
        await repository.loading.wait()
        await cache.invalidate_all()
        repository.gate.set()
        await reader

        assert document not in memory_store

    async def test_invalidation_bookkeeping_is_released(self, acl_cache: AclCache, fake_repository, document) -> None:
        fake_repository.delay = 0.001
        reader = asyncio.create_task(acl_cache.get(document))
        await asyncio.sleep(0)
        await acl_cache.invalidate(document)
        await reader

        assert acl_cache._in_flight == 0
        assert acl_cache._invalidated_at == {}


@pytest.mark.unit
class TestMutatingHold:
    async def test_held_key_is_read_but_not_cached(
        self, acl_cache: AclCache, fake_repository, memory_store, document, alice
    ) -> None:
        fake_repository.acls[document] = Acl(document, alice)

        with acl_cache.mutating([document]):
            assert acl_cache.is_mutating(document)
            assert await acl_cache.get(document) == Acl(document, alice)
            assert await acl_cache.get(document) == Acl(document, alice)
            assert document not in memory_store

        assert not acl_cache.is_mutating(document)
        assert fake_repository.round_trips == 2
        await acl_cache.get(document)
        assert document in memory_store

    async def test_other_keys_are_still_cached(
        self, acl_cache: AclCache, fake_repository, memory_store, document, folder, alice
    ) -> None:
        fake_repository.acls[document] = Acl(document, alice)
        fake_repository.acls[folder] = Acl(folder, alice)

        with acl_cache.mutating([document]):
            await acl_cache.get_batch([document, folder])

        assert document not in memory_store
        assert folder in memory_store

    async def test_overlapping_holds(self, acl_cache: AclCache, document) -> None:
        with acl_cache.mutating([document]):
            with acl_cache.mutating([document]):
                pass
            assert acl_cache.is_mutating(document)

        assert not acl_cache.is_mutating(document)

    async def test_hold_taken_during_write_back_wins(self, fake_repository, document, alice) -> None:
        store = GatedStore()
        cache = AclCache(fake_repository, store)
        fake_repository.acls[document] = Acl(document, alice)

        reader = asyncio.create_task(cache.get(document))
        await store.writing.wait()
        with cache.mutating([document]):
            store.gate.set()
            await reader

            assert document not in store


@pytest.mark.unit
class TestStoreFailures:
    async def test_read_failure_falls_back_to_repository(self, fake_repository, document, alice, caplog) -> None:
        fake_repository.acls[document] = Acl(document, alice)
        cache = AclCache(fake_repository, BrokenStore(reads=True))

        with caplog.at_level(logging.WARNING):
            assert await cache.get(document) == Acl(document, alice)

        assert "falling back to repository" in caplog.text

    async def test_write_failure_still_returns_result(self, fake_repository, document, alice, caplog) -> None:
        fake_repository.acls[document] = Acl(document, alice)
        cache = AclCache(fake_repository, BrokenStore(writes=True))

        with caplog.at_level(logging.WARNING):
            assert await cache.get(document) == Acl(document, alice)

        assert "write-back failed" in caplog.text

    async def test_invalidation_failure_is_raised(self, fake_repository, document) -> None:
        cache = AclCache(fake_repository, BrokenStore(deletes=True))

        with pytest.raises(InfrastructureError) as exc_info:
            await cache.invalidate(document)

        assert exc_info.value.operation == "cache.invalidate"
        assert isinstance(exc_info.value.__cause__, RedisConnectionError)

    async def test_clear_failure_is_raised(self, fake_repository) -> None:
        cache = AclCache(fake_repository, BrokenStore(deletes=True))

        with pytest.raises(InfrastructureError):
            await cache.invalidate_all()

    async def test_repository_failure_propagates(self, acl_cache: AclCache, fake_repository, document) -> None:
        fake_repository.fail_with = InfrastructureError("db down", operation="load_batch")

        with pytest.raises(InfrastructureError):
            await acl_cache.get(document)

        assert acl_cache._in_flight == 0
