"""Pytest configuration and shared fixtures.

Organization:
    - Domain Fixtures: object identities and sids used across tests
    - Fake Repository: in-memory AclRepository stand-in that counts round trips
    - Engine Fixtures: PermissionEvaluator / AclAdminService over the fake
    - Database Fixtures: in-memory SQLite engine, session factory, AclRepository
    - Cache Fixtures: Redis client mock

When adding new fixtures:
    1. Add them to the appropriate section below
    2. Keep them function-scoped unless they are expensive and stateless
"""

from __future__ import annotations

import asyncio
import fnmatch
import os
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.pool import StaticPool

from object_acl.core.acl.admin import AclAdminService
from object_acl.core.acl.evaluator import PermissionEvaluator
from object_acl.core.acl.identity import ObjectIdentity
from object_acl.core.acl.model import Acl
from object_acl.core.acl.sid import Sid
from object_acl.core.exceptions import AlreadyExistsError, ChildrenExistError, NotFoundError
from object_acl.core.repositories.acl import AclRepository
from object_acl.core.settings import DatabaseSettings, clear_all_caches
from object_acl.infra.cache import AclCache, MemoryAclStore
from object_acl.infra.database import create_engine, create_schema, create_session_factory

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Iterable

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Ensure tests run without external infrastructure
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ACL_CACHE_BACKEND", "memory")
os.environ.setdefault("LOG_JSON_LOGS", "false")

SQLITE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Settings loaders are lru_cached; start every test from the environment."""
    clear_all_caches()
    yield
    clear_all_caches()


# ============================================================================
# Domain Fixtures
# ============================================================================


@pytest.fixture
def alice() -> Sid:
    return Sid.principal("alice")


@pytest.fixture
def bob() -> Sid:
    return Sid.principal("bob")


@pytest.fixture
def editors() -> Sid:
    return Sid.authority("ROLE_EDITOR")


@pytest.fixture
def document() -> ObjectIdentity:
    return ObjectIdentity("Document", 1)


@pytest.fixture
def folder() -> ObjectIdentity:
    return ObjectIdentity("Folder", 10)


# ============================================================================
# Fake Repository
# ============================================================================


class FakeAclRepository:
    """In-memory AclRepository with the same contract and error behavior.

    Attributes:
        acls: Stored snapshots by identity
        load_batch_calls: Keys of every load_batch round trip, in call order
        save_count: Number of successful saves
        fail_with: Exception raised by every call while set
        delay: Seconds each call sleeps before touching state
    """

    def __init__(self) -> None:
        self.acls: dict[ObjectIdentity, Acl] = {}
        self.load_batch_calls: list[list[ObjectIdentity]] = []
        self.save_count = 0
        self.fail_with: BaseException | None = None
        self.delay = 0.0

    async def _enter(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with

    async def load(self, object_identity: ObjectIdentity) -> Acl | None:
        return (await self.load_batch([object_identity])).get(object_identity)

    async def load_batch(self, object_identities: Iterable[ObjectIdentity]) -> dict[ObjectIdentity, Acl]:
        keys = list(dict.fromkeys(object_identities))
        self.load_batch_calls.append(keys)
        await self._enter()
        return {key: self.acls[key] for key in keys if key in self.acls}

    async def exists(self, object_identity: ObjectIdentity) -> bool:
        await self._enter()
        return object_identity in self.acls

    async def create(self, object_identity: ObjectIdentity, owner: Sid) -> Acl:
        await self._enter()
        if object_identity in self.acls:
            raise AlreadyExistsError(object_identity)
        acl = Acl(object_identity=object_identity, owner=owner)
        self.acls[object_identity] = acl
        return acl

    async def save(self, acl: Acl) -> None:
        await self._enter()
        if acl.object_identity not in self.acls:
            raise NotFoundError(acl.object_identity)
        if acl.parent is not None and acl.parent not in self.acls:
            raise NotFoundError(acl.parent, what="Parent Acl")
        self.acls[acl.object_identity] = acl
        self.save_count += 1

    async def find_children(self, object_identity: ObjectIdentity) -> list[ObjectIdentity]:
        await self._enter()
        return [oi for oi, acl in self.acls.items() if acl.parent == object_identity]

    async def delete(self, object_identity: ObjectIdentity, *, cascade: bool = False) -> list[ObjectIdentity]:
        await self._enter()
        if object_identity not in self.acls:
            raise NotFoundError(object_identity)
        children = [oi for oi, acl in self.acls.items() if acl.parent == object_identity]
        if children and not cascade:
            raise ChildrenExistError(object_identity, children)

        deleted: list[ObjectIdentity] = []

        def collect(node: ObjectIdentity) -> None:
            for child in [oi for oi, acl in self.acls.items() if acl.parent == node]:
                collect(child)
            deleted.append(node)

        collect(object_identity)
        for oi in deleted:
            del self.acls[oi]
        return deleted

    @property
    def round_trips(self) -> int:
        return len(self.load_batch_calls)


@pytest.fixture
def fake_repository() -> FakeAclRepository:
    return FakeAclRepository()


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def memory_store() -> MemoryAclStore:
    return MemoryAclStore(max_entries=1000)


@pytest.fixture
def acl_cache(fake_repository: FakeAclRepository, memory_store: MemoryAclStore) -> AclCache:
    return AclCache(fake_repository, memory_store, negative_caching=True)


@pytest.fixture
def evaluator(acl_cache: AclCache) -> PermissionEvaluator:
    return PermissionEvaluator(acl_cache)


@pytest.fixture
def admin(fake_repository: FakeAclRepository, acl_cache: AclCache) -> AclAdminService:
    return AclAdminService(fake_repository, acl_cache)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine]:
    """In-memory SQLite engine with the ACL schema.

    StaticPool keeps the single in-memory database alive across sessions.
    """
    engine = create_engine(DatabaseSettings(dsn=SQLITE_URL), poolclass=StaticPool)
    await create_schema(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest.fixture
def repository(session_factory: async_sessionmaker[AsyncSession]) -> AclRepository:
    return AclRepository(session_factory, timeout=5.0)


# ============================================================================
# Cache Fixtures
# ============================================================================


@pytest.fixture
def mock_redis_client():
    """Redis client mock backed by a dict.

    Supports the commands RedisAclStore uses: mget, delete, scan_iter,
    pipeline().set/execute and aclose. ``mock_redis_client.storage`` and
    ``mock_redis_client.ttls`` expose what was written.
    """
    client = AsyncMock()
    storage: dict[str, str] = {}
    ttls: dict[str, int | None] = {}

    async def mock_mget(keys):
        return [storage.get(key) for key in keys]

    async def mock_delete(*keys):
        deleted = 0
        for key in keys:
            if storage.pop(key, None) is not None:
                deleted += 1
                ttls.pop(key, None)
        return deleted

    async def mock_scan_iter(match=None, count=100):
        for key in list(storage):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    def mock_pipeline_set(key, value, ex=None):
        storage[key] = value
        ttls[key] = ex

    pipeline = MagicMock()
    pipeline.set = MagicMock(side_effect=mock_pipeline_set)
    pipeline.execute = AsyncMock(return_value=[])
    pipeline.__aenter__.return_value = pipeline
    pipeline.__aexit__.return_value = False

    client.mget = AsyncMock(side_effect=mock_mget)
    client.delete = AsyncMock(side_effect=mock_delete)
    client.scan_iter = mock_scan_iter
    client.pipeline = MagicMock(return_value=pipeline)
    client.storage = storage
    client.ttls = ttls
    return client
