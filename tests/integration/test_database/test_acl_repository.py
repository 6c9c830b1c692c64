"""Integration tests for AclRepository against in-memory SQLite."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.pool import StaticPool

from object_acl.core.acl.identity import ObjectIdentity
from object_acl.core.acl.model import Acl
from object_acl.core.acl.permission import BasePermission, Permission
from object_acl.core.acl.sid import Sid
from object_acl.core.exceptions import (
    AlreadyExistsError,
    ChildrenExistError,
    InfrastructureError,
    NotFoundError,
)
from object_acl.core.repositories.acl import AclRepository
from object_acl.core.settings import DatabaseSettings
from object_acl.infra.database import create_engine, create_session_factory
from tests.conftest import SQLITE_URL

READ = BasePermission.READ
WRITE = BasePermission.WRITE


class SlowSession:
    async def __aenter__(self):
        await asyncio.sleep(1)

    async def __aexit__(self, *exc_info) -> bool:
        return False


@pytest.mark.integration
class TestCreateAndLoad:
    async def test_load_missing(self, repository: AclRepository, document) -> None:
        assert await repository.load(document) is None
        assert await repository.load_batch([]) == {}
        assert await repository.exists(document) is False

    async def test_create_then_load(self, repository: AclRepository, document, alice) -> None:
        created = await repository.create(document, alice)

        assert created == Acl(document, alice)
        assert await repository.load(document) == created
        assert await repository.exists(document) is True

    async def test_create_duplicate(self, repository: AclRepository, document, alice, bob) -> None:
        await repository.create(document, alice)

        with pytest.raises(AlreadyExistsError):
            await repository.create(document, bob)

    async def test_same_identifier_different_types(self, repository: AclRepository, alice) -> None:
        first = ObjectIdentity("Document", 5)
        second = ObjectIdentity("Folder", 5)
        await repository.create(first, alice)
        await repository.create(second, alice)

        assert set(await repository.load_batch([first, second])) == {first, second}


@pytest.mark.integration
class TestSave:
    async def test_full_snapshot_round_trip(
        self, repository: AclRepository, document, folder, alice, bob, editors
    ) -> None:
        await repository.create(folder, alice)
        await repository.create(document, alice)
        acl = (
            Acl(document, bob, parent=folder, entries_inheriting=False)
            .insert_ace(0, editors, READ | WRITE, True, audit_success=True)
            .insert_ace(1, bob, WRITE, False, audit_failure=True)
            .insert_ace(0, alice, READ, True)
        )

        await repository.save(acl)

        assert await repository.load(document) == acl

    async def test_principal_and_authority_with_same_name(self, repository: AclRepository, document, alice) -> None:
        await repository.create(document, alice)
        role_alice = Sid.authority("alice")
        acl = (await repository.load(document)).insert_ace(0, role_alice, READ, False).insert_ace(1, alice, READ, True)

        await repository.save(acl)

        loaded = await repository.load(document)
        assert [entry.sid for entry in loaded.entries] == [role_alice, alice]

    async def test_high_bit_mask_survives(self, repository: AclRepository, document, alice) -> None:
        await repository.create(document, alice)
        high = Permission(1 << 31, "H")
        acl = Acl(document, alice).insert_ace(0, alice, high | READ, True)

        await repository.save(acl)

        assert (await repository.load(document)).entries[0].mask.mask == (1 << 31) | 1

    async def test_save_rewrites_entries(self, repository: AclRepository, document, alice, bob) -> None:
        await repository.create(document, alice)
        full = Acl(document, alice).insert_ace(0, bob, READ, True).insert_ace(1, bob, WRITE, True)
        await repository.save(full)

        await repository.save(full.delete_ace(0))

        loaded = await repository.load(document)
        assert [(entry.order, entry.mask) for entry in loaded.entries] == [(0, WRITE)]

    async def test_save_missing_acl(self, repository: AclRepository, document, alice) -> None:
        with pytest.raises(NotFoundError):
            await repository.save(Acl(document, alice))

    async def test_save_with_missing_parent_changes_nothing(
        self, repository: AclRepository, document, folder, alice, bob
    ) -> None:
        await repository.create(document, alice)

        with pytest.raises(NotFoundError) as exc_info:
            await repository.save(Acl(document, bob, parent=folder).insert_ace(0, bob, READ, True))

        assert exc_info.value.object_identity == folder
        assert await repository.load(document) == Acl(document, alice)


@pytest.mark.integration
class TestHierarchy:
    async def test_load_batch_resolves_parents(self, repository: AclRepository, folder, alice) -> None:
        await repository.create(folder, alice)
        docs = [ObjectIdentity("Document", i) for i in range(3)]
        for oi in docs:
            await repository.create(oi, alice)
            await repository.save(Acl(oi, alice, parent=folder))

        acls = await repository.load_batch([*docs, ObjectIdentity("Document", 99)])

        assert set(acls) == set(docs)
        assert all(acl.parent == folder for acl in acls.values())
        assert set(await repository.find_children(folder)) == set(docs)
        assert await repository.find_children(ObjectIdentity("Folder", 99)) == []

    async def test_delete_with_children_requires_cascade(
        self, repository: AclRepository, document, folder, alice
    ) -> None:
        await repository.create(folder, alice)
        await repository.create(document, alice)
        await repository.save(Acl(document, alice, parent=folder))

        with pytest.raises(ChildrenExistError) as exc_info:
            await repository.delete(folder)

        assert exc_info.value.children == (document,)
        assert await repository.exists(folder)

    async def test_cascade_delete_children_first(self, repository: AclRepository, alice, bob) -> None:
        root = ObjectIdentity("Folder", 1)
        middle = ObjectIdentity("Folder", 2)
        leaf = ObjectIdentity("Document", 3)
        for oi in (root, middle, leaf):
            await repository.create(oi, alice)
        await repository.save(Acl(middle, alice, parent=root).insert_ace(0, bob, READ, True))
        await repository.save(Acl(leaf, alice, parent=middle).insert_ace(0, bob, WRITE, True))

        deleted = await repository.delete(root, cascade=True)

        assert deleted == [leaf, middle, root]
        assert await repository.load_batch([root, middle, leaf]) == {}

    async def test_delete_missing(self, repository: AclRepository, document) -> None:
        with pytest.raises(NotFoundError):
            await repository.delete(document)


@pytest.mark.integration
class TestInfrastructureFailures:
    async def test_database_error_becomes_infrastructure_error(self, document) -> None:
        # No schema: every statement fails
        engine = create_engine(DatabaseSettings(dsn=SQLITE_URL), poolclass=StaticPool)
        try:
            repository = AclRepository(create_session_factory(engine))

            with pytest.raises(InfrastructureError) as exc_info:
                await repository.load(document)

            assert exc_info.value.operation == "load_batch"
        finally:
            await engine.dispose()

    async def test_timeout_becomes_infrastructure_error(self, document) -> None:
        repository = AclRepository(SlowSession, timeout=0.01)

        with pytest.raises(InfrastructureError) as exc_info:
            await repository.load(document)

        assert exc_info.value.operation == "load_batch"
        assert isinstance(exc_info.value.__cause__, TimeoutError)
