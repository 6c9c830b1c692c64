"""Administrative mutations of Acls.

Every mutation runs inside a critical section owned by the mutated
ObjectIdentity:

    lock -> hold in cache -> invalidate -> load fresh -> authorize
         -> mutate snapshot -> save -> invalidate -> release -> unlock

The snapshot is always read from the repository, never from the cache, so
a mutation can never be based on stale cached state. While the key is held
the cache serves reads from the repository and writes nothing back, so a
snapshot loaded before the commit is never cached after it.

Mutations of different identities do not wait on each other, with one
exception: ``set_parent`` calls that attach a parent take a single
hierarchy lock, so two of them cannot close a cycle between them. Detaching
a parent and deleting Acls cannot create a cycle and do not take it. The
cost is that attaching parents to unrelated identities is serialized;
locking only the walked ancestor chain would need keys taken in walk order,
which two opposite re-parentings acquire in opposite orders.

Every mutation accepts ``acting_sids``. When given, the change is checked
with the AclAuthorizationStrategy before anything is written; when None,
the caller is trusted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from object_acl.core.acl.authorization import AclAuthorizationStrategy, ChangeType
from object_acl.core.acl.locks import KeyedLock
from object_acl.core.exceptions import CycleError, NotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from object_acl.core.acl.identity import ObjectIdentity
    from object_acl.core.acl.model import Acl
    from object_acl.core.acl.permission import Permission
    from object_acl.core.acl.sid import Sid
    from object_acl.core.repositories.acl import AclRepository
    from object_acl.infra.cache.acl_cache import AclCache

logger = logging.getLogger(__name__)


class AclAdminService:
    """Creates, edits and deletes Acls through the repository and cache.

    Example:
        >>> admin = AclAdminService(repository, cache)
        >>> document = ObjectIdentity("Document", 42)
        >>> await admin.create_acl(document, Sid.principal("alice"))
        >>> await admin.insert_ace(document, 0, Sid.principal("bob"), BasePermission.READ, True)
        >>> await admin.set_parent(document, ObjectIdentity("Folder", 7), acting_sids=sids_for("alice"))
    """

    def __init__(
        self,
        repository: AclRepository,
        cache: AclCache,
        authorization: AclAuthorizationStrategy | None = None,
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._authorization = authorization or AclAuthorizationStrategy()
        self._locks = KeyedLock()
        self._hierarchy_lock = asyncio.Lock()

    @property
    def authorization(self) -> AclAuthorizationStrategy:
        return self._authorization

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_acl(self, object_identity: ObjectIdentity, owner: Sid) -> Acl:
        """Create an empty Acl owned by ``owner``.

        Raises:
            AlreadyExistsError: If an Acl already exists for the identity.
        """
        async with self._locks.hold(object_identity):
            with self._cache.mutating([object_identity]):
                try:
                    acl = await self._repository.create(object_identity, owner)
                finally:
                    # Drops a cached "no Acl" result
                    await self._cache.invalidate(object_identity)
        return acl

    async def read_acl(self, object_identity: ObjectIdentity) -> Acl:
        """Current Acl straight from the repository.

        Raises:
            NotFoundError: If no Acl exists.
        """
        acl = await self._repository.load(object_identity)
        if acl is None:
            raise NotFoundError(object_identity)
        return acl

    async def delete_acl(
        self,
        object_identity: ObjectIdentity,
        *,
        cascade: bool = False,
        acting_sids: Iterable[Sid] | None = None,
    ) -> list[ObjectIdentity]:
        """Delete an Acl and, with ``cascade``, every descendant.

        Returns:
            The deleted identities, children before parents.

        Raises:
            NotFoundError: If no Acl exists.
            ChildrenExistError: If children exist and ``cascade`` is False.
            AccessDeniedError: If ``acting_sids`` may not change the Acl.
        """
        async with self._locks.hold(object_identity):
            if acting_sids is not None:
                await self._authorize(acting_sids, await self.read_acl(object_identity), ChangeType.GENERAL)

            held = [object_identity]
            if cascade:
                held.extend(await self._descendants(object_identity))
            with self._cache.mutating(held):
                await self._cache.invalidate_many(held)
                deleted: list[ObjectIdentity] = []
                try:
                    deleted = await self._repository.delete(object_identity, cascade=cascade)
                finally:
                    await self._cache.invalidate_many([*held, *deleted])

        logger.info(
            "Acl deleted",
            extra={
                "object_identity": str(object_identity),
                "cascade": cascade,
                "deleted": [str(oi) for oi in deleted],
            },
        )
        return deleted

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def insert_ace(
        self,
        object_identity: ObjectIdentity,
        index: int | None,
        sid: Sid,
        mask: Permission,
        granting: bool,
        *,
        audit_success: bool = False,
        audit_failure: bool = False,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        """Insert one entry at ``index`` (None appends).

        Raises:
            NotFoundError: If no Acl exists.
            AceIndexError: If ``index`` is outside ``0..len(entries)``.
            AccessDeniedError: If ``acting_sids`` may not change the Acl.
        """
        return await self.insert_aces(
            object_identity,
            index,
            sid,
            (mask,),
            granting,
            audit_success=audit_success,
            audit_failure=audit_failure,
            acting_sids=acting_sids,
        )

    async def insert_aces(
        self,
        object_identity: ObjectIdentity,
        index: int | None,
        sid: Sid,
        masks: Iterable[Permission],
        granting: bool,
        *,
        audit_success: bool = False,
        audit_failure: bool = False,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        """Insert consecutive entries for one sid, starting at ``index``, in one write."""
        masks = tuple(masks)

        def insert(acl: Acl) -> Acl:
            position = len(acl.entries) if index is None else index
            for offset, mask in enumerate(masks):
                acl = acl.insert_ace(
                    position + offset,
                    sid,
                    mask,
                    granting,
                    audit_success=audit_success,
                    audit_failure=audit_failure,
                )
            return acl

        _, updated = await self._mutate(object_identity, insert, ChangeType.GENERAL, acting_sids)
        logger.info(
            "ACE inserted",
            extra={
                "object_identity": str(object_identity),
                "sid": str(sid),
                "masks": [mask.mask for mask in masks],
                "granting": granting,
                "index": index,
            },
        )
        return updated

    async def delete_ace(
        self,
        object_identity: ObjectIdentity,
        index: int,
        *,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        """Remove the entry at ``index``; later entries move down.

        Raises:
            NotFoundError: If no Acl exists.
            AceIndexError: If no entry exists at ``index``.
        """
        _, updated = await self._mutate(
            object_identity, lambda acl: acl.delete_ace(index), ChangeType.GENERAL, acting_sids
        )
        logger.info(
            "ACE deleted",
            extra={"object_identity": str(object_identity), "index": index},
        )
        return updated

    async def remove_sid(
        self,
        object_identity: ObjectIdentity,
        sid: Sid,
        *,
        acting_sids: Iterable[Sid] | None = None,
    ) -> int:
        """Remove every entry of ``sid``; returns how many were removed."""
        previous, updated = await self._mutate(
            object_identity, lambda acl: acl.remove_sid(sid), ChangeType.GENERAL, acting_sids
        )
        removed = len(previous.entries) - len(updated.entries)
        logger.info(
            "ACEs removed for sid",
            extra={"object_identity": str(object_identity), "sid": str(sid), "removed": removed},
        )
        return removed

    async def update_audit(
        self,
        object_identity: ObjectIdentity,
        index: int,
        *,
        success: bool,
        failure: bool,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        _, updated = await self._mutate(
            object_identity,
            lambda acl: acl.update_audit(index, success=success, failure=failure),
            ChangeType.AUDITING,
            acting_sids,
        )
        return updated

    # ------------------------------------------------------------------
    # Acl attributes
    # ------------------------------------------------------------------

    async def set_owner(
        self,
        object_identity: ObjectIdentity,
        owner: Sid,
        *,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        _, updated = await self._mutate(
            object_identity, lambda acl: acl.with_owner(owner), ChangeType.OWNERSHIP, acting_sids
        )
        logger.info(
            "Acl owner changed",
            extra={"object_identity": str(object_identity), "owner": str(owner)},
        )
        return updated

    async def set_entries_inheriting(
        self,
        object_identity: ObjectIdentity,
        entries_inheriting: bool,
        *,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        _, updated = await self._mutate(
            object_identity,
            lambda acl: acl.with_entries_inheriting(entries_inheriting),
            ChangeType.GENERAL,
            acting_sids,
        )
        return updated

    async def set_parent(
        self,
        object_identity: ObjectIdentity,
        parent: ObjectIdentity | None,
        *,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        """Attach to ``parent``, or detach with None.

        Raises:
            NotFoundError: If the Acl or the parent Acl does not exist.
            CycleError: If ``parent`` is the Acl itself or descends from it.
        """

        def reparent(acl: Acl) -> Acl:
            return acl.with_parent(parent)

        if parent is None:
            _, updated = await self._mutate(object_identity, reparent, ChangeType.GENERAL, acting_sids)
        else:
            async with self._hierarchy_lock:
                await self._check_no_cycle(object_identity, parent)
                _, updated = await self._mutate(
                    object_identity, reparent, ChangeType.GENERAL, acting_sids
                )

        logger.info(
            "Acl parent changed",
            extra={
                "object_identity": str(object_identity),
                "parent": str(parent) if parent else None,
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        object_identity: ObjectIdentity,
        change: Callable[[Acl], Acl],
        change_type: ChangeType,
        acting_sids: Iterable[Sid] | None = None,
    ) -> tuple[Acl, Acl]:
        """Apply ``change`` to the current snapshot and persist it.

        Returns:
            The snapshot before and after the change.
        """
        async with self._locks.hold(object_identity):
            with self._cache.mutating([object_identity]):
                await self._cache.invalidate(object_identity)
                current = await self.read_acl(object_identity)
                if acting_sids is not None:
                    await self._authorize(acting_sids, current, change_type)
                updated = change(current)
                try:
                    await self._repository.save(updated)
                finally:
                    # The write may have committed even if it reported a failure
                    await self._cache.invalidate(object_identity)
        return current, updated

    async def _authorize(self, acting_sids: Iterable[Sid], acl: Acl, change_type: ChangeType) -> None:
        await self._authorization.check_change(acting_sids, acl, change_type, self._repository.load)

    async def _descendants(self, object_identity: ObjectIdentity) -> list[ObjectIdentity]:
        found: list[ObjectIdentity] = []
        seen = {object_identity}
        level = [object_identity]
        while level:
            next_level: list[ObjectIdentity] = []
            for node in level:
                for child in await self._repository.find_children(node):
                    if child not in seen:
                        seen.add(child)
                        next_level.append(child)
            found.extend(next_level)
            level = next_level
        return found

    async def _check_no_cycle(self, object_identity: ObjectIdentity, parent: ObjectIdentity) -> None:
        """Walk the chain above ``parent``; reaching ``object_identity`` is a cycle."""
        chain: list[ObjectIdentity] = []
        current: ObjectIdentity | None = parent
        while current is not None:
            chain.append(current)
            if current == object_identity:
                raise CycleError(object_identity, parent, chain)
            if current in chain[:-1]:
                # Pre-existing loop that does not pass through object_identity
                logger.error(
                    "Parent chain already loops",
                    extra={"chain": " -> ".join(str(oi) for oi in chain)},
                )
                return

            acl = await self._repository.load(current)
            if acl is None:
                if current == parent:
                    raise NotFoundError(parent, what="Parent Acl")
                return
            current = acl.parent


__all__ = ["AclAdminService"]
