"""Persistence for Acl aggregates over the four ACL tables.

Every public method opens its own session from the injected factory and
runs in a single transaction. Loads return immutable Acl snapshots; no ORM
instance ever leaves this module.

Example:
    from object_acl.core.repositories import AclRepository
    from object_acl.infra.database import create_engine, create_session_factory

    engine = create_engine(get_db_settings())
    repository = AclRepository(create_session_factory(engine), timeout=5.0)

    acl = await repository.load(ObjectIdentity("Document", 42))
    acls = await repository.load_batch(identities)  # one SELECT
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
import time
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert, select, tuple_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import aliased

from object_acl.core.acl.identity import ObjectIdentity
from object_acl.core.acl.model import AccessControlEntry, Acl
from object_acl.core.acl.permission import MAX_MASK, Permission
from object_acl.core.acl.sid import Sid
from object_acl.core.exceptions import (
    AclError,
    AlreadyExistsError,
    ChildrenExistError,
    InfrastructureError,
    NotFoundError,
)
from object_acl.core.models.acl import AclClass, AclEntry, AclObjectIdentity, AclSid
from object_acl.infra.logging import get_lazy_logger
from object_acl.infra.metrics.prometheus import (
    acl_repository_duration_seconds,
    acl_repository_errors_total,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable, Sequence

    from sqlalchemy import Row, Select
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# acl_entry.mask is a signed 32-bit INTEGER; bit 31 is stored as a negative value
_SIGN_BIT = 1 << 31


def _mask_to_column(mask: int) -> int:
    return mask - (1 << 32) if mask & _SIGN_BIT else mask


def _mask_from_column(value: int) -> int:
    return value & MAX_MASK


class AclRepository:
    """Async repository for Acl snapshots.

    Provides:
        - load(oi) -> Acl | None
        - load_batch(ois) -> dict[ObjectIdentity, Acl]   (single round trip)
        - exists(oi) -> bool
        - create(oi, owner) -> Acl
        - save(acl) -> None
        - delete(oi, cascade) -> list[ObjectIdentity]
        - find_children(oi) -> list[ObjectIdentity]

    Database failures and timeouts surface as InfrastructureError; data
    conditions surface as the dedicated AclError subclasses.
    """

    __slots__ = ("_session_factory", "_timeout", "_logger", "_lazy")

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        timeout: float | None = 5.0,
    ) -> None:
        """Initialize repository.

        Args:
            session_factory: Factory producing AsyncSession instances
            timeout: Upper bound in seconds for each call (None disables it)
        """
        self._session_factory = session_factory
        self._timeout = timeout
        self._logger = logging.getLogger("repository.Acl")
        self._lazy = get_lazy_logger("repository.Acl")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load(self, object_identity: ObjectIdentity) -> Acl | None:
        """Load one Acl, or None if none was ever created."""
        return (await self.load_batch([object_identity])).get(object_identity)

    async def load_batch(
        self, object_identities: Iterable[ObjectIdentity]
    ) -> dict[ObjectIdentity, Acl]:
        """Load many Acls with one SELECT.

        Identities without an Acl are simply absent from the result.
        """
        keys = list(dict.fromkeys(object_identities))
        if not keys:
            return {}

        async with self._operation("load_batch"), self._session_factory() as session:
            result = await session.execute(self._select_acls(keys))
            rows = result.all()

        acls = self._assemble(rows)
        self._lazy.debug(
            lambda: f"db.load_batch: requested={len(keys)} found={len(acls)} rows={len(rows)}"
        )
        return acls

    async def exists(self, object_identity: ObjectIdentity) -> bool:
        async with self._operation("exists"), self._session_factory() as session:
            return await self._object_identity_id(session, object_identity) is not None

    async def find_children(self, object_identity: ObjectIdentity) -> list[ObjectIdentity]:
        """Identities whose Acl names ``object_identity`` as parent."""
        async with self._operation("find_children"), self._session_factory() as session:
            parent_id = await self._object_identity_id(session, object_identity)
            if parent_id is None:
                return []
            return [child for _, child in await self._children(session, parent_id)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, object_identity: ObjectIdentity, owner: Sid) -> Acl:
        """Insert an empty, inheriting Acl owned by ``owner``.

        Raises:
            AlreadyExistsError: If an Acl exists for the identity.
        """
        async with self._operation("create"):
            try:
                async with self._session_factory() as session, session.begin():
                    if await self._object_identity_id(session, object_identity) is not None:
                        raise AlreadyExistsError(object_identity)

                    class_id = await self._class_id(session, object_identity.type_name)
                    owner_id = await self._sid_id(session, owner)
                    session.add(
                        AclObjectIdentity(
                            object_id_class=class_id,
                            object_id_identity=object_identity.identifier,
                            parent_object=None,
                            owner_sid=owner_id,
                            entries_inheriting=True,
                        )
                    )
                    await session.flush()
            except IntegrityError as e:
                # Lost a race with another process creating the same identity
                raise AlreadyExistsError(object_identity) from e

        self._logger.info(
            "Acl created",
            extra={
                "object_type": object_identity.type_name,
                "object_id": object_identity.identifier,
                "owner": str(owner),
                "operation": "db.create",
            },
        )
        return Acl(object_identity=object_identity, owner=owner)

    async def save(self, acl: Acl) -> None:
        """Persist a full Acl snapshot: header row plus a rewritten entry list.

        Raises:
            NotFoundError: If the Acl or its parent does not exist.
        """
        async with (
            self._operation("save"),
            self._session_factory() as session,
            session.begin(),
        ):
            row = await self._object_identity_row(session, acl.object_identity)
            if row is None:
                raise NotFoundError(acl.object_identity)

            parent_id: int | None = None
            if acl.parent is not None:
                parent_id = await self._object_identity_id(session, acl.parent)
                if parent_id is None:
                    raise NotFoundError(acl.parent, what="Parent Acl")

            row.parent_object = parent_id
            row.owner_sid = await self._sid_id(session, acl.owner)
            row.entries_inheriting = acl.entries_inheriting

            await session.execute(delete(AclEntry).where(AclEntry.acl_object_identity == row.id))

            if acl.entries:
                sid_ids: dict[Sid, int] = {}
                for entry in acl.entries:
                    if entry.sid not in sid_ids:
                        sid_ids[entry.sid] = await self._sid_id(session, entry.sid)
                await session.execute(
                    insert(AclEntry),
                    [
                        {
                            "acl_object_identity": row.id,
                            "ace_order": entry.order,
                            "sid": sid_ids[entry.sid],
                            "mask": _mask_to_column(entry.mask.mask),
                            "granting": entry.granting,
                            "audit_success": entry.audit_success,
                            "audit_failure": entry.audit_failure,
                        }
                        for entry in acl.entries
                    ],
                )

        self._lazy.debug(
            lambda: f"db.save: {acl.object_identity} entries={len(acl.entries)} parent={acl.parent}"
        )

    async def delete(
        self, object_identity: ObjectIdentity, *, cascade: bool = False
    ) -> list[ObjectIdentity]:
        """Delete an Acl, and with ``cascade`` its whole subtree.

        Returns:
            Every deleted identity, children before their parents.

        Raises:
            NotFoundError: If no Acl exists for the identity.
            ChildrenExistError: If children exist and ``cascade`` is False.
        """
        async with (
            self._operation("delete"),
            self._session_factory() as session,
            session.begin(),
        ):
            root_id = await self._object_identity_id(session, object_identity)
            if root_id is None:
                raise NotFoundError(object_identity)

            children = await self._children(session, root_id)
            if children and not cascade:
                raise ChildrenExistError(object_identity, [child for _, child in children])

            doomed = await self._subtree_post_order(session, root_id, object_identity)
            doomed_ids = [row_id for row_id, _ in doomed]

            await session.execute(
                delete(AclEntry).where(AclEntry.acl_object_identity.in_(doomed_ids))
            )
            for row_id in doomed_ids:
                await session.execute(
                    delete(AclObjectIdentity).where(AclObjectIdentity.id == row_id)
                )

        deleted = [identity for _, identity in doomed]
        self._logger.info(
            "Acl deleted",
            extra={
                "object_type": object_identity.type_name,
                "object_id": object_identity.identifier,
                "cascade": cascade,
                "deleted_count": len(deleted),
                "operation": "db.delete",
            },
        )
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncIterator[None]:
        """Bound a call by the timeout and translate infrastructure failures."""
        start = time.perf_counter()
        try:
            async with asyncio.timeout(self._timeout):
                yield
        except AclError:
            raise
        except TimeoutError as e:
            acl_repository_errors_total.labels(operation=name, error_type="timeout").inc()
            self._logger.exception(
                "ACL repository call timed out",
                extra={"operation": f"db.{name}", "timeout": self._timeout},
            )
            msg = "ACL repository call timed out"
            raise InfrastructureError(
                msg, operation=name, details={"timeout": self._timeout}
            ) from e
        except (SQLAlchemyError, OSError) as e:
            acl_repository_errors_total.labels(
                operation=name, error_type=type(e).__name__
            ).inc()
            self._logger.exception(
                "ACL repository call failed",
                extra={"operation": f"db.{name}", "error": str(e)},
            )
            msg = "ACL repository unavailable"
            raise InfrastructureError(msg, operation=name) from e
        finally:
            acl_repository_duration_seconds.labels(operation=name).observe(
                time.perf_counter() - start
            )

    @staticmethod
    def _select_acls(keys: Sequence[ObjectIdentity]) -> Select[Any]:
        parent = aliased(AclObjectIdentity, name="parent_oi")
        parent_class = aliased(AclClass, name="parent_class")
        owner = aliased(AclSid, name="owner")
        entry_sid = aliased(AclSid, name="entry_sid")

        return (
            select(
                AclObjectIdentity.id.label("acl_id"),
                AclClass.class_name.label("type_name"),
                AclObjectIdentity.object_id_identity.label("identifier"),
                AclObjectIdentity.entries_inheriting.label("entries_inheriting"),
                owner.principal.label("owner_principal"),
                owner.sid.label("owner_name"),
                parent_class.class_name.label("parent_type"),
                parent.object_id_identity.label("parent_identifier"),
                AclEntry.ace_order.label("ace_order"),
                AclEntry.mask.label("mask"),
                AclEntry.granting.label("granting"),
                AclEntry.audit_success.label("audit_success"),
                AclEntry.audit_failure.label("audit_failure"),
                entry_sid.principal.label("entry_principal"),
                entry_sid.sid.label("entry_name"),
            )
            .select_from(AclObjectIdentity)
            .join(AclClass, AclObjectIdentity.object_id_class == AclClass.id)
            .join(owner, AclObjectIdentity.owner_sid == owner.id)
            .outerjoin(parent, AclObjectIdentity.parent_object == parent.id)
            .outerjoin(parent_class, parent.object_id_class == parent_class.id)
            .outerjoin(AclEntry, AclEntry.acl_object_identity == AclObjectIdentity.id)
            .outerjoin(entry_sid, AclEntry.sid == entry_sid.id)
            .where(
                tuple_(AclClass.class_name, AclObjectIdentity.object_id_identity).in_(
                    [(key.type_name, key.identifier) for key in keys]
                )
            )
            .order_by(AclObjectIdentity.id, AclEntry.ace_order)
        )

    @staticmethod
    def _assemble(rows: Sequence[Row[Any]]) -> dict[ObjectIdentity, Acl]:
        headers: dict[int, dict[str, Any]] = {}
        for row in rows:
            header = headers.get(row.acl_id)
            if header is None:
                parent = None
                if row.parent_type is not None:
                    parent = ObjectIdentity(row.parent_type, row.parent_identifier)
                header = headers[row.acl_id] = {
                    "object_identity": ObjectIdentity(row.type_name, row.identifier),
                    "owner": Sid.from_row(row.owner_principal, row.owner_name),
                    "parent": parent,
                    "entries_inheriting": bool(row.entries_inheriting),
                    "entries": [],
                }
            if row.ace_order is not None:
                header["entries"].append(
                    AccessControlEntry(
                        order=row.ace_order,
                        sid=Sid.from_row(row.entry_principal, row.entry_name),
                        mask=Permission(_mask_from_column(row.mask)),
                        granting=bool(row.granting),
                        audit_success=bool(row.audit_success),
                        audit_failure=bool(row.audit_failure),
                    )
                )

        acls: dict[ObjectIdentity, Acl] = {}
        for header in headers.values():
            acl = Acl(
                object_identity=header["object_identity"],
                owner=header["owner"],
                parent=header["parent"],
                entries_inheriting=header["entries_inheriting"],
                entries=tuple(header["entries"]),
            )
            acls[acl.object_identity] = acl
        return acls

    @staticmethod
    def _identity_clause(object_identity: ObjectIdentity) -> Any:
        return (AclClass.class_name == object_identity.type_name) & (
            AclObjectIdentity.object_id_identity == object_identity.identifier
        )

    async def _object_identity_id(
        self, session: AsyncSession, object_identity: ObjectIdentity
    ) -> int | None:
        stmt = (
            select(AclObjectIdentity.id)
            .join(AclClass, AclObjectIdentity.object_id_class == AclClass.id)
            .where(self._identity_clause(object_identity))
        )
        return await session.scalar(stmt)

    async def _object_identity_row(
        self, session: AsyncSession, object_identity: ObjectIdentity
    ) -> AclObjectIdentity | None:
        stmt = (
            select(AclObjectIdentity)
            .join(AclClass, AclObjectIdentity.object_id_class == AclClass.id)
            .where(self._identity_clause(object_identity))
        )
        return await session.scalar(stmt)

    async def _children(
        self, session: AsyncSession, parent_id: int
    ) -> list[tuple[int, ObjectIdentity]]:
        stmt = (
            select(AclObjectIdentity.id, AclClass.class_name, AclObjectIdentity.object_id_identity)
            .join(AclClass, AclObjectIdentity.object_id_class == AclClass.id)
            .where(AclObjectIdentity.parent_object == parent_id)
            .order_by(AclObjectIdentity.id)
        )
        result = await session.execute(stmt)
        return [
            (row_id, ObjectIdentity(type_name, identifier))
            for row_id, type_name, identifier in result.all()
        ]

    async def _subtree_post_order(
        self, session: AsyncSession, root_id: int, root: ObjectIdentity
    ) -> list[tuple[int, ObjectIdentity]]:
        """Depth-first walk of the subtree; every child precedes its parent."""
        ordered: list[tuple[int, ObjectIdentity]] = []
        visited = {root_id}
        stack: list[tuple[int, ObjectIdentity, bool]] = [(root_id, root, False)]
        while stack:
            node_id, node, expanded = stack.pop()
            if expanded:
                ordered.append((node_id, node))
                continue
            stack.append((node_id, node, True))
            for child_id, child in reversed(await self._children(session, node_id)):
                if child_id not in visited:
                    visited.add(child_id)
                    stack.append((child_id, child, False))
        return ordered

    async def _class_id(self, session: AsyncSession, type_name: str) -> int:
        lookup = select(AclClass.id).where(AclClass.class_name == type_name)
        class_id = await session.scalar(lookup)
        if class_id is None:
            await self._insert_ignoring_conflict(session, AclClass, {"class_name": type_name})
            class_id = await session.scalar(lookup)
        return class_id

    async def _sid_id(self, session: AsyncSession, sid: Sid) -> int:
        lookup = select(AclSid.id).where(
            AclSid.sid == sid.name, AclSid.principal == sid.is_principal
        )
        sid_id = await session.scalar(lookup)
        if sid_id is None:
            await self._insert_ignoring_conflict(
                session, AclSid, {"sid": sid.name, "principal": sid.is_principal}
            )
            sid_id = await session.scalar(lookup)
        return sid_id

    @staticmethod
    async def _insert_ignoring_conflict(
        session: AsyncSession, model: type[Any], values: dict[str, Any]
    ) -> None:
        """Get-or-create helper: concurrent creators of the same row both succeed."""
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(model).values(**values).on_conflict_do_nothing()
        elif dialect == "sqlite":
            stmt = sqlite_insert(model).values(**values).on_conflict_do_nothing()
        else:
            stmt = insert(model).values(**values)
        await session.execute(stmt)


__all__ = ["AclRepository"]
