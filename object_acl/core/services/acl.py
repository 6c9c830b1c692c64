"""Library-level ACL API.

AclService wires the repository, cache, evaluator and admin service into a
single object for the web/service layer. It is constructed explicitly,
either from ready-made collaborators or from settings; there is no
process-wide instance.

Example:
    async with AclService.from_settings() as acl:
        await acl.create_acl("Document", 42, "alice", grant_owner=True)
        await acl.grant("Document", 42, Sid.principal("bob"), "read")

        sids = sids_for("bob", ["ROLE_USER"])
        if await acl.check_permission(sids, "Document", 42, "read"):
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from object_acl.core.acl.admin import AclAdminService
from object_acl.core.acl.audit import AuditLogger
from object_acl.core.acl.authorization import AclAuthorizationStrategy
from object_acl.core.acl.evaluator import PermissionEvaluator
from object_acl.core.acl.identity import ObjectIdentity
from object_acl.core.acl.permission import BasePermission, PermissionFactory
from object_acl.core.acl.sid import Sid
from object_acl.core.exceptions import AclError, PermissionRegistrationError
from object_acl.core.repositories.acl import AclRepository
from object_acl.core.services.base import BaseService
from object_acl.core.settings import get_acl_settings, get_db_settings, get_redis_settings
from object_acl.infra.cache import AclCache, MemoryAclStore, RedisAclStore, create_redis_client
from object_acl.infra.database import create_engine, create_session_factory

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncEngine

    from object_acl.core.acl.model import Acl
    from object_acl.core.acl.permission import Permission
    from object_acl.core.settings import AclSettings, DatabaseSettings, RedisSettings
    from object_acl.infra.cache import AclCacheStore

type PermissionLike = Permission | str | int
type SidLike = Sid | str

# Permissions granted to the owner by create_acl(grant_owner=True)
OWNER_PERMISSIONS = (
    BasePermission.READ,
    BasePermission.WRITE,
    BasePermission.DELETE,
    BasePermission.ADMINISTER,
)


class AclService(BaseService):
    """Facade over evaluation and administration of object ACLs.

    Permissions may be given as Permission objects, names (``"read"``,
    ``"read,write"``) or masks. Sids given as plain strings are principals.
    """

    def __init__(
        self,
        repository: AclRepository,
        cache: AclCache,
        *,
        audit_logger: AuditLogger | None = None,
        permissions: PermissionFactory | None = None,
        authorization: AclAuthorizationStrategy | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        """Initialize the facade.

        Args:
            repository: Acl persistence
            cache: Read-through cache over ``repository``
            audit_logger: Audit sink for flagged entries
            permissions: Permission registry used to resolve names and masks
            authorization: Rules checked when a mutation names its acting sids
            engine: Engine disposed by close(), when the service owns one
        """
        super().__init__()
        self.repository = repository
        self.cache = cache
        self.permissions = permissions or PermissionFactory()
        self.evaluator = PermissionEvaluator(cache, audit_logger)
        self.admin = AclAdminService(repository, cache, authorization)
        self._engine = engine

    @classmethod
    def from_settings(
        cls,
        settings: AclSettings | None = None,
        *,
        db_settings: DatabaseSettings | None = None,
        redis_settings: RedisSettings | None = None,
        permissions: PermissionFactory | None = None,
    ) -> AclService:
        """Build the whole engine from settings (environment by default)."""
        settings = settings or get_acl_settings()
        db_settings = db_settings or get_db_settings()

        engine = create_engine(db_settings)
        repository = AclRepository(
            create_session_factory(engine), timeout=settings.repository_timeout
        )

        store: AclCacheStore
        if settings.cache_backend == "redis":
            store = RedisAclStore(
                create_redis_client(redis_settings or get_redis_settings()),
                prefix=settings.cache_key_prefix,
                ttl=settings.cache_ttl,
            )
        else:
            store = MemoryAclStore(settings.cache_max_entries)

        cache = AclCache(repository, store, negative_caching=settings.cache_negative_results)
        service = cls(
            repository,
            cache,
            audit_logger=AuditLogger(enabled=settings.audit_enabled),
            authorization=AclAuthorizationStrategy.from_settings(settings),
            permissions=permissions,
            engine=engine,
        )
        service.logger.info(
            "ACL service initialized",
            extra={
                "cache_backend": store.backend,
                "negative_caching": settings.cache_negative_results,
                "repository_timeout": settings.repository_timeout,
            },
        )
        return service

    async def close(self) -> None:
        """Release the cache store and the owned engine."""
        await self.cache.close()
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self.logger.info("ACL service closed")

    async def __aenter__(self) -> AclService:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def check_permission(
        self,
        sids: Iterable[Sid],
        object_type: str,
        object_id: int,
        permission: PermissionLike,
    ) -> bool:
        """True if ``sids`` hold every bit of ``permission`` on the object."""
        return await self.evaluator.has_permission(
            sids, ObjectIdentity(object_type, object_id), self.permissions.resolve(permission)
        )

    async def filter_permitted[T](
        self,
        sids: Iterable[Sid],
        objects: Iterable[T],
        permission: PermissionLike,
        *,
        type_name: str | None = None,
    ) -> list[T]:
        """Keep the objects on which ``sids`` hold ``permission``.

        Objects may be ObjectIdentity instances or domain objects with an
        ``id`` attribute.
        """
        objects = list(objects)
        identities = [self._identity_of(obj, type_name) for obj in objects]
        permitted = set(
            await self.evaluator.filter_permitted(
                sids, identities, self.permissions.resolve(permission)
            )
        )
        self._lazy.debug(lambda: f"filter_permitted: {len(permitted)} of {len(objects)} permitted")
        return [obj for obj, oi in zip(objects, identities, strict=True) if oi in permitted]

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def create_acl(
        self,
        object_type: str,
        object_id: int,
        owner: SidLike,
        *,
        parent: ObjectIdentity | None = None,
        grant_owner: bool = False,
    ) -> Acl:
        """Create the Acl for a new domain object.

        With ``grant_owner`` the owner also receives READ, WRITE, DELETE and
        ADMINISTER entries. If attaching ``parent`` or granting fails, the new
        Acl is removed again and the error re-raised.
        """
        object_identity = ObjectIdentity(object_type, object_id)
        owner_sid = self._sid(owner)
        acl = await self.admin.create_acl(object_identity, owner_sid)
        if parent is None and not grant_owner:
            return acl

        try:
            if parent is not None:
                acl = await self.admin.set_parent(object_identity, parent)
            if grant_owner:
                acl = await self.admin.insert_aces(
                    object_identity, None, owner_sid, OWNER_PERMISSIONS, True
                )
        except AclError:
            await self.admin.delete_acl(object_identity)
            raise
        return acl

    async def grant(
        self,
        object_type: str,
        object_id: int,
        sid: SidLike,
        permission: PermissionLike,
        *,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        """Append one granting entry per atomic bit of ``permission``.

        With ``acting_sids`` the change must pass the authorization strategy.
        """
        return await self.admin.insert_aces(
            ObjectIdentity(object_type, object_id),
            None,
            self._sid(sid),
            self._atomic(permission),
            True,
            acting_sids=acting_sids,
        )

    async def deny(
        self,
        object_type: str,
        object_id: int,
        sid: SidLike,
        permission: PermissionLike,
        *,
        acting_sids: Iterable[Sid] | None = None,
    ) -> Acl:
        """Prepend denying entries so they take precedence over existing grants."""
        return await self.admin.insert_aces(
            ObjectIdentity(object_type, object_id),
            0,
            self._sid(sid),
            self._atomic(permission),
            False,
            acting_sids=acting_sids,
        )

    async def revoke(
        self,
        object_type: str,
        object_id: int,
        sid: SidLike,
        *,
        acting_sids: Iterable[Sid] | None = None,
    ) -> int:
        """Remove every entry of ``sid``; returns how many were removed."""
        return await self.admin.remove_sid(
            ObjectIdentity(object_type, object_id), self._sid(sid), acting_sids=acting_sids
        )

    async def delete_acl(
        self,
        object_type: str,
        object_id: int,
        *,
        cascade: bool = False,
        acting_sids: Iterable[Sid] | None = None,
    ) -> list[ObjectIdentity]:
        return await self.admin.delete_acl(
            ObjectIdentity(object_type, object_id), cascade=cascade, acting_sids=acting_sids
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _atomic(self, permission: PermissionLike) -> tuple[Permission, ...]:
        resolved = self.permissions.resolve(permission)
        if not resolved:
            msg = "Cannot grant or deny an empty permission"
            raise PermissionRegistrationError(msg)
        return tuple(self.permissions.build_from_mask(bit.mask) for bit in resolved.atomic())

    @staticmethod
    def _sid(sid: SidLike) -> Sid:
        return sid if isinstance(sid, Sid) else Sid.principal(sid)

    @staticmethod
    def _identity_of(obj: Any, type_name: str | None) -> ObjectIdentity:
        if isinstance(obj, ObjectIdentity):
            return obj
        return ObjectIdentity.for_object(obj, type_name)


__all__ = ["OWNER_PERMISSIONS", "AclService", "PermissionLike", "SidLike"]
