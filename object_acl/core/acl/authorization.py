"""Who may change an Acl.

AclAuthorizationStrategy answers "may these acting sids make this kind of
change to this Acl?" for AclAdminService. A change is allowed when any of
these holds:

- an acting sid is the Acl owner
- an acting sid is the authority configured for the change type
- for GENERAL changes only, the acting sids are granted ADMINISTER on the
  Acl, with the usual first-match and inheritance rules

Otherwise AccessDeniedError is raised.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from object_acl.core.acl.permission import BasePermission
from object_acl.core.acl.sid import Sid
from object_acl.core.exceptions import AccessDeniedError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from object_acl.core.acl.identity import ObjectIdentity
    from object_acl.core.acl.model import Acl
    from object_acl.core.settings import AclSettings

    type AclLoader = Callable[[ObjectIdentity], Awaitable[Acl | None]]

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_AUTHORITY = "ROLE_ADMIN"


class ChangeType(str, Enum):
    """Kinds of Acl change, each guarded by its own authority."""

    OWNERSHIP = "ownership"
    AUDITING = "auditing"
    GENERAL = "general"


class AclAuthorizationStrategy:
    """Checks acting sids against the owner, an authority, or ADMINISTER.

    Example:
        >>> strategy = AclAuthorizationStrategy()
        >>> await strategy.check_change(sids_for("bob", ["ROLE_ADMIN"]), acl, ChangeType.OWNERSHIP)
    """

    def __init__(
        self,
        *,
        ownership_authority: str = DEFAULT_ADMIN_AUTHORITY,
        auditing_authority: str = DEFAULT_ADMIN_AUTHORITY,
        general_authority: str = DEFAULT_ADMIN_AUTHORITY,
    ) -> None:
        self._authorities = {
            ChangeType.OWNERSHIP: Sid.authority(ownership_authority),
            ChangeType.AUDITING: Sid.authority(auditing_authority),
            ChangeType.GENERAL: Sid.authority(general_authority),
        }

    @classmethod
    def from_settings(cls, settings: AclSettings) -> AclAuthorizationStrategy:
        return cls(
            ownership_authority=settings.ownership_authority,
            auditing_authority=settings.auditing_authority,
            general_authority=settings.general_authority,
        )

    def authority_for(self, change_type: ChangeType) -> Sid:
        return self._authorities[change_type]

    async def check_change(
        self,
        acting_sids: Iterable[Sid],
        acl: Acl,
        change_type: ChangeType,
        load: AclLoader | None = None,
    ) -> None:
        """Raise unless ``acting_sids`` may make ``change_type`` changes to ``acl``.

        Args:
            acting_sids: Principal and authorities of the caller
            acl: Current snapshot of the Acl being changed
            change_type: Kind of change
            load: Loads parent Acls for inherited ADMINISTER entries; without
                it only the Acl's own entries count

        Raises:
            AccessDeniedError: If none of the rules allows the change.
        """
        sids = frozenset(acting_sids)
        if acl.owner in sids:
            return
        if self._authorities[change_type] in sids:
            return
        if change_type is ChangeType.GENERAL and await self._administers(sids, acl, load):
            return

        logger.warning(
            "Acl change refused",
            extra={
                "object_identity": str(acl.object_identity),
                "change_type": change_type.value,
                "sids": sorted(str(sid) for sid in sids),
            },
        )
        raise AccessDeniedError(acl.object_identity, change_type.value)

    @staticmethod
    async def _administers(sids: frozenset[Sid], acl: Acl, load: AclLoader | None) -> bool:
        visited: set[ObjectIdentity] = set()
        current: Acl | None = acl
        while current is not None and current.object_identity not in visited:
            visited.add(current.object_identity)
            entry = current.first_match(sids, BasePermission.ADMINISTER)
            if entry is not None:
                return entry.granting
            if load is None or not current.inherits or current.parent is None:
                return False
            current = await load(current.parent)
        return False


__all__ = ["DEFAULT_ADMIN_AUTHORITY", "AclAuthorizationStrategy", "ChangeType"]
