"""Service layer.

AclService is the entry point for the web/service layer:

    from object_acl.core.services import AclService

    async with AclService.from_settings() as acl:
        allowed = await acl.check_permission(sids, "Document", 42, "read")
"""

from __future__ import annotations

from object_acl.core.services.acl import OWNER_PERMISSIONS, AclService, PermissionLike, SidLike
from object_acl.core.services.base import BaseService

__all__ = ["OWNER_PERMISSIONS", "AclService", "BaseService", "PermissionLike", "SidLike"]
