"""Object-level ACL (Access Control List) engine.

Fine-grained, per-instance authorization: every secured domain object has
an Acl holding ordered grant/deny entries for users and roles, optionally
inheriting from a parent Acl.

Architecture:
    read path:   PermissionEvaluator --get/get_batch--> AclCache --load_batch--> AclRepository
    write path:  AclAdminService --save/delete--> AclRepository
                 AclAdminService --invalidate--> AclCache

    The facade for both paths is object_acl.core.services.AclService.

Components:
    Value types:
        - Permission / BasePermission: Bitmask permissions (READ, WRITE, CREATE,
          DELETE, ADMINISTER) with composition operators
        - PermissionFactory: Registry for custom single-bit permissions
        - Sid / sids_for: Principal or authority identities
        - ObjectIdentity: ``(type, id)`` key of one secured object
        - AccessControlEntry / Acl: Immutable snapshots with copy-on-write mutators

    Services:
        - PermissionEvaluator: First-match evaluation with parent inheritance
        - AclAdminService: Per-key locked mutations with cache invalidation
        - AuditLogger: Audit records for flagged entries
        - AclAuthorizationStrategy: Who may change an Acl (owner, configured
          authority, or ADMINISTER for general changes)

Evaluation Rules:
    - The first entry (ascending order) whose sid matches and whose mask
      intersects the required permission decides
    - No match: continue at the parent when entries_inheriting is set
    - No Acl or no match anywhere: deny (fail closed)
    - Composite permissions: every atomic bit must be granted

Example:
    >>> from object_acl.core.acl import BasePermission, Sid, sids_for
    >>> from object_acl.core.services import AclService
    >>>
    >>> async with AclService.from_settings() as acl:
    ...     await acl.create_acl("Document", 1, "alice", grant_owner=True)
    ...     await acl.grant("Document", 1, Sid.authority("ROLE_REVIEWER"), BasePermission.READ)
    ...     await acl.check_permission(sids_for("bob", ["ROLE_REVIEWER"]), "Document", 1, "read")
    True
"""

from __future__ import annotations

from object_acl.core.acl.admin import AclAdminService
from object_acl.core.acl.audit import AUDIT_LOGGER_NAME, AuditLogger
from object_acl.core.acl.authorization import AclAuthorizationStrategy, ChangeType
from object_acl.core.acl.evaluator import PermissionEvaluator
from object_acl.core.acl.identity import ObjectIdentity
from object_acl.core.acl.locks import KeyedLock
from object_acl.core.acl.model import AccessControlEntry, Acl
from object_acl.core.acl.permission import (
    MAX_MASK,
    RESERVED_MASK,
    BasePermission,
    Permission,
    PermissionFactory,
)
from object_acl.core.acl.sid import Sid, SidKind, sids_for

__all__ = [
    "AUDIT_LOGGER_NAME",
    "MAX_MASK",
    "RESERVED_MASK",
    "AccessControlEntry",
    "Acl",
    "AclAdminService",
    "AclAuthorizationStrategy",
    "AuditLogger",
    "BasePermission",
    "ChangeType",
    "KeyedLock",
    "ObjectIdentity",
    "Permission",
    "PermissionEvaluator",
    "PermissionFactory",
    "Sid",
    "SidKind",
    "sids_for",
]
