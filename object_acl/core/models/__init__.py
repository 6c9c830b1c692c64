"""ORM models. Importing this package registers every table on Base.metadata."""

from __future__ import annotations

from object_acl.core.models.acl import AclClass, AclEntry, AclObjectIdentity, AclSid

__all__ = ["AclClass", "AclEntry", "AclObjectIdentity", "AclSid"]
