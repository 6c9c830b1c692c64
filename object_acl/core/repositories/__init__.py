"""Repositories mapping ORM rows to immutable ACL snapshots."""

from __future__ import annotations

from object_acl.core.repositories.acl import AclRepository

__all__ = ["AclRepository"]
