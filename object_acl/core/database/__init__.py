"""Core database package: declarative base and mixins for the ACL tables."""

from __future__ import annotations

from object_acl.core.database.base import NAMING_CONVENTION, Base, BigIntPK, IntegerPKMixin

__all__ = ["NAMING_CONVENTION", "Base", "BigIntPK", "IntegerPKMixin"]
