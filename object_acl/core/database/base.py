"""Declarative base for the ACL tables.

The ACL schema has a fixed, externally defined shape (acl_class, acl_sid,
acl_object_identity, acl_entry), so every model sets ``__tablename__``
explicitly and uses integer surrogate keys.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Integer, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Consistent naming convention for database constraints
# Ensures predictable names for migrations and schema management
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# BIGINT on real databases, INTEGER on SQLite so rowid autoincrement works
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Declarative base with consistent constraint naming."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class IntegerPKMixin:
    """Auto-incrementing 64-bit integer primary key.

    Provides:
        id: Auto-incrementing primary key
    """

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)


__all__ = ["NAMING_CONVENTION", "Base", "BigIntPK", "IntegerPKMixin"]
