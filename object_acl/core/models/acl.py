"""ORM models for the four ACL tables.

Table and column names follow the established ACL layout so existing data
can be read as-is:

    acl_class(id, class)
    acl_sid(id, principal, sid)
    acl_object_identity(id, object_id_class, object_id_identity,
                        parent_object, owner_sid, entries_inheriting)
    acl_entry(id, acl_object_identity, ace_order, sid, mask,
              granting, audit_success, audit_failure)
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from object_acl.core.database.base import Base, BigIntPK, IntegerPKMixin


class AclClass(Base, IntegerPKMixin):
    """Registry of domain type names (ObjectIdentity.type_name)."""

    __tablename__ = "acl_class"

    class_name: Mapped[str] = mapped_column("class", String(255), unique=True, nullable=False)


class AclSid(Base, IntegerPKMixin):
    """Registry of security identities.

    ``principal`` is True for users and False for granted authorities. A
    user and an authority may share a name, so uniqueness covers both columns.
    """

    __tablename__ = "acl_sid"
    __table_args__ = (UniqueConstraint("sid", "principal"),)

    principal: Mapped[bool] = mapped_column(Boolean, nullable=False)
    sid: Mapped[str] = mapped_column(String(255), nullable=False)


class AclObjectIdentity(Base, IntegerPKMixin):
    """One row per secured domain object."""

    __tablename__ = "acl_object_identity"
    __table_args__ = (UniqueConstraint("object_id_class", "object_id_identity"),)

    object_id_class: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("acl_class.id"), nullable=False
    )
    object_id_identity: Mapped[int] = mapped_column(BigInteger, nullable=False)
    parent_object: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("acl_object_identity.id"), nullable=True, index=True
    )
    owner_sid: Mapped[int] = mapped_column(BigIntPK, ForeignKey("acl_sid.id"), nullable=False)
    entries_inheriting: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class AclEntry(Base, IntegerPKMixin):
    """One access control entry; ``ace_order`` is dense within its Acl."""

    __tablename__ = "acl_entry"
    __table_args__ = (UniqueConstraint("acl_object_identity", "ace_order"),)

    acl_object_identity: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("acl_object_identity.id"), nullable=False
    )
    ace_order: Mapped[int] = mapped_column(Integer, nullable=False)
    sid: Mapped[int] = mapped_column(BigIntPK, ForeignKey("acl_sid.id"), nullable=False)
    mask: Mapped[int] = mapped_column(Integer, nullable=False)
    granting: Mapped[bool] = mapped_column(Boolean, nullable=False)
    audit_success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    audit_failure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


__all__ = ["AclClass", "AclEntry", "AclObjectIdentity", "AclSid"]
