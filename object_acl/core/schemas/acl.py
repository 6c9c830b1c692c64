"""Pydantic schemas for ACL snapshots.

Used to serialize Acl snapshots into shared cache stores (Redis) and as
transfer objects for whatever service layer sits in front of the engine.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from object_acl.core.acl.identity import ObjectIdentity
from object_acl.core.acl.model import AccessControlEntry, Acl
from object_acl.core.acl.permission import MAX_MASK, Permission
from object_acl.core.acl.sid import Sid, SidKind


class CustomBase(BaseModel):
    """Base model with common configuration for ACL schemas."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class SidSchema(CustomBase):
    kind: SidKind = Field(..., description="principal or authority")
    name: str = Field(..., min_length=1, description="User name or authority name")

    @classmethod
    def from_domain(cls, sid: Sid) -> SidSchema:
        return cls(kind=sid.kind, name=sid.name)

    def to_domain(self) -> Sid:
        return Sid(self.kind, self.name)


class ObjectIdentitySchema(CustomBase):
    type: str = Field(..., min_length=1, description="Domain type name")
    id: int = Field(..., description="Domain object identifier")

    @classmethod
    def from_domain(cls, object_identity: ObjectIdentity) -> ObjectIdentitySchema:
        return cls(type=object_identity.type_name, id=object_identity.identifier)

    def to_domain(self) -> ObjectIdentity:
        return ObjectIdentity(self.type, self.id)


class AccessControlEntrySchema(CustomBase):
    order: int = Field(..., ge=0)
    sid: SidSchema
    mask: int = Field(..., gt=0, le=MAX_MASK, description="Permission bitmask")
    granting: bool
    audit_success: bool = False
    audit_failure: bool = False

    @classmethod
    def from_domain(cls, entry: AccessControlEntry) -> AccessControlEntrySchema:
        return cls(
            order=entry.order,
            sid=SidSchema.from_domain(entry.sid),
            mask=entry.mask.mask,
            granting=entry.granting,
            audit_success=entry.audit_success,
            audit_failure=entry.audit_failure,
        )

    def to_domain(self) -> AccessControlEntry:
        return AccessControlEntry(
            order=self.order,
            sid=self.sid.to_domain(),
            mask=Permission(self.mask),
            granting=self.granting,
            audit_success=self.audit_success,
            audit_failure=self.audit_failure,
        )


class AclSchema(CustomBase):
    """Serialized Acl snapshot.

    Example:
        >>> payload = AclSchema.from_domain(acl).model_dump_json()
        >>> AclSchema.model_validate_json(payload).to_domain() == acl
        True
    """

    object_identity: ObjectIdentitySchema
    owner: SidSchema
    parent: ObjectIdentitySchema | None = None
    entries_inheriting: bool = True
    entries: list[AccessControlEntrySchema] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, acl: Acl) -> AclSchema:
        return cls(
            object_identity=ObjectIdentitySchema.from_domain(acl.object_identity),
            owner=SidSchema.from_domain(acl.owner),
            parent=ObjectIdentitySchema.from_domain(acl.parent) if acl.parent else None,
            entries_inheriting=acl.entries_inheriting,
            entries=[AccessControlEntrySchema.from_domain(entry) for entry in acl.entries],
        )

    def to_domain(self) -> Acl:
        entries = sorted(self.entries, key=lambda entry: entry.order)
        return Acl(
            object_identity=self.object_identity.to_domain(),
            owner=self.owner.to_domain(),
            parent=self.parent.to_domain() if self.parent else None,
            entries_inheriting=self.entries_inheriting,
            entries=tuple(entry.to_domain() for entry in entries),
        )


__all__ = [
    "AccessControlEntrySchema",
    "AclSchema",
    "ObjectIdentitySchema",
    "SidSchema",
]
