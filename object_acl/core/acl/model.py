"""ACL aggregate: immutable snapshots with copy-on-write mutators.

An Acl is never modified in place. Every mutator returns a new snapshot,
so a cached Acl can be shared between concurrent evaluations without any
reader ever seeing a half-updated entry list.

Example:
    >>> acl = Acl(ObjectIdentity("Document", 1), owner=Sid.principal("alice"))
    >>> acl = acl.insert_ace(0, Sid.principal("bob"), BasePermission.READ, granting=True)
    >>> acl = acl.insert_ace(0, Sid.authority("ROLE_GUEST"), BasePermission.READ, granting=False)
    >>> [entry.order for entry in acl.entries]
    [0, 1]
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from object_acl.core.exceptions import AceIndexError, PermissionRegistrationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from object_acl.core.acl.identity import ObjectIdentity
    from object_acl.core.acl.permission import Permission
    from object_acl.core.acl.sid import Sid


@dataclass(frozen=True, slots=True)
class AccessControlEntry:
    """One grant or deny rule.

    Attributes:
        order: Position in the Acl; lower orders are evaluated first
        sid: Identity the rule applies to
        mask: Permission bits the rule covers
        granting: True to grant, False to deny
        audit_success: Audit when this entry grants access
        audit_failure: Audit when this entry denies access
    """

    order: int
    sid: Sid
    mask: Permission
    granting: bool
    audit_success: bool = False
    audit_failure: bool = False

    def matches(self, sids: frozenset[Sid] | set[Sid], required: Permission) -> bool:
        """True if this entry applies to one of ``sids`` and shares a bit with ``required``."""
        return self.sid in sids and self.mask.intersects(required)


@dataclass(frozen=True, slots=True)
class Acl:
    """Access control list for one object identity.

    Attributes:
        object_identity: The secured object
        owner: Owning identity
        parent: Identity of the parent Acl (a key, never a live reference)
        entries_inheriting: Defer unresolved checks to the parent
        entries: Entries in ascending, gapless ``order``
    """

    object_identity: ObjectIdentity
    owner: Sid
    parent: ObjectIdentity | None = None
    entries_inheriting: bool = True
    entries: tuple[AccessControlEntry, ...] = field(default=())

    def __post_init__(self) -> None:
        # Accept any iterable but always hold a tuple with dense ordering
        entries = tuple(self.entries)
        for position, entry in enumerate(entries):
            if entry.order != position:
                entries = _renumber(entries)
                break
        object.__setattr__(self, "entries", entries)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def entries_for(self, sid: Sid) -> tuple[AccessControlEntry, ...]:
        return tuple(entry for entry in self.entries if entry.sid == sid)

    def first_match(
        self, sids: frozenset[Sid] | set[Sid], required: Permission
    ) -> AccessControlEntry | None:
        """First entry, by ascending order, that applies to ``sids`` and ``required``."""
        for entry in self.entries:
            if entry.matches(sids, required):
                return entry
        return None

    @property
    def inherits(self) -> bool:
        """True when unresolved checks continue at the parent."""
        return self.entries_inheriting and self.parent is not None

    # ------------------------------------------------------------------
    # Copy-on-write mutators
    # ------------------------------------------------------------------

    def insert_ace(
        self,
        index: int,
        sid: Sid,
        mask: Permission,
        granting: bool,
        *,
        audit_success: bool = False,
        audit_failure: bool = False,
    ) -> Acl:
        """Insert an entry at ``index``; later entries move up by one.

        Raises:
            AceIndexError: If ``index`` is outside ``0..len(entries)``.
            PermissionRegistrationError: If ``mask`` is empty.
        """
        if index < 0 or index > len(self.entries):
            raise AceIndexError(index, len(self.entries), inserting=True)
        if not mask:
            msg = "Cannot add an entry with an empty permission mask"
            raise PermissionRegistrationError(msg)

        new_entry = AccessControlEntry(
            order=index,
            sid=sid,
            mask=mask,
            granting=granting,
            audit_success=audit_success,
            audit_failure=audit_failure,
        )
        entries = (*self.entries[:index], new_entry, *self.entries[index:])
        return replace(self, entries=_renumber(entries))

    def delete_ace(self, index: int) -> Acl:
        """Remove the entry at ``index``; later entries move down by one."""
        self._check_index(index)
        entries = (*self.entries[:index], *self.entries[index + 1 :])
        return replace(self, entries=_renumber(entries))

    def remove_sid(self, sid: Sid) -> Acl:
        """Remove every entry belonging to ``sid``."""
        entries = tuple(entry for entry in self.entries if entry.sid != sid)
        return replace(self, entries=_renumber(entries))

    def update_audit(self, index: int, *, success: bool, failure: bool) -> Acl:
        self._check_index(index)
        updated = replace(self.entries[index], audit_success=success, audit_failure=failure)
        entries = (*self.entries[:index], updated, *self.entries[index + 1 :])
        return replace(self, entries=entries)

    def with_owner(self, owner: Sid) -> Acl:
        return replace(self, owner=owner)

    def with_parent(self, parent: ObjectIdentity | None) -> Acl:
        return replace(self, parent=parent)

    def with_entries_inheriting(self, entries_inheriting: bool) -> Acl:
        return replace(self, entries_inheriting=entries_inheriting)

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self.entries):
            raise AceIndexError(index, len(self.entries))


def _renumber(entries: Iterable[AccessControlEntry]) -> tuple[AccessControlEntry, ...]:
    return tuple(
        entry if entry.order == position else replace(entry, order=position)
        for position, entry in enumerate(entries)
    )


__all__ = ["AccessControlEntry", "Acl"]
