"""ACL engine exceptions.

Custom exceptions for ACL administration and lookup that provide better
error messages and typing than raw SQLAlchemy or Redis exceptions.

Only mutation paths raise data errors (NotFoundError, AlreadyExistsError,
AccessDeniedError, CycleError, ChildrenExistError). Permission evaluation
never raises for "no rule matched"; it returns False. InfrastructureError is
the single error an evaluation may surface, and callers must not render it
as an access-denied decision.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from object_acl.core.acl.identity import ObjectIdentity


class AclError(Exception):
    """Base exception for ACL operations.

    Attributes:
        message: Human-readable error description
        details: Structured context (object identity, index, ...)
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize ACL error.

        Args:
            message: Error description
            details: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with details."""
        if self.details:
            details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class NotFoundError(AclError):
    """No Acl exists for an object identity on a mutation path.

    The evaluation path treats a missing Acl as a deny, never as this error.
    """

    def __init__(self, object_identity: ObjectIdentity, what: str = "Acl"):
        """Initialize not found error.

        Args:
            object_identity: Identity that was looked up
            what: Name of the missing thing (e.g., "Acl", "Parent Acl")
        """
        self.object_identity = object_identity
        super().__init__(
            f"{what} not found for {object_identity}",
            details={
                "type": object_identity.type_name,
                "id": object_identity.identifier,
            },
        )

    def __repr__(self) -> str:
        """Repr for debugging."""
        return f"NotFoundError(object_identity={self.object_identity!r})"


class AlreadyExistsError(AclError):
    """An Acl already exists for the object identity passed to create_acl."""

    def __init__(self, object_identity: ObjectIdentity):
        self.object_identity = object_identity
        super().__init__(
            f"Acl already exists for {object_identity}",
            details={
                "type": object_identity.type_name,
                "id": object_identity.identifier,
            },
        )


class CycleError(AclError):
    """Assigning a parent would make the parent chain loop back.

    Attributes:
        object_identity: Acl whose parent was being changed
        parent: Proposed parent
        chain: Parent chain walked from the proposed parent up to the loop
    """

    def __init__(
        self,
        object_identity: ObjectIdentity,
        parent: ObjectIdentity,
        chain: Sequence[ObjectIdentity] = (),
    ):
        self.object_identity = object_identity
        self.parent = parent
        self.chain = tuple(chain)
        super().__init__(
            f"Setting parent of {object_identity} to {parent} would create a cycle",
            details={"chain": " -> ".join(str(oi) for oi in self.chain)}
            if self.chain
            else None,
        )


class ChildrenExistError(AclError):
    """Non-cascading delete blocked because other Acls name this one as parent."""

    def __init__(
        self,
        object_identity: ObjectIdentity,
        children: Sequence[ObjectIdentity],
    ):
        self.object_identity = object_identity
        self.children = tuple(children)
        super().__init__(
            f"Cannot delete {object_identity}: {len(self.children)} child Acl(s) exist",
            details={"children": [str(child) for child in self.children]},
        )


class AccessDeniedError(AclError):
    """The acting sids may not make this kind of change to an Acl.

    Attributes:
        object_identity: Acl the change was aimed at
        change_type: Kind of change that was refused
    """

    def __init__(self, object_identity: ObjectIdentity, change_type: str):
        self.object_identity = object_identity
        self.change_type = change_type
        super().__init__(
            f"Not allowed to make {change_type} changes to {object_identity}",
            details={
                "type": object_identity.type_name,
                "id": object_identity.identifier,
            },
        )


class InfrastructureError(AclError):
    """Repository or cache backend failure, including timeouts.

    Distinct from a deny decision. The original exception is chained as
    ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = dict(details or {})
        if operation:
            merged["operation"] = operation
        self.operation = operation
        super().__init__(message, details=merged)


class AceIndexError(AclError, IndexError):
    """ACE index outside the entry list of an Acl."""

    def __init__(self, index: int, size: int, *, inserting: bool = False):
        self.index = index
        self.size = size
        upper = size if inserting else size - 1
        super().__init__(
            f"ACE index {index} out of range",
            details={"valid_range": f"0..{upper}" if upper >= 0 else "empty"},
        )


class PermissionRegistrationError(AclError, ValueError):
    """Invalid permission mask, name, or custom registration."""


__all__ = [
    "AccessDeniedError",
    "AceIndexError",
    "AclError",
    "AlreadyExistsError",
    "ChildrenExistError",
    "CycleError",
    "InfrastructureError",
    "NotFoundError",
    "PermissionRegistrationError",
]
