"""Permission bitmasks.

A Permission is an integer mask. The five base permissions each own one
reserved bit; applications may register further single-bit permissions on
unreserved bits through a PermissionFactory.

Usage:
    >>> from object_acl.core.acl.permission import BasePermission
    >>> rw = BasePermission.READ | BasePermission.WRITE
    >>> rw.mask
    3
    >>> rw.intersects(BasePermission.WRITE)
    True
    >>> [p.mask for p in rw.atomic()]
    [1, 2]

Custom permissions:
    >>> factory = PermissionFactory()
    >>> APPROVE = factory.register("APPROVE", 1 << 5, code="P")
    >>> factory.build_from_name("approve") == APPROVE
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from object_acl.core.exceptions import PermissionRegistrationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

# The acl_entry.mask column is a 32-bit INTEGER
MASK_BITS = 32
MAX_MASK = (1 << MASK_BITS) - 1

RESERVED_ON = "*"
RESERVED_OFF = "."


@dataclass(frozen=True, slots=True, eq=False)
class Permission:
    """Immutable permission mask.

    Equality and hashing use the mask only; ``code`` is the single character
    shown for the permission's bit in ``pattern``.
    """

    mask: int
    code: str = RESERVED_ON

    def __post_init__(self) -> None:
        if not isinstance(self.mask, int) or isinstance(self.mask, bool):
            msg = f"Permission mask must be an int, got {type(self.mask).__name__}"
            raise PermissionRegistrationError(msg)
        if self.mask < 0 or self.mask > MAX_MASK:
            msg = "Permission mask outside the 32-bit range"
            raise PermissionRegistrationError(msg, details={"mask": self.mask})
        if len(self.code) != 1 or self.code == RESERVED_OFF:
            msg = "Permission code must be one character other than '.'"
            raise PermissionRegistrationError(msg, details={"code": self.code})

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Permission):
            return self.mask == other.mask
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.mask)

    def __or__(self, other: Permission) -> Permission:
        if not isinstance(other, Permission):
            return NotImplemented
        return Permission(self.mask | other.mask)

    def __and__(self, other: Permission) -> Permission:
        if not isinstance(other, Permission):
            return NotImplemented
        return Permission(self.mask & other.mask)

    def __bool__(self) -> bool:
        return self.mask != 0

    def __contains__(self, other: Permission) -> bool:
        """True if every bit of ``other`` is set in this mask."""
        return (self.mask & other.mask) == other.mask

    def intersects(self, other: Permission | int) -> bool:
        """Return True if the two masks share at least one set bit."""
        other_mask = other.mask if isinstance(other, Permission) else other
        return (self.mask & other_mask) != 0

    @property
    def is_atomic(self) -> bool:
        """True for a single-bit permission."""
        return self.mask != 0 and (self.mask & (self.mask - 1)) == 0

    def atomic(self) -> Iterator[Permission]:
        """Yield the single-bit permissions in this mask, lowest bit first."""
        remaining = self.mask
        while remaining:
            bit = remaining & -remaining
            yield Permission(bit)
            remaining ^= bit

    @property
    def pattern(self) -> str:
        """Render the mask as a 32-character pattern, highest bit first.

        Set bits show the permission code when the permission is atomic,
        ``*`` otherwise; clear bits show ``.``.
        """
        chars = []
        for bit in range(MASK_BITS - 1, -1, -1):
            if self.mask & (1 << bit):
                chars.append(self.code if self.is_atomic else RESERVED_ON)
            else:
                chars.append(RESERVED_OFF)
        return "".join(chars)

    def __repr__(self) -> str:
        return f"Permission(mask={self.mask}, pattern={self.pattern.lstrip('.')!r})"


class BasePermission:
    """Built-in permissions. Their bits are reserved and never reassigned."""

    READ: ClassVar[Permission] = Permission(1 << 0, "R")
    WRITE: ClassVar[Permission] = Permission(1 << 1, "W")
    CREATE: ClassVar[Permission] = Permission(1 << 2, "C")
    DELETE: ClassVar[Permission] = Permission(1 << 3, "D")
    ADMINISTER: ClassVar[Permission] = Permission(1 << 4, "A")

    @classmethod
    def all(cls) -> tuple[Permission, ...]:
        """All base permissions in bit order."""
        return (cls.READ, cls.WRITE, cls.CREATE, cls.DELETE, cls.ADMINISTER)


RESERVED_MASK = 0
for _permission in BasePermission.all():
    RESERVED_MASK |= _permission.mask
del _permission

# Alternate spellings accepted for ADMINISTER
_ALIASES = {"ADMINISTRATION": "ADMINISTER", "ADMIN": "ADMINISTER"}


class PermissionFactory:
    """Registry of named permissions.

    Base permissions are pre-registered. Custom permissions must claim a
    single unreserved, unclaimed bit. Each factory instance is independent.
    """

    def __init__(self) -> None:
        self._by_name: dict[str, Permission] = {}
        self._by_mask: dict[int, tuple[str, Permission]] = {}
        self._register_base()

    def _register_base(self) -> None:
        for name in ("READ", "WRITE", "CREATE", "DELETE", "ADMINISTER"):
            permission = getattr(BasePermission, name)
            self._by_name[name] = permission
            self._by_mask[permission.mask] = (name, permission)

    def register(self, name: str, mask: int, code: str = RESERVED_ON) -> Permission:
        """Register a custom single-bit permission.

        Args:
            name: Unique permission name (case-insensitive)
            mask: Single-bit mask outside the reserved base bits
            code: Pattern character for the permission

        Returns:
            The registered Permission

        Raises:
            PermissionRegistrationError: On a reserved, claimed, or multi-bit mask,
                or a duplicate name.
        """
        key = name.strip().upper()
        if not key:
            msg = "Permission name must not be empty"
            raise PermissionRegistrationError(msg)
        permission = Permission(mask, code)
        if not permission.is_atomic:
            msg = "Custom permissions must occupy exactly one bit"
            raise PermissionRegistrationError(msg, details={"name": key, "mask": mask})
        if mask & RESERVED_MASK:
            msg = "Mask collides with a reserved base permission bit"
            raise PermissionRegistrationError(msg, details={"name": key, "mask": mask})
        if mask in self._by_mask:
            existing, _ = self._by_mask[mask]
            msg = "Mask already registered"
            raise PermissionRegistrationError(
                msg, details={"name": key, "mask": mask, "registered_as": existing}
            )
        if key in self._by_name or key in _ALIASES:
            msg = "Permission name already registered"
            raise PermissionRegistrationError(msg, details={"name": key})

        self._by_name[key] = permission
        self._by_mask[mask] = (key, permission)
        return permission

    def build_from_mask(self, mask: int) -> Permission:
        """Resolve a mask, reusing registered permissions for known single bits."""
        registered = self._by_mask.get(mask)
        if registered is not None:
            return registered[1]
        return Permission(mask)

    def build_from_name(self, name: str) -> Permission:
        """Resolve a permission by name.

        Raises:
            PermissionRegistrationError: If the name is unknown.
        """
        key = name.strip().upper()
        key = _ALIASES.get(key, key)
        try:
            return self._by_name[key]
        except KeyError:
            msg = "Unknown permission name"
            raise PermissionRegistrationError(msg, details={"name": name}) from None

    def build_from_names(self, names: Iterable[str]) -> Permission:
        """Resolve and compose several permission names."""
        mask = 0
        for name in names:
            mask |= self.build_from_name(name).mask
        return self.build_from_mask(mask)

    def resolve(self, value: Permission | str | int) -> Permission:
        """Coerce a Permission, a name (``"READ"``, ``"read,write"``), or a mask."""
        if isinstance(value, Permission):
            return value
        if isinstance(value, str):
            return self.build_from_names(part for part in value.split(",") if part.strip())
        if isinstance(value, int) and not isinstance(value, bool):
            return self.build_from_mask(value)
        msg = f"Cannot build a permission from {type(value).__name__}"
        raise PermissionRegistrationError(msg)

    def name_of(self, permission: Permission) -> str | None:
        """Registered name of an atomic permission, if any."""
        registered = self._by_mask.get(permission.mask)
        return registered[0] if registered else None

    def describe(self, permission: Permission) -> list[str]:
        """Names of each bit in a mask; unknown bits render as ``BIT_<n>``."""
        names = []
        for bit in permission.atomic():
            names.append(self.name_of(bit) or f"BIT_{bit.mask.bit_length() - 1}")
        return names


__all__ = [
    "MAX_MASK",
    "RESERVED_MASK",
    "BasePermission",
    "Permission",
    "PermissionFactory",
]
