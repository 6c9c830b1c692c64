"""Object identities: the ``(type, id)`` key of one securable instance."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True, slots=True, order=True)
class ObjectIdentity:
    """Stable key of a securable domain object.

    Attributes:
        type_name: Domain type, stored in ``acl_class.class``
        identifier: Instance id, stored in ``acl_object_identity.object_id_identity``
    """

    type_name: str
    identifier: int

    def __post_init__(self) -> None:
        if not self.type_name:
            msg = "ObjectIdentity type_name must not be empty"
            raise ValueError(msg)
        if isinstance(self.identifier, bool) or not isinstance(self.identifier, int):
            msg = f"ObjectIdentity identifier must be an int, got {type(self.identifier).__name__}"
            raise TypeError(msg)
        if not INT64_MIN <= self.identifier <= INT64_MAX:
            msg = "ObjectIdentity identifier must fit a signed 64-bit integer"
            raise ValueError(msg)

    @classmethod
    def for_object(cls, obj: Any, type_name: str | None = None) -> ObjectIdentity:
        """Derive the identity of a domain object from its class name and ``id``.

        Args:
            obj: Domain object exposing an integer ``id`` attribute
            type_name: Override for the type name (defaults to the class name)

        Raises:
            ValueError: If the object has no ``id``.
        """
        identifier = getattr(obj, "id", None)
        if identifier is None:
            msg = f"{type(obj).__name__} has no id; persist it before securing it"
            raise ValueError(msg)
        return cls(type_name or type(obj).__name__, int(identifier))

    @property
    def cache_key(self) -> str:
        """Key used by cache stores."""
        return f"{self.type_name}:{self.identifier}"

    def __str__(self) -> str:
        return f"{self.type_name}#{self.identifier}"


__all__ = ["ObjectIdentity"]
