"""Security identities.

A Sid is either a principal (a specific user) or a granted authority
(a role or group). Equality is structural: kind plus name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class SidKind(str, Enum):
    """Variant tag of a Sid.

    Stored in ``acl_sid.principal`` as a boolean (True for PRINCIPAL).
    """

    PRINCIPAL = "principal"
    AUTHORITY = "authority"


@dataclass(frozen=True, slots=True)
class Sid:
    """Security identity: ``Principal(name)`` or ``Authority(name)``."""

    kind: SidKind
    name: str

    def __post_init__(self) -> None:
        if not self.name:
            msg = "Sid name must not be empty"
            raise ValueError(msg)

    @classmethod
    def principal(cls, name: str) -> Sid:
        return cls(SidKind.PRINCIPAL, name)

    @classmethod
    def authority(cls, name: str) -> Sid:
        return cls(SidKind.AUTHORITY, name)

    @classmethod
    def from_row(cls, principal: bool, name: str) -> Sid:
        """Build from the ``acl_sid`` (principal, sid) column pair."""
        return cls(SidKind.PRINCIPAL if principal else SidKind.AUTHORITY, name)

    @property
    def is_principal(self) -> bool:
        return self.kind is SidKind.PRINCIPAL

    def __str__(self) -> str:
        label = "Principal" if self.is_principal else "Authority"
        return f"{label}({self.name})"


def sids_for(username: str | None, authorities: Iterable[str] = ()) -> tuple[Sid, ...]:
    """Build the evaluation context for a user.

    Returns ``[Principal(username)] + [Authority(a) for a in authorities]``,
    de-duplicated in order. Anonymous callers (``username=None``) only carry
    their authorities.

    Example:
        >>> sids_for("alice", ["ROLE_USER", "ROLE_EDITOR"])
        (Sid(kind=<SidKind.PRINCIPAL: 'principal'>, name='alice'), ...)
    """
    sids: list[Sid] = []
    if username:
        sids.append(Sid.principal(username))
    for authority in authorities:
        sid = Sid.authority(authority)
        if sid not in sids:
            sids.append(sid)
    return tuple(sids)


__all__ = ["Sid", "SidKind", "sids_for"]
