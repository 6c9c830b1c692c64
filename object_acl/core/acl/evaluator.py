"""Permission evaluation over Acl snapshots.

The evaluator answers "may these sids do ``required`` on ``target``?":

1. Fetch the target's Acl through the cache. No Acl means deny.
2. Scan entries by ascending order. The first entry whose sid is in the
   caller's sids and whose mask intersects ``required`` decides the outcome.
3. With no match, continue at the parent when the Acl inherits.
4. Otherwise deny.

"Not authorized" is a False return, never an exception. Infrastructure
failures (InfrastructureError) and cancellation propagate unchanged and must
not be treated as a deny.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from object_acl.core.acl.audit import AuditLogger
from object_acl.core.exceptions import InfrastructureError
from object_acl.infra.metrics.prometheus import acl_evaluations_total

if TYPE_CHECKING:
    from collections.abc import Iterable

    from object_acl.core.acl.identity import ObjectIdentity
    from object_acl.core.acl.model import AccessControlEntry
    from object_acl.core.acl.permission import Permission
    from object_acl.core.acl.sid import Sid
    from object_acl.infra.cache.acl_cache import AclCache

logger = logging.getLogger(__name__)

# Pending walk of one target: (node to inspect next, undecided bits, nodes visited)
type _Step = tuple[ObjectIdentity, tuple[Permission, ...], frozenset[ObjectIdentity]]


class PermissionEvaluator:
    """Decides grant or deny for a set of sids against an object identity.

    Example:
        >>> evaluator = PermissionEvaluator(cache)
        >>> sids = sids_for("alice", ["ROLE_EDITOR"])
        >>> await evaluator.has_permission(sids, ObjectIdentity("Document", 1), BasePermission.READ)
        True
    """

    def __init__(self, cache: AclCache, audit_logger: AuditLogger | None = None) -> None:
        self._cache = cache
        self._audit = audit_logger or AuditLogger()

    async def evaluate(
        self,
        sids: Iterable[Sid],
        target: ObjectIdentity,
        required: Permission,
    ) -> bool:
        """Evaluate one permission against ``target`` and its parent chain.

        ``required`` is matched by bit intersection; use has_permission for
        composite permissions.

        Raises:
            InfrastructureError: If an Acl could not be loaded.
        """
        sid_set = frozenset(sids)
        try:
            granted = await self._walk(sid_set, target, required)
        except InfrastructureError:
            acl_evaluations_total.labels(decision="error").inc()
            raise
        acl_evaluations_total.labels(decision="granted" if granted else "denied").inc()
        return granted

    async def has_permission(
        self,
        sids: Iterable[Sid],
        target: ObjectIdentity,
        permission: Permission,
    ) -> bool:
        """True only if every atomic bit of ``permission`` is granted.

        Each bit is evaluated on its own, so READ|WRITE may be satisfied by
        two different entries. An empty permission is denied.
        """
        if not permission:
            return False
        sid_tuple = tuple(sids)
        for bit in permission.atomic():
            if not await self.evaluate(sid_tuple, target, bit):
                return False
        return True

    async def filter_permitted(
        self,
        sids: Iterable[Sid],
        targets: Iterable[ObjectIdentity],
        permission: Permission,
    ) -> list[ObjectIdentity]:
        """Targets on which every bit of ``permission`` is granted, in input order.

        Acls are fetched one batch per level of the parent hierarchy instead
        of once per target, so filtering N objects costs a handful of cache
        batches rather than N lookups.
        """
        targets = list(targets)
        if not permission or not targets:
            return []

        sid_set = frozenset(sids)
        bits = tuple(permission.atomic())
        decisions: dict[ObjectIdentity, bool] = {}
        frontier: dict[ObjectIdentity, _Step] = {
            target: (target, bits, frozenset((target,))) for target in dict.fromkeys(targets)
        }

        try:
            while frontier:
                acls = await self._cache.get_batch(node for node, _, _ in frontier.values())
                next_frontier: dict[ObjectIdentity, _Step] = {}
                for target, (node, remaining, visited) in frontier.items():
                    acl = acls.get(node)
                    if acl is None:
                        decisions[target] = False
                        continue

                    undecided: list[Permission] = []
                    denied = False
                    for bit in remaining:
                        entry = acl.first_match(sid_set, bit)
                        if entry is None:
                            undecided.append(bit)
                            continue
                        self._audit_decision(entry, node, bit)
                        if not entry.granting:
                            denied = True
                            break

                    if denied:
                        decisions[target] = False
                    elif not undecided:
                        decisions[target] = True
                    elif not acl.inherits or acl.parent is None:
                        decisions[target] = False
                    elif acl.parent in visited:
                        self._log_cycle(target, (*visited, acl.parent))
                        decisions[target] = False
                    else:
                        next_frontier[target] = (acl.parent, tuple(undecided), visited | {acl.parent})
                frontier = next_frontier
        except InfrastructureError:
            acl_evaluations_total.labels(decision="error").inc()
            raise

        granted = sum(1 for decision in decisions.values() if decision)
        if granted:
            acl_evaluations_total.labels(decision="granted").inc(granted)
        if len(decisions) - granted:
            acl_evaluations_total.labels(decision="denied").inc(len(decisions) - granted)
        return [target for target in targets if decisions.get(target)]

    async def _walk(
        self,
        sids: frozenset[Sid],
        target: ObjectIdentity,
        required: Permission,
    ) -> bool:
        visited: list[ObjectIdentity] = []
        current: ObjectIdentity | None = target
        while current is not None:
            if current in visited:
                self._log_cycle(target, (*visited, current))
                return False
            visited.append(current)

            acl = await self._cache.get(current)
            if acl is None:
                # Fail closed: no Acl, or a parent that no longer exists
                return False

            entry = acl.first_match(sids, required)
            if entry is not None:
                self._audit_decision(entry, current, required)
                return entry.granting

            current = acl.parent if acl.inherits else None
        return False

    def _audit_decision(
        self,
        entry: AccessControlEntry,
        object_identity: ObjectIdentity,
        required: Permission,
    ) -> None:
        self._audit.log_if_needed(entry.granting, entry, object_identity, required)

    @staticmethod
    def _log_cycle(target: ObjectIdentity, chain: Iterable[ObjectIdentity]) -> None:
        logger.error(
            "Parent chain loops; denying",
            extra={"target": str(target), "chain": " -> ".join(str(oi) for oi in chain)},
        )


__all__ = ["PermissionEvaluator"]
