"""Audit records for ACL decisions.

An entry flagged ``audit_success`` produces a record whenever it grants
access; an entry flagged ``audit_failure`` produces one whenever it denies.
Records go through the ``object_acl.audit`` logger so they can be routed to
their own handler.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from object_acl.core.acl.identity import ObjectIdentity
    from object_acl.core.acl.model import AccessControlEntry
    from object_acl.core.acl.permission import Permission

AUDIT_LOGGER_NAME = "object_acl.audit"


class AuditLogger:
    """Writes audit records for entries that request them."""

    def __init__(self, logger: logging.Logger | None = None, *, enabled: bool = True) -> None:
        self._logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)
        self.enabled = enabled

    def log_if_needed(
        self,
        granted: bool,
        entry: AccessControlEntry,
        target: ObjectIdentity,
        required: Permission,
    ) -> None:
        """Log the decision made by ``entry`` if its audit flags ask for it."""
        if not self.enabled:
            return
        extra = {
            "object_type": target.type_name,
            "object_id": target.identifier,
            "sid": str(entry.sid),
            "ace_order": entry.order,
            "required_mask": required.mask,
            "ace_mask": entry.mask.mask,
        }
        if granted and entry.audit_success:
            self._logger.info("GRANTED due to ACE %s on %s", entry.order, target, extra=extra)
        elif not granted and entry.audit_failure:
            self._logger.warning("DENIED due to ACE %s on %s", entry.order, target, extra=extra)


__all__ = ["AUDIT_LOGGER_NAME", "AuditLogger"]
