"""Base class for library-level services."""

from __future__ import annotations

import logging

from object_acl.infra.logging import get_lazy_logger


class BaseService:
    """Base class for service facades.

    Loggers:
        - self.logger: Standard logger for INFO/WARNING/ERROR
        - self._lazy: Lazy logger for DEBUG (callables only run when DEBUG is on)

    Example:
        class ReportService(BaseService):
            def __init__(self, acl: AclService):
                super().__init__()
                self.acl = acl

            async def visible_reports(self, sids, reports):
                self._lazy.debug(lambda: f"filtering {len(reports)} reports")
                return await self.acl.filter_permitted(sids, reports, "read")
    """

    def __init__(self) -> None:
        class_name = self.__class__.__name__
        self.logger = logging.getLogger(class_name)
        self._lazy = get_lazy_logger(class_name)
