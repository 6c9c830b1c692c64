"""Database infrastructure: engine and session factory construction."""
from __future__ import annotations

from object_acl.infra.database.session import (
    create_engine,
    create_schema,
    create_session_factory,
    drop_schema,
)

__all__ = ["create_engine", "create_schema", "create_session_factory", "drop_schema"]
