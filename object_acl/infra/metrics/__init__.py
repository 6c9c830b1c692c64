"""Prometheus metrics."""
from __future__ import annotations

from object_acl.infra.metrics.prometheus import (
    REGISTRY,
    acl_cache_hits_total,
    acl_cache_invalidations_total,
    acl_cache_misses_total,
    acl_cache_stale_discards_total,
    acl_cache_store_errors_total,
    acl_evaluations_total,
    acl_repository_duration_seconds,
    acl_repository_errors_total,
)

__all__ = [
    "REGISTRY",
    "acl_cache_hits_total",
    "acl_cache_invalidations_total",
    "acl_cache_misses_total",
    "acl_cache_stale_discards_total",
    "acl_cache_store_errors_total",
    "acl_evaluations_total",
    "acl_repository_duration_seconds",
    "acl_repository_errors_total",
]
