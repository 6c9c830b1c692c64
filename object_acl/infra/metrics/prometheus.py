"""Prometheus metrics for the ACL engine."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram

# Custom registry so embedding services choose whether to expose these
REGISTRY = CollectorRegistry()

# Repository round trips are expected between 1ms and a few seconds
REPOSITORY_LATENCY_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
)

# Cache metrics
acl_cache_hits_total = Counter(
    "acl_cache_hits_total",
    "Total number of ACL cache hits (including cached absences)",
    ["backend"],
    registry=REGISTRY,
)

acl_cache_misses_total = Counter(
    "acl_cache_misses_total",
    "Total number of ACL cache misses",
    ["backend"],
    registry=REGISTRY,
)

acl_cache_invalidations_total = Counter(
    "acl_cache_invalidations_total",
    "Total number of invalidated ACL cache entries",
    ["backend", "scope"],
    registry=REGISTRY,
)

acl_cache_stale_discards_total = Counter(
    "acl_cache_stale_discards_total",
    "Read-through results discarded because the key was invalidated mid-fetch",
    ["backend"],
    registry=REGISTRY,
)

acl_cache_store_errors_total = Counter(
    "acl_cache_store_errors_total",
    "Cache store operations that failed",
    ["backend", "operation"],
    registry=REGISTRY,
)

# Evaluation metrics
acl_evaluations_total = Counter(
    "acl_evaluations_total",
    "Permission evaluations by decision",
    ["decision"],
    registry=REGISTRY,
)

# Repository metrics
acl_repository_duration_seconds = Histogram(
    "acl_repository_duration_seconds",
    "ACL repository operation duration in seconds",
    ["operation"],
    buckets=REPOSITORY_LATENCY_BUCKETS,
    registry=REGISTRY,
)

acl_repository_errors_total = Counter(
    "acl_repository_errors_total",
    "ACL repository operations that failed with an infrastructure error",
    ["operation", "error_type"],
    registry=REGISTRY,
)
