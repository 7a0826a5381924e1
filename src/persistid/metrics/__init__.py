"""Prometheus metrics for persistid."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

# Registry contents
REGISTERED_IDENTIFIERS = Gauge(
    "persistid_registered_identifiers", "Identifiers currently registered"
)
REGISTERED_SCOPES = Gauge("persistid_registered_scopes", "Scopes with at least one identifier")

# Allocation
ALLOCATIONS_TOTAL = Counter("persistid_allocations_total", "Identifiers allocated")
ALLOCATION_COLLISIONS_TOTAL = Counter(
    "persistid_allocation_collisions_total",
    "Candidate values rejected because they were zero or already registered",
)
ALLOCATIONS_EXHAUSTED_TOTAL = Counter(
    "persistid_allocations_exhausted_total", "Allocations that hit the retry cap"
)

# Registry mutations
DUPLICATE_REJECTIONS_TOTAL = Counter(
    "persistid_duplicate_rejections_total", "Registrations rejected as duplicates"
)
SCOPES_REMOVED_TOTAL = Counter("persistid_scopes_removed_total", "Scope entries removed")

# Validation
DISCREPANCIES_TOTAL = Counter(
    "persistid_discrepancies_total", "Validation findings", ["kind"]
)

__all__ = [
    "REGISTERED_IDENTIFIERS",
    "REGISTERED_SCOPES",
    "ALLOCATIONS_TOTAL",
    "ALLOCATION_COLLISIONS_TOTAL",
    "ALLOCATIONS_EXHAUSTED_TOTAL",
    "DUPLICATE_REJECTIONS_TOTAL",
    "SCOPES_REMOVED_TOTAL",
    "DISCREPANCIES_TOTAL",
]
