"""Tests for Prometheus metrics."""

from __future__ import annotations

import random

from prometheus_client import REGISTRY

from persistid.core.ids import IdentifierAllocator
from persistid.core.models import LiveObject
from persistid.core.objects import InMemoryObjectSource
from persistid.core.registry import DuplicateIdentifierError, ScopedRegistry
from persistid.core.validation import validate_registry
from persistid.metrics import (
    ALLOCATIONS_TOTAL,
    DISCREPANCIES_TOTAL,
    DUPLICATE_REJECTIONS_TOTAL,
    REGISTERED_IDENTIFIERS,
    REGISTERED_SCOPES,
    SCOPES_REMOVED_TOTAL,
)


class TestMetricsDefinitions:
    def test_gauges_follow_registry(self) -> None:
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        registry.register("sceneB", 2)
        assert REGISTERED_IDENTIFIERS._value.get() == 2.0
        assert REGISTERED_SCOPES._value.get() == 2.0

        registry.remove_scope("sceneA")
        assert REGISTERED_IDENTIFIERS._value.get() == 1.0
        assert REGISTERED_SCOPES._value.get() == 1.0

    def test_allocation_counter(self) -> None:
        before = ALLOCATIONS_TOTAL._value.get()
        IdentifierAllocator(ScopedRegistry(), rng=random.Random(3)).allocate("sceneA")
        assert ALLOCATIONS_TOTAL._value.get() == before + 1

    def test_duplicate_counter(self) -> None:
        registry = ScopedRegistry()
        registry.register("sceneA", 42)
        before = DUPLICATE_REJECTIONS_TOTAL._value.get()
        try:
            registry.register("sceneB", 42)
        except DuplicateIdentifierError:
            pass
        assert DUPLICATE_REJECTIONS_TOTAL._value.get() == before + 1

    def test_scope_removed_counter(self) -> None:
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        before = SCOPES_REMOVED_TOTAL._value.get()
        registry.remove_scope("sceneA")
        registry.remove_scope("sceneA")
        assert SCOPES_REMOVED_TOTAL._value.get() == before + 1

    def test_discrepancies_by_kind(self) -> None:
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        counter = DISCREPANCIES_TOTAL.labels(kind="orphaned_identifier")
        before = counter._value.get()
        validate_registry(registry, InMemoryObjectSource([LiveObject(key="a", scope="sceneB")]))
        assert counter._value.get() == before + 1


class TestMetricsInRegistry:
    def test_metrics_registered(self) -> None:
        metric_names = [m.name for m in REGISTRY.collect()]

        # Counters don't have the _total suffix in the name attribute
        assert "persistid_registered_identifiers" in metric_names
        assert "persistid_allocations" in metric_names
        assert "persistid_discrepancies" in metric_names
