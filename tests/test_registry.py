"""Tests for the scoped identifier registry."""

import pytest

from persistid.core.models import Identifier, RegistryState
from persistid.core.registry import (
    DuplicateIdentifierError,
    ScopedRegistry,
    UnknownScopeError,
)
from persistid.core.state import RegistryStore


class FailingStore(RegistryStore):
    """Store whose save can be switched to fail."""

    def __init__(self, state_dir):
        super().__init__(state_dir)
        self.fail = False

    def save(self, state):
        if self.fail:
            raise OSError("disk full")
        super().save(state)


class TestRegister:
    def test_register_and_query(self):
        registry = ScopedRegistry()
        assert registry.register("sceneA", 42) == Identifier(42)
        assert registry.contains(42)
        assert registry.contains(Identifier(42))
        assert registry.scope_of(42) == "sceneA"
        assert registry.identifiers_in_scope("sceneA") == frozenset({Identifier(42)})
        assert registry.registered_count() == 1

    def test_duplicate_in_other_scope_rejected(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 42)
        with pytest.raises(DuplicateIdentifierError) as exc_info:
            registry.register("sceneB", 42)
        assert exc_info.value.existing_scope == "sceneA"
        assert exc_info.value.identifier == Identifier(42)
        assert registry.registered_count() == 1
        assert not registry.has_scope("sceneB")

    def test_duplicate_in_same_scope_rejected(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 42)
        with pytest.raises(DuplicateIdentifierError):
            registry.register("sceneA", 42)
        assert registry.registered_count() == 1

    def test_zero_rejected(self):
        registry = ScopedRegistry()
        with pytest.raises(ValueError):
            registry.register("sceneA", 0)

    def test_empty_scope_rejected(self):
        registry = ScopedRegistry()
        with pytest.raises(ValueError):
            registry.register("", 5)

    def test_out_of_range_rejected(self):
        registry = ScopedRegistry()
        with pytest.raises(ValueError):
            registry.register("sceneA", 1 << 32)

    def test_scopes_created_implicitly(self):
        registry = ScopedRegistry()
        registry.register("sceneB", 2)
        registry.register("sceneA", 1)
        assert registry.scopes() == ["sceneA", "sceneB"]
        assert registry.registered_scope_count() == 2


class TestUnregister:
    def test_unregister_present(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        registry.register("sceneA", 2)
        assert registry.unregister("sceneA", 1) is True
        assert not registry.contains(1)
        assert registry.identifiers_in_scope("sceneA") == frozenset({Identifier(2)})

    def test_unregister_absent_is_noop(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        assert registry.unregister("sceneA", 99) is False
        assert registry.unregister("nowhere", 1) is False
        assert registry.contains(1)

    def test_unregister_twice_is_idempotent(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        registry.unregister("sceneA", 1)
        assert registry.unregister("sceneA", 1) is False

    def test_last_member_drops_scope(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        registry.unregister("sceneA", 1)
        assert not registry.has_scope("sceneA")

    def test_unregister_id_finds_scope(self):
        registry = ScopedRegistry()
        registry.register("sceneB", 8)
        assert registry.unregister_id(8) is True
        assert registry.unregister_id(8) is False
        assert registry.registered_count() == 0


class TestRemoveScope:
    def test_remove_scope(self):
        registry = ScopedRegistry()
        for value in (1, 2, 3):
            registry.register("sceneA", value)
        registry.register("sceneB", 4)

        assert registry.remove_scope("sceneA") == 3
        assert registry.identifiers_in_scope("sceneA") == frozenset()
        for value in (1, 2, 3):
            assert not registry.contains(value)
        assert registry.contains(4)
        assert registry.registered_count() == 1

    def test_remove_unknown_scope_is_noop(self):
        registry = ScopedRegistry()
        assert registry.remove_scope("ghost") == 0

    def test_removed_values_can_be_registered_again(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        registry.remove_scope("sceneA")
        registry.register("sceneB", 1)
        assert registry.scope_of(1) == "sceneB"


class TestRenameAndEntry:
    def test_rename_moves_identifiers(self):
        registry = ScopedRegistry()
        registry.register("old", 1)
        registry.register("old", 2)
        assert registry.rename_scope("old", "new") == 2
        assert not registry.has_scope("old")
        assert registry.scope_of(1) == "new"

    def test_rename_merges_into_existing(self):
        registry = ScopedRegistry()
        registry.register("old", 1)
        registry.register("new", 2)
        registry.rename_scope("old", "new")
        assert registry.identifiers_in_scope("new") == frozenset({Identifier(1), Identifier(2)})

    def test_rename_unknown_scope_raises(self):
        registry = ScopedRegistry()
        with pytest.raises(UnknownScopeError):
            registry.rename_scope("ghost", "new")

    def test_entry(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 3)
        entry = registry.entry("sceneA")
        assert entry.scope == "sceneA"
        assert entry.members == frozenset({Identifier(3)})

    def test_entry_unknown_scope_raises(self):
        registry = ScopedRegistry()
        with pytest.raises(UnknownScopeError):
            registry.entry("ghost")

    def test_clear(self):
        registry = ScopedRegistry()
        registry.register("sceneA", 1)
        registry.register("sceneB", 2)
        assert registry.clear() == 2
        assert registry.registered_count() == 0
        assert registry.scopes() == []


class TestGlobalUniqueness:
    def test_count_matches_distinct_identifiers(self):
        registry = ScopedRegistry()
        for i in range(1, 50):
            registry.register(f"scene{i % 5}", i)
        for i in range(1, 50, 3):
            registry.unregister_id(i)
        registry.remove_scope("scene2")
        all_ids = registry.all_identifiers()
        assert registry.registered_count() == len(all_ids)
        per_scope = [registry.identifiers_in_scope(s) for s in registry.scopes()]
        assert sum(len(s) for s in per_scope) == len(frozenset().union(*per_scope))


class TestLoad:
    def test_from_state_drops_zero_and_duplicates(self):
        state = RegistryState(scopes={"b": [5, 0, 6], "a": [5, 7]})
        registry = ScopedRegistry.from_state(state)
        assert registry.scope_of(5) == "a"
        assert registry.identifiers_in_scope("b") == frozenset({Identifier(6)})
        assert not registry.contains(0)
        assert len(registry.load_issues) == 2

    def test_to_state_is_sorted(self):
        registry = ScopedRegistry()
        registry.register("b", 9)
        registry.register("a", 3)
        registry.register("a", 1)
        assert registry.to_state() == RegistryState(scopes={"a": [1, 3], "b": [9]})


class TestPersistence:
    def test_every_mutation_is_saved(self, tmp_path):
        store = RegistryStore(tmp_path)
        registry = ScopedRegistry(store=store)
        registry.register("sceneA", 1)
        assert store.load().scopes == {"sceneA": [1]}
        registry.register("sceneB", 2)
        registry.unregister("sceneA", 1)
        assert store.load().scopes == {"sceneB": [2]}
        registry.remove_scope("sceneB")
        assert store.load().scopes == {}

    def test_load_round_trip(self, tmp_path):
        store = RegistryStore(tmp_path)
        registry = ScopedRegistry(store=store)
        registry.register("sceneA", 10)
        registry.register("sceneB", 20)

        reloaded = ScopedRegistry.load(store)
        assert reloaded.to_state() == registry.to_state()

    def test_failed_save_rolls_back_register(self, tmp_path):
        store = FailingStore(tmp_path)
        registry = ScopedRegistry(store=store)
        registry.register("sceneA", 1)
        store.fail = True
        with pytest.raises(OSError):
            registry.register("sceneB", 2)
        assert not registry.contains(2)
        assert not registry.has_scope("sceneB")

    def test_failed_save_rolls_back_remove_scope(self, tmp_path):
        store = FailingStore(tmp_path)
        registry = ScopedRegistry(store=store)
        registry.register("sceneA", 1)
        store.fail = True
        with pytest.raises(OSError):
            registry.remove_scope("sceneA")
        assert registry.contains(1)
        assert registry.scope_of(1) == "sceneA"

    def test_failed_save_rolls_back_unregister(self, tmp_path):
        store = FailingStore(tmp_path)
        registry = ScopedRegistry(store=store)
        registry.register("sceneA", 1)
        store.fail = True
        with pytest.raises(OSError):
            registry.unregister_id(1)
        assert registry.scope_of(1) == "sceneA"
