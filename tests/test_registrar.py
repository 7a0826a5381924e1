"""Tests for the per-session tracker."""

from persistid.core.models import Identifier
from persistid.core.registrar import Registrar
from persistid.core.registry import ScopedRegistry


def _registrar() -> Registrar:
    registry = ScopedRegistry()
    registry.register("sceneA", 10)
    return Registrar(registry)


class TestShouldAllocate:
    def test_unassigned_always_allocates(self):
        registrar = _registrar()
        assert registrar.should_allocate("door", 0)
        registrar.mark_processed("door")
        assert registrar.should_allocate("door", Identifier(0))

    def test_unregistered_value_is_kept(self):
        registrar = _registrar()
        assert not registrar.should_allocate("door", 99)

    def test_registered_value_without_other_holder_is_kept(self):
        registrar = _registrar()
        assert not registrar.should_allocate("door", 10)

    def test_own_tracked_value_is_kept(self):
        registrar = _registrar()
        registrar.track("door", 0, 10)
        assert not registrar.should_allocate("door", 10)

    def test_copy_of_tracked_value_allocates(self):
        registrar = _registrar()
        registrar.track("door", 0, 10)
        registrar.mark_processed("door")
        assert registrar.should_allocate("door-copy", 10)

    def test_value_registered_in_other_scope_allocates(self):
        registrar = _registrar()
        assert registrar.should_allocate("door", 10, "sceneB")
        assert not registrar.should_allocate("door", 10, "sceneA")
        registrar.mark_processed("door")
        assert not registrar.should_allocate("door", 10, "sceneB")

    def test_processed_object_is_not_reconsidered(self):
        registrar = _registrar()
        registrar.track("door", 0, 10)
        registrar.mark_processed("door-copy")
        assert not registrar.should_allocate("door-copy", 10)


class TestTracking:
    def test_track_replaces_old_value(self):
        registrar = _registrar()
        registrar.track("door", 0, 10)
        registrar.track("door", 10, 11)
        assert registrar.tracked_ids("door") == frozenset({Identifier(11)})
        assert registrar.holders(10) == []
        assert registrar.holders(11) == ["door"]

    def test_track_to_zero_drops_object(self):
        registrar = _registrar()
        registrar.track("door", 0, 10)
        registrar.track("door", 10, 0)
        assert registrar.tracked_count == 0

    def test_forget(self):
        registrar = _registrar()
        registrar.track("door", 0, 10)
        registrar.mark_processed("door")
        assert registrar.forget("door") == frozenset({Identifier(10)})
        assert not registrar.is_processed("door")
        assert registrar.forget("door") == frozenset()


class TestUnsavedAndSnapshots:
    def test_unsaved_ids(self):
        registrar = _registrar()
        registrar.note_unsaved("sceneA", 10)
        registrar.note_unsaved("sceneA", 11)
        registrar.discard_unsaved("sceneA", 10)
        assert registrar.unsaved_ids("sceneA") == frozenset({Identifier(11)})
        registrar.discard_unsaved("sceneA")
        assert registrar.unsaved_ids("sceneA") == frozenset()

    def test_snapshot(self):
        registrar = _registrar()
        assert registrar.snapshot_of("sceneA") is None
        registrar.snapshot("sceneA", [Identifier(1), Identifier(0), 2])
        assert registrar.snapshot_of("sceneA") == frozenset({Identifier(1), Identifier(2)})
        assert registrar.matches_snapshot("sceneA", [2, 1])
        assert not registrar.matches_snapshot("sceneA", [1])
        assert not registrar.matches_snapshot("sceneB", [])


class TestClearing:
    def test_clear_tracking_data(self):
        registrar = _registrar()
        registrar.track("door", 0, 10)
        registrar.mark_processed("door")
        registrar.note_unsaved("sceneA", 10)
        registrar.snapshot("sceneA", [10])

        registrar.clear_tracking_data()

        assert registrar.tracked_count == 0
        assert not registrar.is_processed("door")
        assert registrar.unsaved_ids("sceneA") == frozenset()
        assert registrar.snapshot_of("sceneA") is None

    def test_bind_to_new_registry_clears(self):
        registrar = _registrar()
        registrar.track("door", 0, 10)
        registrar.mark_processed("door")

        registrar.bind(ScopedRegistry())

        assert not registrar.is_processed("door")
        assert registrar.tracked_count == 0

    def test_bind_to_same_registry_keeps_tracking(self):
        registrar = _registrar()
        registrar.mark_processed("door")
        registrar.bind(registrar.registry)
        assert registrar.is_processed("door")
