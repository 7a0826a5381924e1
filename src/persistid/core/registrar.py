"""Per-session bookkeeping of which objects have been processed.

Nothing here is persisted. The tables only make sense relative to the
registry they were built against, so :meth:`Registrar.bind` clears them when
the active registry changes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from persistid.core.models import Identifier
from persistid.core.registry import IdLike, ScopedRegistry

logger = logging.getLogger(__name__)


class Registrar:
    """Session tracker deciding when an object needs a fresh identifier."""

    def __init__(self, registry: ScopedRegistry) -> None:
        self._registry = registry
        # object key -> identifiers it legitimately holds
        self._tracked: dict[str, set[int]] = {}
        self._processed: set[str] = set()
        # scope -> identifiers registered while the container had unsaved edits
        self._unsaved: dict[str, set[int]] = {}
        # scope -> identifiers present at the container's last save
        self._snapshots: dict[str, frozenset[int]] = {}

    @property
    def registry(self) -> ScopedRegistry:
        return self._registry

    def bind(self, registry: ScopedRegistry) -> None:
        """Switch to *registry*, dropping tracking made against the previous one."""
        if registry is self._registry:
            return
        self._registry = registry
        self.clear_tracking_data()

    def clear_tracking_data(self) -> None:
        self._tracked.clear()
        self._processed.clear()
        self._unsaved.clear()
        self._snapshots.clear()
        logger.debug("Cleared session tracking data")

    # -- Allocation decisions --------------------------------------------

    def should_allocate(self, key: str, current: IdLike, scope: str | None = None) -> bool:
        """Return True if the object *key* holding *current* needs a new identifier.

        Unassigned objects always do. An object seen for the first time is a
        copy, and does too, when its value is registered under a scope other
        than *scope* or is already tracked for a different object.
        """
        value = int(current)
        if value == 0:
            return True
        if key in self._processed:
            return False
        owner = self._registry.scope_of(value)
        if owner is None:
            return False
        if scope is not None and owner != scope:
            return True
        if value in self._tracked.get(key, ()):
            return False
        return any(other != key for other in self.holders(value))

    def is_processed(self, key: str) -> bool:
        return key in self._processed

    def mark_processed(self, key: str) -> None:
        self._processed.add(key)

    # -- Object tracking -------------------------------------------------

    def track(self, key: str, old: IdLike, new: IdLike) -> None:
        """Record that *key* now holds *new* instead of *old* (either may be zero)."""
        ids = self._tracked.setdefault(key, set())
        if int(old) != 0:
            ids.discard(int(old))
        if int(new) != 0:
            ids.add(int(new))
        if not ids:
            del self._tracked[key]

    def tracked_ids(self, key: str) -> frozenset[Identifier]:
        return frozenset(Identifier(v) for v in self._tracked.get(key, ()))

    def holders(self, identifier: IdLike) -> list[str]:
        value = int(identifier)
        return sorted(key for key, ids in self._tracked.items() if value in ids)

    def forget(self, key: str) -> frozenset[Identifier]:
        """Stop tracking *key*; returns the identifiers it held."""
        self._processed.discard(key)
        ids = self._tracked.pop(key, set())
        return frozenset(Identifier(v) for v in ids)

    @property
    def tracked_count(self) -> int:
        return len(self._tracked)

    # -- Unsaved identifiers ---------------------------------------------

    def note_unsaved(self, scope: str, identifier: IdLike) -> None:
        self._unsaved.setdefault(scope, set()).add(int(identifier))

    def unsaved_ids(self, scope: str) -> frozenset[Identifier]:
        return frozenset(Identifier(v) for v in self._unsaved.get(scope, ()))

    def discard_unsaved(self, scope: str, identifier: IdLike | None = None) -> None:
        if identifier is None:
            self._unsaved.pop(scope, None)
            return
        ids = self._unsaved.get(scope)
        if ids is not None:
            ids.discard(int(identifier))
            if not ids:
                del self._unsaved[scope]

    # -- Saved snapshots -------------------------------------------------

    def snapshot(self, scope: str, identifiers: Iterable[IdLike]) -> None:
        self._snapshots[scope] = frozenset(int(i) for i in identifiers if int(i) != 0)

    def snapshot_of(self, scope: str) -> frozenset[Identifier] | None:
        ids = self._snapshots.get(scope)
        if ids is None:
            return None
        return frozenset(Identifier(v) for v in ids)

    def matches_snapshot(self, scope: str, identifiers: Iterable[IdLike]) -> bool:
        """True if *identifiers* equal the set captured at the scope's last save."""
        saved = self._snapshots.get(scope)
        if saved is None:
            return False
        return saved == frozenset(int(i) for i in identifiers if int(i) != 0)

    def forget_scope(self, scope: str) -> None:
        self._unsaved.pop(scope, None)
        self._snapshots.pop(scope, None)
