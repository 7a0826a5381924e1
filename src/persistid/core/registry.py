"""Scoped registry of persistent identifiers.

The registry maps a scope key (one per container) to the set of identifiers
registered inside it. An identifier lives in at most one scope across the
whole registry; ``register`` refuses anything else.

All mutations go through :meth:`ScopedRegistry.register`,
:meth:`~ScopedRegistry.unregister`, :meth:`~ScopedRegistry.remove_scope` and
their scope-agnostic variants. When the registry is bound to a
:class:`~persistid.core.state.RegistryStore`, every mutation is saved before
the call returns; a failed save rolls the in-memory change back.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from persistid import metrics
from persistid.core.models import (
    MAX_IDENTIFIER,
    Identifier,
    RegistryState,
    ScopeEntry,
)
from persistid.core.state import RegistryStore

logger = logging.getLogger(__name__)

IdLike = Identifier | int


class DuplicateIdentifierError(ValueError):
    """Raised when registering an identifier that is already registered."""

    def __init__(self, identifier: Identifier, existing_scope: str, scope: str) -> None:
        self.identifier = identifier
        self.existing_scope = existing_scope
        self.scope = scope
        super().__init__(
            f"Identifier {identifier} is already registered in scope "
            f"'{existing_scope}' (attempted scope '{scope}')"
        )


class UnknownScopeError(LookupError):
    """Raised by operations that require an existing scope entry."""

    def __init__(self, scope: str) -> None:
        self.scope = scope
        super().__init__(f"Scope not registered: '{scope}'")


def _raw(identifier: IdLike) -> int:
    value = int(identifier)
    if not 0 <= value <= MAX_IDENTIFIER:
        raise ValueError(f"Identifier out of 32-bit range: {value}")
    return value


class ScopedRegistry:
    """In-memory scope -> identifiers mapping with a reverse index for O(1) lookups."""

    def __init__(self, store: RegistryStore | None = None) -> None:
        self._store = store
        self._entries: dict[str, set[int]] = {}
        self._owners: dict[int, str] = {}
        self.load_issues: list[str] = []

    # -- Construction ----------------------------------------------------

    @classmethod
    def load(cls, store: RegistryStore) -> ScopedRegistry:
        """Load the registry persisted in *store* and bind it for saving."""
        return cls.from_state(store.load(), store=store)

    @classmethod
    def from_state(
        cls, state: RegistryState, store: RegistryStore | None = None
    ) -> ScopedRegistry:
        """Rebuild a registry from its persisted form.

        Persisted data may have been edited by hand. Zero values are dropped
        and an identifier listed under several scopes is kept under the first
        scope in sorted order.
        """
        registry = cls(store=store)
        for scope in sorted(state.scopes):
            if not scope:
                registry._note_issue("Dropped scope with an empty key")
                continue
            for value in state.scopes[scope]:
                if value == 0:
                    registry._note_issue(f"Dropped unassigned identifier from scope '{scope}'")
                    continue
                if not 0 < value <= MAX_IDENTIFIER:
                    registry._note_issue(
                        f"Dropped out-of-range identifier {value} from scope '{scope}'"
                    )
                    continue
                owner = registry._owners.get(value)
                if owner is not None:
                    if owner != scope:
                        registry._note_issue(
                            f"Dropped {Identifier(value)} from scope '{scope}'; "
                            f"already registered in '{owner}'"
                        )
                    continue
                registry._entries.setdefault(scope, set()).add(value)
                registry._owners[value] = scope

        logger.debug(
            "Loaded registry: %d identifiers across %d scopes",
            len(registry._owners),
            len(registry._entries),
        )
        registry._update_gauges()
        return registry

    def _note_issue(self, message: str) -> None:
        logger.warning("Registry load cleanup: %s", message)
        self.load_issues.append(message)

    def to_state(self) -> RegistryState:
        return RegistryState(
            scopes={scope: sorted(ids) for scope, ids in sorted(self._entries.items())}
        )

    @property
    def store(self) -> RegistryStore | None:
        return self._store

    # -- Queries ---------------------------------------------------------

    def contains(self, identifier: IdLike) -> bool:
        """Global membership check across every scope."""
        return _raw(identifier) in self._owners

    def scope_of(self, identifier: IdLike) -> str | None:
        return self._owners.get(_raw(identifier))

    def has_scope(self, scope: str) -> bool:
        return scope in self._entries

    def scopes(self) -> list[str]:
        return sorted(self._entries)

    def entry(self, scope: str) -> ScopeEntry:
        if scope not in self._entries:
            raise UnknownScopeError(scope)
        return ScopeEntry(
            scope=scope,
            members=frozenset(Identifier(v) for v in self._entries[scope]),
        )

    def identifiers_in_scope(self, scope: str) -> frozenset[Identifier]:
        return frozenset(Identifier(v) for v in self._entries.get(scope, ()))

    def all_identifiers(self) -> frozenset[Identifier]:
        return frozenset(Identifier(v) for v in self._owners)

    def registered_count(self) -> int:
        return sum(len(ids) for ids in self._entries.values())

    def registered_scope_count(self) -> int:
        return len(self._entries)

    # -- Mutations -------------------------------------------------------

    def register(self, scope: str, identifier: IdLike) -> Identifier:
        """Register *identifier* under *scope*.

        Raises:
            ValueError: If *identifier* is the unassigned sentinel or *scope* is empty.
            DuplicateIdentifierError: If *identifier* is registered in any scope.
        """
        value = _raw(identifier)
        if value == 0:
            raise ValueError("Cannot register the unassigned identifier")
        if not scope:
            raise ValueError("Scope key must be a non-empty string")

        owner = self._owners.get(value)
        if owner is not None:
            metrics.DUPLICATE_REJECTIONS_TOTAL.inc()
            logger.warning(
                "Rejected duplicate identifier %s for scope '%s' (registered in '%s')",
                Identifier(value),
                scope,
                owner,
            )
            raise DuplicateIdentifierError(Identifier(value), owner, scope)

        created = scope not in self._entries
        self._entries.setdefault(scope, set()).add(value)
        self._owners[value] = scope

        def _undo() -> None:
            del self._owners[value]
            self._entries[scope].discard(value)
            if created:
                del self._entries[scope]

        self._commit(_undo)
        logger.debug("Registered %s in scope '%s'", Identifier(value), scope)
        return Identifier(value)

    def unregister(self, scope: str, identifier: IdLike) -> bool:
        """Remove *identifier* from *scope*. Absent identifiers are a no-op."""
        value = _raw(identifier)
        if self._owners.get(value) != scope:
            return False
        self._remove_member(scope, value)
        return True

    def unregister_id(self, identifier: IdLike) -> bool:
        """Remove *identifier* from whichever scope holds it."""
        value = _raw(identifier)
        scope = self._owners.get(value)
        if scope is None:
            return False
        self._remove_member(scope, value)
        return True

    def remove_scope(self, scope: str) -> int:
        """Drop the whole entry for *scope*; returns how many identifiers it held."""
        ids = self._entries.pop(scope, None)
        if ids is None:
            return 0
        for value in ids:
            del self._owners[value]

        def _undo() -> None:
            self._entries[scope] = ids
            for value in ids:
                self._owners[value] = scope

        self._commit(_undo)
        metrics.SCOPES_REMOVED_TOTAL.inc()
        logger.debug("Removed scope '%s' (%d identifiers)", scope, len(ids))
        return len(ids)

    def rename_scope(self, old: str, new: str) -> int:
        """Move every identifier from *old* to *new*, merging if *new* exists."""
        if old not in self._entries:
            raise UnknownScopeError(old)
        if not new:
            raise ValueError("Scope key must be a non-empty string")
        if old == new:
            return len(self._entries[old])

        moved = self._entries.pop(old)
        existed = new in self._entries
        self._entries.setdefault(new, set()).update(moved)
        for value in moved:
            self._owners[value] = new

        def _undo() -> None:
            self._entries[old] = moved
            if existed:
                self._entries[new] -= moved
            else:
                del self._entries[new]
            for value in moved:
                self._owners[value] = old

        self._commit(_undo)
        logger.debug("Renamed scope '%s' -> '%s' (%d identifiers)", old, new, len(moved))
        return len(moved)

    def clear(self) -> int:
        """Remove every scope and identifier."""
        entries, owners = self._entries, self._owners
        if not owners and not entries:
            return 0
        self._entries, self._owners = {}, {}

        def _undo() -> None:
            self._entries, self._owners = entries, owners

        self._commit(_undo)
        logger.info(
            "Registry cleanup: removed all %d identifiers from %d scopes",
            len(owners),
            len(entries),
        )
        return len(owners)

    # -- Internals -------------------------------------------------------

    def _remove_member(self, scope: str, value: int) -> None:
        ids = self._entries[scope]
        ids.discard(value)
        del self._owners[value]
        emptied = not ids
        if emptied:
            del self._entries[scope]

        def _undo() -> None:
            self._entries.setdefault(scope, set()).add(value)
            self._owners[value] = scope

        self._commit(_undo)
        logger.debug("Unregistered %s from scope '%s'", Identifier(value), scope)

    def _commit(self, undo: Callable[[], None]) -> None:
        """Persist the current state; restore the previous one if saving fails."""
        if self._store is not None:
            try:
                self._store.save(self.to_state())
            except Exception:
                undo()
                logger.error("Failed to persist registry; change rolled back")
                raise
        self._update_gauges()

    def _update_gauges(self) -> None:
        metrics.REGISTERED_IDENTIFIERS.set(len(self._owners))
        metrics.REGISTERED_SCOPES.set(len(self._entries))
