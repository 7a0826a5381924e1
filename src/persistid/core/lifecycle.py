"""Container lifecycle handling.

The host notifies the coordinator when a container is deleted, duplicated,
renamed, opened, saved or closed. The coordinator keeps the registry and the
session tracker consistent with those events.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from persistid.core.ids import IdentifierAllocator
from persistid.core.models import UNASSIGNED, Identifier, LiveObject, ScopeState
from persistid.core.registrar import Registrar
from persistid.core.registry import ScopedRegistry

logger = logging.getLogger(__name__)


def _identity(key: str) -> str:
    return key


class LifecycleCoordinator:
    """Reacts to container events raised by the host environment.

    Parameters
    ----------
    registry, registrar, allocator:
        The session's components. The allocator must reserve into *registry*.
    resolve:
        Maps a container key (e.g. a file path) to its scope key. Defaults to
        the identity function, for hosts whose container keys are already
        stable scope keys.
    """

    def __init__(
        self,
        registry: ScopedRegistry,
        registrar: Registrar,
        allocator: IdentifierAllocator,
        resolve: Callable[[str], str] | None = None,
    ) -> None:
        self._registry = registry
        self._registrar = registrar
        self._allocator = allocator
        self._resolve = resolve or _identity
        self._states: dict[str, ScopeState] = {}

    def bind(self, registry: ScopedRegistry) -> None:
        self._registry = registry
        self._states.clear()

    def scope_for(self, container_key: str) -> str:
        return self._resolve(container_key)

    def state_of(self, scope: str) -> ScopeState | None:
        """State of *scope*, or None if it has no entry and no event mentioned it.

        A scope with registered identifiers is active even if an earlier
        event removed it.
        """
        if self._registry.has_scope(scope):
            return ScopeState.active
        return self._states.get(scope)

    # ------------------------------------------------------------------
    # Deletion / rename
    # ------------------------------------------------------------------

    def on_container_deleted(self, container_key: str) -> int:
        """Drop every identifier registered for the deleted container."""
        scope = self._resolve(container_key)
        if not scope:
            logger.warning("Deleted container %r has no scope key; skipping", container_key)
            return 0
        removed = self._registry.remove_scope(scope)
        self._registrar.forget_scope(scope)
        self._states[scope] = ScopeState.removed
        logger.info(
            "Container %r deleted: removed %d identifiers from scope '%s'",
            container_key,
            removed,
            scope,
        )
        return removed

    def on_container_renamed(self, old_key: str, new_key: str) -> int:
        """Move the registry entry if the container's scope key changed."""
        old_scope = self._resolve(old_key)
        new_scope = self._resolve(new_key)
        if old_scope == new_scope or not self._registry.has_scope(old_scope):
            return 0
        moved = self._registry.rename_scope(old_scope, new_scope)
        self._registrar.forget_scope(old_scope)
        self._states[old_scope] = ScopeState.removed
        self._states[new_scope] = ScopeState.active
        logger.info("Scope '%s' renamed to '%s' (%d identifiers)", old_scope, new_scope, moved)
        return moved

    # ------------------------------------------------------------------
    # Duplication
    # ------------------------------------------------------------------

    def on_container_duplicated(
        self,
        old_key: str,
        new_key: str,
        cloned_objects: Iterable[LiveObject],
    ) -> list[Identifier]:
        """Give every object in a cloned container a fresh identifier.

        The clones are reset to unassigned and forgotten by the session
        tracker first, so none of them can be taken for the legitimate owner
        of an identifier that belongs to the original container.
        """
        scope = self._resolve(new_key)
        clones = list(cloned_objects)
        for obj in clones:
            obj.identifier = UNASSIGNED
            obj.scope = scope
            self._registrar.forget(obj.key)

        issued: list[Identifier] = []
        for obj in clones:
            identifier = self._allocator.allocate(scope)
            obj.identifier = identifier
            self._registrar.track(obj.key, UNASSIGNED, identifier)
            self._registrar.mark_processed(obj.key)
            issued.append(identifier)

        self._states[scope] = ScopeState.active
        logger.info(
            "Container %r duplicated as %r: issued %d fresh identifiers",
            old_key,
            new_key,
            len(issued),
        )
        return issued

    # ------------------------------------------------------------------
    # Open / save / close
    # ------------------------------------------------------------------

    def on_container_opened(self, container_key: str, objects: Iterable[LiveObject]) -> int:
        """Bring an opened container's objects in line with the registry.

        Unassigned objects and objects holding an identifier registered under
        another scope (a container copied outside the session) get a fresh
        identifier, noted as unsaved. Unknown identifiers are registered
        as-is. The identifiers that were already valid on disk become the
        container's saved snapshot. Returns the number of identifiers
        registered.
        """
        scope = self._resolve(container_key)
        registered = 0
        kept: list[Identifier] = []
        for obj in objects:
            current = obj.identifier
            owner = self._registry.scope_of(current) if current.is_valid else None

            if current.is_valid and owner == scope:
                kept.append(current)
            elif current.is_valid and owner is None:
                self._registry.register(scope, current)
                kept.append(current)
                registered += 1
            else:
                obj.identifier = self._allocator.allocate(scope)
                self._registrar.note_unsaved(scope, obj.identifier)
                registered += 1
                if current.is_valid:
                    logger.warning(
                        "Duplicate %s on %r in scope '%s' (registered in '%s'); generated %s",
                        current,
                        obj.key,
                        scope,
                        owner,
                        obj.identifier,
                    )

            self._registrar.track(obj.key, current, obj.identifier)
            self._registrar.mark_processed(obj.key)

        self._registrar.snapshot(scope, kept)
        self._states[scope] = ScopeState.active
        logger.debug(
            "Opened scope '%s': %d registered, snapshot of %d identifiers",
            scope,
            registered,
            len(kept),
        )
        return registered

    def on_container_saved(self, container_key: str, objects: Iterable[LiveObject]) -> None:
        """Capture the saved state; identifiers are no longer unsaved."""
        scope = self._resolve(container_key)
        ids = [obj.identifier for obj in objects if obj.identifier.is_valid]
        self._registrar.snapshot(scope, ids)
        self._registrar.discard_unsaved(scope)
        logger.debug("Saved scope '%s': snapshot of %d identifiers", scope, len(ids))

    def is_clean(self, container_key: str, objects: Iterable[LiveObject]) -> bool:
        """True if *objects* hold exactly the identifiers of the last saved state."""
        scope = self._resolve(container_key)
        return self._registrar.matches_snapshot(scope, (obj.identifier for obj in objects))

    def on_container_closing(
        self,
        container_key: str,
        objects: Iterable[LiveObject],
        dirty: bool = False,
    ) -> int:
        """Forget a closing container's objects.

        If the container is closed with unsaved edits, identifiers registered
        since its last save are unregistered: the objects holding them never
        reached disk. A dirty container whose objects are back at the saved
        state (edits undone) counts as clean. Returns the number of
        identifiers unregistered.
        """
        scope = self._resolve(container_key)
        objects = list(objects)
        if dirty and self.is_clean(container_key, objects):
            logger.debug("Scope '%s' matches its saved state; closing as clean", scope)
            dirty = False

        unsaved = self._registrar.unsaved_ids(scope) if dirty else frozenset()
        unregistered = 0
        for obj in objects:
            self._registrar.forget(obj.key)
            if obj.identifier in unsaved and self._registry.unregister(scope, obj.identifier):
                unregistered += 1

        self._registrar.forget_scope(scope)
        if unregistered:
            logger.info(
                "Closed scope '%s' without saving: unregistered %d unsaved identifiers",
                scope,
                unregistered,
            )
        return unregistered
