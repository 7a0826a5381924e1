"""Persistent identifier manager.

Wires the registry, allocator, session tracker and lifecycle coordinator for
one editing session and exposes the query and mutation surface used by tools.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from pathlib import Path
from typing import Any

from persistid.core.config import load_settings, make_registry_config, project_root
from persistid.core.events import JournalLog
from persistid.core.ids import IdentifierAllocator
from persistid.core.lifecycle import LifecycleCoordinator
from persistid.core.models import (
    UNASSIGNED,
    Discrepancy,
    Identifier,
    LiveObject,
    RegistryConfig,
    RepairResult,
)
from persistid.core.objects import ObjectSource
from persistid.core.registrar import Registrar
from persistid.core.registry import IdLike, ScopedRegistry
from persistid.core.state import RegistryStore
from persistid.core.validation import repair_registry, validate_registry

logger = logging.getLogger(__name__)


class PersistentIdManager:
    """Single-writer facade over one registry session.

    All calls are expected on one thread; the host serializes them. Mutations
    raise RuntimeError until open() has loaded the persisted registry.
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        store: RegistryStore | None = None,
        journal: JournalLog | None = None,
        rng: random.Random | None = None,
        resolve: Callable[[str], str] | None = None,
    ) -> None:
        self._config = config or RegistryConfig()
        self._store = store
        self._journal = journal
        self._opened = False

        # Unbound until open() loads the persisted registry.
        self._registry = ScopedRegistry()
        self._registrar = Registrar(self._registry)
        self._allocator = IdentifierAllocator(
            self._registry,
            max_attempts=self._config.max_allocation_attempts,
            rng=rng,
        )
        self._lifecycle = LifecycleCoordinator(
            self._registry, self._registrar, self._allocator, resolve=resolve
        )

    @classmethod
    def for_project(
        cls, project_dir: Path, rng: random.Random | None = None
    ) -> PersistentIdManager:
        """Build a manager from ``<project_dir>/.persistid`` settings and state."""
        persistid_dir = project_root(project_dir)
        config = make_registry_config(load_settings(persistid_dir))
        store = RegistryStore(
            persistid_dir / "state",
            filename=config.registry_file,
            backup_count=config.backup_count,
        )
        journal = (
            JournalLog(persistid_dir / "logs" / "journal.jsonl")
            if config.journal_enabled
            else None
        )
        return cls(config, store=store, journal=journal, rng=rng)

    # -- Session -------------------------------------------------------------

    def open(self) -> PersistentIdManager:
        """Load the registry once for this session and start with empty tracking."""
        registry = ScopedRegistry.load(self._store) if self._store else ScopedRegistry()
        self._bind(registry)
        self._registrar.clear_tracking_data()
        self._opened = True

        if self._journal is not None:
            for event in self._journal.find_unmatched(
                "regenerate.started", "regenerate.completed"
            ):
                logger.warning(
                    "Regeneration of %r was interrupted (event %d); run validation",
                    event.data.get("object_key"),
                    event.seq,
                )

        logger.info(
            "Registry session opened: %d identifiers across %d scopes",
            self._registry.registered_count(),
            self._registry.registered_scope_count(),
        )
        return self

    def swap_registry(self, store: RegistryStore) -> None:
        """Make the registry persisted in *store* the active one."""
        self._store = store
        self._bind(ScopedRegistry.load(store))
        self._opened = True
        logger.info("Switched active registry to %s", store.path)

    def _require_open(self) -> None:
        if not self._opened:
            raise RuntimeError("Registry session is not open; call open() first")

    def _bind(self, registry: ScopedRegistry) -> None:
        self._registry = registry
        self._registrar.bind(registry)
        self._allocator.bind(registry)
        self._lifecycle.bind(registry)

    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def registry(self) -> ScopedRegistry:
        return self._registry

    @property
    def registrar(self) -> Registrar:
        return self._registrar

    @property
    def allocator(self) -> IdentifierAllocator:
        return self._allocator

    @property
    def lifecycle(self) -> LifecycleCoordinator:
        self._require_open()
        return self._lifecycle

    @property
    def journal(self) -> JournalLog | None:
        return self._journal

    # -- Queries -------------------------------------------------------------

    def registered_count(self) -> int:
        return self._registry.registered_count()

    def registered_scope_count(self) -> int:
        return self._registry.registered_scope_count()

    def all_identifiers(self) -> frozenset[Identifier]:
        return self._registry.all_identifiers()

    def identifiers_in_scope(self, scope: str) -> frozenset[Identifier]:
        return self._registry.identifiers_in_scope(scope)

    def is_registered(self, identifier: IdLike) -> bool:
        return self._registry.contains(identifier)

    def scope_of(self, identifier: IdLike) -> str | None:
        return self._registry.scope_of(identifier)

    def scopes(self) -> list[str]:
        return self._registry.scopes()

    # -- Mutations -----------------------------------------------------------

    def allocate(self, scope: str) -> Identifier:
        self._require_open()
        identifier = self._allocator.allocate(scope)
        self._record("id.allocated", scope=scope, identifier=int(identifier))
        return identifier

    def register(self, scope: str, identifier: IdLike) -> Identifier:
        self._require_open()
        registered = self._registry.register(scope, identifier)
        self._record("id.registered", scope=scope, identifier=int(registered))
        return registered

    def unregister_id(self, identifier: IdLike) -> bool:
        self._require_open()
        scope = self._registry.scope_of(identifier)
        removed = self._registry.unregister_id(identifier)
        if removed:
            self._record("id.unregistered", scope=scope, identifier=int(identifier))
        return removed

    def remove_scope(self, scope: str) -> int:
        self._require_open()
        removed = self._registry.remove_scope(scope)
        if removed:
            self._record("scope.removed", scope=scope, count=removed)
        return removed

    def rename_scope(self, old: str, new: str) -> int:
        self._require_open()
        moved = self._registry.rename_scope(old, new)
        self._record("scope.renamed", old=old, new=new, count=moved)
        return moved

    def clear_registry(self) -> int:
        self._require_open()
        removed = self._registry.clear()
        self._registrar.clear_tracking_data()
        self._record("registry.cleared", count=removed)
        return removed

    def process_object(self, obj: LiveObject, dirty: bool = False) -> Identifier:
        """Make sure *obj* holds a registered identifier of its own.

        Called for every object the host (re)scans. Unassigned objects and
        copies of another object's identifier get a fresh value; an
        unregistered value is registered as-is. Already processed objects
        are skipped. With *dirty*, newly registered values are remembered as
        unsaved for the object's container.
        """
        self._require_open()
        key, current = obj.key, obj.identifier
        if current.is_valid and self._registrar.is_processed(key):
            return current

        registered: Identifier | None = None
        if self._registrar.should_allocate(key, current, obj.scope):
            registered = self.allocate(obj.scope)
            obj.identifier = registered
            self._registrar.track(key, current, registered)
            if current.is_valid:
                logger.info(
                    "Detected duplicate %s on %r; generated %s", current, key, registered
                )
        elif not self._registry.contains(current):
            registered = self.register(obj.scope, current)
            self._registrar.track(key, UNASSIGNED, current)
        else:
            self._registrar.track(key, UNASSIGNED, current)

        self._registrar.mark_processed(key)
        if dirty and registered is not None:
            self._registrar.note_unsaved(obj.scope, registered)
        return obj.identifier

    def regenerate(self, obj: LiveObject, scope: str | None = None) -> Identifier:
        """Replace the identifier held by *obj* with a freshly allocated one.

        The new value is registered before the old one is released, so an
        interruption leaves at worst an orphaned registration for validation
        to report, never an unregistered live identifier.
        """
        self._require_open()
        scope = scope or obj.scope
        old = obj.identifier
        self._record("regenerate.started", object_key=obj.key, scope=scope, old=int(old))

        new = self.allocate(scope)
        obj.scope = scope
        obj.identifier = new

        if old.is_valid and not any(k != obj.key for k in self._registrar.holders(old)):
            self.unregister_id(old)
        self._registrar.track(obj.key, old, new)
        self._registrar.mark_processed(obj.key)

        self._record(
            "regenerate.completed", object_key=obj.key, scope=scope, old=int(old), new=int(new)
        )
        logger.info("Regenerated identifier for %r: %s -> %s", obj.key, old, new)
        return new

    def validate_registry(self, source: ObjectSource) -> list[Discrepancy]:
        return validate_registry(self._registry, source)

    def repair(
        self,
        source: ObjectSource,
        discrepancies: list[Discrepancy],
        resolve_duplicates: bool = False,
    ) -> RepairResult:
        self._require_open()
        result = repair_registry(
            self._registry,
            source,
            discrepancies,
            self._allocator,
            registrar=self._registrar,
            resolve_duplicates=resolve_duplicates,
        )
        self._record("registry.repaired", **result.model_dump(mode="json"))
        return result

    # -- Journal -------------------------------------------------------------

    def _record(self, type_: str, **data: Any) -> None:
        if self._journal is not None:
            self._journal.record(type_, **data)
