"""Reconciliation between the persisted registry and the live object graph.

:func:`validate_registry` only reports. :func:`repair_registry` applies fixes
for a list of findings and leaves duplicates alone unless explicitly asked,
because resolving one means taking the identifier away from a live holder.
"""

from __future__ import annotations

import logging

from persistid import metrics
from persistid.core.ids import IdentifierAllocator
from persistid.core.models import (
    UNASSIGNED,
    Discrepancy,
    DiscrepancyKind,
    Identifier,
    LiveObject,
    ObjectRef,
    RepairResult,
)
from persistid.core.objects import ObjectSource
from persistid.core.registrar import Registrar
from persistid.core.registry import ScopedRegistry

logger = logging.getLogger(__name__)


def collect_holders(source: ObjectSource) -> dict[int, list[ObjectRef]]:
    """Map every non-zero identifier held by a live object to its holders."""
    holders: dict[int, list[ObjectRef]] = {}
    for scope in source.scopes():
        for obj in source.objects(scope):
            if obj.identifier.is_valid:
                holders.setdefault(int(obj.identifier), []).append(
                    ObjectRef(scope=scope, key=obj.key)
                )
    return holders


def validate_registry(registry: ScopedRegistry, source: ObjectSource) -> list[Discrepancy]:
    """Diff the registry against the identifiers live objects actually hold."""
    holders = collect_holders(source)
    findings: list[Discrepancy] = []

    for identifier in sorted(registry.all_identifiers()):
        if int(identifier) not in holders:
            findings.append(
                Discrepancy(
                    kind=DiscrepancyKind.orphaned_identifier,
                    identifier=identifier,
                    scope=registry.scope_of(identifier),
                )
            )

    for value, refs in sorted(holders.items()):
        refs = sorted(refs, key=lambda r: (r.scope, r.key))
        registered_scope = registry.scope_of(value)
        kind: DiscrepancyKind | None = None
        if len(refs) > 1:
            kind = DiscrepancyKind.cross_scope_duplicate
        elif registered_scope is None:
            kind = DiscrepancyKind.unregistered_live_identifier
        elif registered_scope != refs[0].scope:
            kind = DiscrepancyKind.scope_mismatch
        if kind is not None:
            findings.append(
                Discrepancy(
                    kind=kind,
                    identifier=Identifier(value),
                    scope=registered_scope,
                    holders=refs,
                )
            )

    for finding in findings:
        metrics.DISCREPANCIES_TOTAL.labels(kind=finding.kind.value).inc()

    if findings:
        logger.warning("Registry validation found %d discrepancies", len(findings))
    else:
        logger.info("Registry validation passed (%d identifiers)", registry.registered_count())
    return findings


def repair_registry(
    registry: ScopedRegistry,
    source: ObjectSource,
    discrepancies: list[Discrepancy],
    allocator: IdentifierAllocator,
    registrar: Registrar | None = None,
    resolve_duplicates: bool = False,
) -> RepairResult:
    """Apply fixes for *discrepancies* found by :func:`validate_registry`.

    Findings that no longer hold (the registry changed since validation) are
    skipped. With *resolve_duplicates*, the first holder of a duplicated
    identifier in ``(scope, key)`` order keeps it and every other holder gets
    a freshly allocated one.
    """
    result = RepairResult()

    for finding in discrepancies:
        identifier = finding.identifier
        if finding.kind == DiscrepancyKind.orphaned_identifier:
            if registry.unregister_id(identifier):
                result.unregistered += 1
                logger.info("Repair: unregistered orphaned %s", identifier)

        elif finding.kind == DiscrepancyKind.unregistered_live_identifier:
            holder = finding.holders[0]
            if not registry.contains(identifier):
                registry.register(holder.scope, identifier)
                result.registered += 1
                logger.info("Repair: registered %s in scope '%s'", identifier, holder.scope)

        elif finding.kind == DiscrepancyKind.scope_mismatch:
            holder = finding.holders[0]
            if registry.scope_of(identifier) != holder.scope:
                registry.unregister_id(identifier)
                registry.register(holder.scope, identifier)
                result.moved += 1
                logger.info("Repair: moved %s to scope '%s'", identifier, holder.scope)

        elif finding.kind == DiscrepancyKind.cross_scope_duplicate:
            if not resolve_duplicates:
                result.skipped_duplicates.append(identifier)
                continue
            result.reassigned += _resolve_duplicate(
                registry, source, finding, allocator, registrar
            )

    logger.info(
        "Repair complete: %d unregistered, %d registered, %d moved, %d reassigned, "
        "%d duplicates left for review",
        result.unregistered,
        result.registered,
        result.moved,
        result.reassigned,
        len(result.skipped_duplicates),
    )
    return result


def _resolve_duplicate(
    registry: ScopedRegistry,
    source: ObjectSource,
    finding: Discrepancy,
    allocator: IdentifierAllocator,
    registrar: Registrar | None,
) -> int:
    identifier = finding.identifier
    keeper, *others = sorted(finding.holders, key=lambda r: (r.scope, r.key))

    owner = registry.scope_of(identifier)
    if owner != keeper.scope:
        if owner is not None:
            registry.unregister(owner, identifier)
        registry.register(keeper.scope, identifier)

    reassigned = 0
    for ref in others:
        obj = _find(source, ref)
        if obj is None or obj.identifier != identifier:
            logger.warning("Repair: %s no longer holds %s; skipping", ref.key, identifier)
            continue
        obj.identifier = UNASSIGNED
        if registrar is not None:
            registrar.forget(ref.key)
        obj.identifier = allocator.allocate(ref.scope)
        if registrar is not None:
            registrar.track(ref.key, UNASSIGNED, obj.identifier)
            registrar.mark_processed(ref.key)
        reassigned += 1
        logger.info(
            "Repair: duplicate %s on %r in scope '%s' replaced by %s",
            identifier,
            ref.key,
            ref.scope,
            obj.identifier,
        )
    return reassigned


def _find(source: ObjectSource, ref: ObjectRef) -> LiveObject | None:
    return next((o for o in source.objects(ref.scope) if o.key == ref.key), None)
