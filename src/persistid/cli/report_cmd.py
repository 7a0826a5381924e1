"""Text reports for registry contents and validation results."""

from __future__ import annotations

import click

from persistid.core.manager import PersistentIdManager
from persistid.core.models import Discrepancy, DiscrepancyKind, RepairResult

_KIND_LABELS = {
    DiscrepancyKind.orphaned_identifier: "Orphaned identifier",
    DiscrepancyKind.unregistered_live_identifier: "Unregistered live identifier",
    DiscrepancyKind.cross_scope_duplicate: "Duplicate identifier",
    DiscrepancyKind.scope_mismatch: "Scope mismatch",
}


def print_registry(manager: PersistentIdManager, scope: str | None = None) -> None:
    """Print registered identifiers grouped by scope, in decimal and hex."""
    total = manager.registered_count()
    if total < 1:
        click.echo("No IDs registered.")
        return

    scopes = [scope] if scope is not None else manager.scopes()
    click.echo("=" * 60)
    click.echo(
        f"  All Registered IDs ({total} total across "
        f"{manager.registered_scope_count()} scopes)"
    )
    click.echo("=" * 60)

    for name in scopes:
        ids = sorted(manager.identifiers_in_scope(name))
        click.echo()
        click.echo(f"--- Scope: {name} ({len(ids)} IDs) ---")
        for identifier in ids:
            click.echo(f"  Dec: {int(identifier):<10}  Hex: {identifier}")


def print_discrepancies(findings: list[Discrepancy]) -> None:
    if not findings:
        click.echo("Registry is consistent with the live objects.")
        return

    click.echo("-" * 60)
    click.echo(f"  Validation found {len(findings)} discrepancies")
    click.echo("-" * 60)
    click.echo(f"  {'Kind':<30} {'ID':<12} {'Registered in':<16} {'Held by'}")
    click.echo(f"  {'─' * 30} {'─' * 12} {'─' * 16} {'─' * 20}")

    for finding in findings:
        holders = ", ".join(f"{h.scope}/{h.key}" for h in finding.holders) or "-"
        click.echo(
            f"  {_KIND_LABELS[finding.kind]:<30} {str(finding.identifier):<12} "
            f"{finding.scope or '-':<16} {holders}"
        )
    click.echo()


def print_repair(result: RepairResult) -> None:
    click.echo(f"  Unregistered : {result.unregistered}")
    click.echo(f"  Registered   : {result.registered}")
    click.echo(f"  Moved        : {result.moved}")
    click.echo(f"  Reassigned   : {result.reassigned}")
    if result.skipped_duplicates:
        skipped = ", ".join(str(i) for i in result.skipped_duplicates)
        click.echo(f"  Duplicates left for review: {skipped}")
        click.echo("  Re-run with --resolve-duplicates to reassign them.")
