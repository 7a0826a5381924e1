"""persistid CLI entry point."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from persistid.core.models import Identifier

if TYPE_CHECKING:
    from persistid.core.manager import PersistentIdManager


class IdentifierType(click.ParamType):
    """Decimal or ``0x``-prefixed hexadecimal identifier."""

    name = "identifier"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> Identifier:
        if isinstance(value, Identifier):
            return value
        try:
            return Identifier.parse(str(value))
        except ValueError:
            self.fail(f"{value!r} is not a 32-bit identifier", param, ctx)


IDENTIFIER = IdentifierType()


def project_dir_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--project-dir",
        type=click.Path(exists=True, file_okay=False, path_type=Path),
        default=Path.cwd,
        help="Project root directory.",
    )(func)


def objects_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--objects",
        "objects_file",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        required=True,
        help="JSON file listing live objects and their identifiers.",
    )(func)


@contextmanager
def _errors_as_click() -> Iterator[None]:
    """Turn registry conditions into CLI error messages."""
    from persistid.core.ids import AllocationExhaustedError
    from persistid.core.registry import DuplicateIdentifierError, UnknownScopeError

    try:
        yield
    except (DuplicateIdentifierError, UnknownScopeError, AllocationExhaustedError) as e:
        raise click.ClickException(str(e)) from e
    except ValueError as e:
        raise click.ClickException(f"Invalid input: {e}") from e


def _open_manager(project_dir: Path) -> PersistentIdManager:
    from persistid.core.logging import configure_logging
    from persistid.core.manager import PersistentIdManager

    manager = PersistentIdManager.for_project(project_dir.resolve())
    configure_logging(json_output=manager.config.json_logs, level=manager.config.log_level)
    return manager.open()


@click.group()
@click.version_option(package_name="persistid")
def cli() -> None:
    """persistid - stable 32-bit identifiers for objects in scoped containers."""


@cli.command()
@project_dir_option
def init(project_dir: Path) -> None:
    """Create the .persistid directory with default settings and an empty registry."""
    from persistid.core.config import project_root, write_default_settings
    from persistid.core.state import RegistryStore

    persistid_dir = project_root(project_dir.resolve())
    for name in ("state", "logs", "config"):
        (persistid_dir / name).mkdir(parents=True, exist_ok=True)
    settings = write_default_settings(persistid_dir)

    store = RegistryStore(persistid_dir / "state")
    if not store.path.exists():
        store.save(store.load())

    click.echo(f"Initialized registry at {store.path}")
    click.echo(f"Settings: {settings}")


@cli.command()
@project_dir_option
def status(project_dir: Path) -> None:
    """Show registry totals."""
    manager = _open_manager(project_dir)
    click.echo(f"Registered identifiers: {manager.registered_count()}")
    click.echo(f"Registered scopes     : {manager.registered_scope_count()}")
    for issue in manager.registry.load_issues:
        click.echo(f"Load cleanup: {issue}")


@cli.command(name="list")
@project_dir_option
@click.option("--scope", default=None, help="Only list identifiers in this scope.")
def list_ids(project_dir: Path, scope: str | None) -> None:
    """Print every registered identifier, grouped by scope."""
    from persistid.cli.report_cmd import print_registry

    print_registry(_open_manager(project_dir), scope=scope)


@cli.command()
@project_dir_option
@click.argument("scope")
@click.option("--count", type=click.IntRange(min=1), default=1, help="How many to allocate.")
def allocate(project_dir: Path, scope: str, count: int) -> None:
    """Allocate fresh identifiers in SCOPE."""
    manager = _open_manager(project_dir)
    with _errors_as_click():
        for _ in range(count):
            click.echo(str(manager.allocate(scope)))


@cli.command()
@project_dir_option
@click.argument("scope")
@click.argument("identifier", type=IDENTIFIER)
def register(project_dir: Path, scope: str, identifier: Identifier) -> None:
    """Register an existing IDENTIFIER under SCOPE."""
    manager = _open_manager(project_dir)
    with _errors_as_click():
        manager.register(scope, identifier)
    click.echo(f"Registered {identifier} in '{scope}'.")


@cli.command()
@project_dir_option
@click.argument("identifier", type=IDENTIFIER)
def unregister(project_dir: Path, identifier: Identifier) -> None:
    """Remove IDENTIFIER from the registry."""
    manager = _open_manager(project_dir)
    if manager.unregister_id(identifier):
        click.echo(f"Unregistered {identifier}.")
    else:
        click.echo(f"{identifier} was not registered.")


@cli.command(name="remove-scope")
@project_dir_option
@click.argument("scope")
def remove_scope(project_dir: Path, scope: str) -> None:
    """Forget every identifier registered under SCOPE (container deleted)."""
    manager = _open_manager(project_dir)
    removed = manager.remove_scope(scope)
    click.echo(f"Removed {removed} identifiers from '{scope}'.")


@cli.command(name="rename-scope")
@project_dir_option
@click.argument("old")
@click.argument("new")
def rename_scope(project_dir: Path, old: str, new: str) -> None:
    """Move the identifiers registered under OLD to NEW."""
    manager = _open_manager(project_dir)
    with _errors_as_click():
        moved = manager.rename_scope(old, new)
    click.echo(f"Moved {moved} identifiers from '{old}' to '{new}'.")


@cli.command()
@project_dir_option
@click.confirmation_option(prompt="Remove every registered identifier?")
def clear(project_dir: Path) -> None:
    """Remove every scope and identifier from the registry."""
    manager = _open_manager(project_dir)
    removed = manager.clear_registry()
    click.echo(f"Removed {removed} identifiers.")


@cli.command()
@project_dir_option
@objects_option
@click.argument("key")
def regenerate(project_dir: Path, objects_file: Path, key: str) -> None:
    """Give the object KEY in the objects file a new identifier."""
    from persistid.core.objects import JsonObjectSource

    manager = _open_manager(project_dir)
    with _errors_as_click():
        source = JsonObjectSource(objects_file)
    obj = source.get(key)
    if obj is None:
        raise click.ClickException(f"No object with key '{key}' in {objects_file}")

    old = obj.identifier
    with _errors_as_click():
        # Track every holder so a value shared with another object stays registered.
        for scope in source.scopes():
            manager.lifecycle.on_container_opened(scope, source.objects(scope))
        new = manager.regenerate(obj)
    source.save()
    click.echo(f"{key}: {old} -> {new}")


@cli.command()
@project_dir_option
@objects_option
@click.option("--repair", is_flag=True, default=False, help="Fix the findings after reporting.")
@click.option(
    "--resolve-duplicates",
    is_flag=True,
    default=False,
    help="When repairing, reassign all but the first holder of a duplicated identifier.",
)
@click.option("--yes", is_flag=True, default=False, help="Do not ask before repairing.")
def validate(
    project_dir: Path,
    objects_file: Path,
    repair: bool,
    resolve_duplicates: bool,
    yes: bool,
) -> None:
    """Compare the registry with the live objects in the objects file."""
    from persistid.cli.report_cmd import print_discrepancies, print_repair
    from persistid.core.objects import JsonObjectSource

    manager = _open_manager(project_dir)
    with _errors_as_click():
        source = JsonObjectSource(objects_file)
    findings = manager.validate_registry(source)
    print_discrepancies(findings)

    if not findings or not repair:
        if findings:
            raise SystemExit(1)
        return

    if not yes:
        click.confirm(f"Apply repairs for {len(findings)} findings?", abort=True)

    with _errors_as_click():
        result = manager.repair(source, findings, resolve_duplicates=resolve_duplicates)
    if result.reassigned:
        source.save()
    print_repair(result)
    if result.skipped_duplicates:
        raise SystemExit(1)
