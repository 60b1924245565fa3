"""oakreindex CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from oakreindex import __version__

if TYPE_CHECKING:
    from oakreindex.config import HookConfig
    from oakreindex.infrastructure.db import Session

_STATE_DIR = ".oakreindex"
_DB_NAME = "repository.db"
_CONFIG_NAME = "config.yml"


def _configure_logging(*, verbose: bool, quiet: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    root = logging.getLogger("oakreindex")
    root.handlers[:] = [handler]
    root.setLevel(level)


@click.group()
@click.version_option(version=__version__, prog_name="oakreindex")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """oakreindex - reindex Oak index definitions changed by content packages."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _configure_logging(verbose=verbose, quiet=quiet)


_project_option = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
_db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Repository database (default: .oakreindex/repository.db).",
)
_config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Hook configuration (default: .oakreindex/config.yml).",
)


def _resolve_db(project: Path | None, db_path: Path | None) -> Path:
    if db_path is not None:
        return db_path
    return (project or Path.cwd()) / _STATE_DIR / _DB_NAME


def _open_existing(db: Path) -> Session:
    from oakreindex.infrastructure.db import Session

    if not db.exists():
        click.echo(f"Error: repository not found at {db}. Run `oakreindex init` first.", err=True)
        sys.exit(1)
    return Session.open(db)


def _load_config_or_exit(project: Path | None, config_path: Path | None) -> HookConfig:
    from oakreindex.config import load_config
    from oakreindex.errors import ConfigError

    try:
        return load_config(config_path or (project or Path.cwd()) / _STATE_DIR / _CONFIG_NAME)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@main.command()
@_project_option
@_db_option
def init(*, project: Path | None, db_path: Path | None) -> None:
    """Create an empty content repository."""
    from oakreindex.infrastructure.db import Session

    db = _resolve_db(project, db_path)
    db.parent.mkdir(parents=True, exist_ok=True)
    existed = db.exists()
    with Session.open(db):
        pass
    if existed:
        click.echo(f"Repository already exists: {db}")
    else:
        click.echo(f"Created repository: {db}")


@main.command()
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_project_option
@_db_option
@_config_option
@click.option("--no-hook", is_flag=True, help="Install without the reindex hook.")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def install(
    *,
    package: Path,
    project: Path | None,
    db_path: Path | None,
    config_path: Path | None,
    no_hook: bool,
    output_json: bool,
) -> None:
    """Install a content package, marking changed index definitions for reindexing."""
    from oakreindex.errors import PackageError
    from oakreindex.hook import OakReindexInstallHook
    from oakreindex.infrastructure.package import PackageInstaller, load_package

    config = _load_config_or_exit(project, config_path)
    try:
        pkg = load_package(package)
    except PackageError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    hook = OakReindexInstallHook(config)
    with _open_existing(_resolve_db(project, db_path)) as session:
        installer = PackageInstaller(session, [] if no_hook else [hook])
        result = installer.install(pkg)

    restore = hook.last_result
    if output_json:
        payload = {
            "package": result.package,
            "success": result.success,
            "events": [{"action": e.action, "path": e.path} for e in result.events],
            "errors": result.errors,
            "reindexed": restore.reindexed if restore else [],
            "restored": restore.restored if restore else [],
            "skipped": restore.skipped if restore else [],
        }
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        status = "installed" if result.success else "FAILED"
        click.echo(f"Package {result.package}: {status} ({len(result.events)} node events)")
        if restore:
            for path in restore.reindexed:
                click.echo(f"  reindex  {path}")
            for path in restore.restored:
                click.echo(f"  keep     {path}")
            for warn in restore.warnings:
                click.echo(f"  [warn] {warn}")
        for err in result.errors:
            click.echo(f"  [ERR] {err}")

    if not result.success:
        sys.exit(1)


@main.command()
@click.argument("node_path")
@_project_option
@_db_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def show(*, node_path: str, project: Path | None, db_path: Path | None, output_json: bool) -> None:
    """Print the properties of a repository node."""
    from oakreindex.errors import StoreError

    with _open_existing(_resolve_db(project, db_path)) as session:
        try:
            props = session.get_properties(node_path)
        except StoreError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)

    if output_json:
        click.echo(json.dumps(props, indent=2, ensure_ascii=False))
        return
    for name, value in props.items():
        click.echo(f"{name} = {json.dumps(value, ensure_ascii=False)}")


@main.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--marker", default=None, help="Index root node name (default: oak:index).")
def classify(*, paths: tuple[str, ...], marker: str | None) -> None:
    """Print the index definition owning each PATH, or '-'."""
    from oakreindex.detection import DEFAULT_INDEX_ROOT_MARKER
    from oakreindex.detection import classify as classify_path

    for path in paths:
        root = classify_path(path, marker or DEFAULT_INDEX_ROOT_MARKER)
        click.echo(f"{path}\t{root or '-'}")


@main.command()
@_project_option
@_db_option
@_config_option
@click.option("--marker", default=None, help="Index root node name (overrides the config).")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def definitions(
    *,
    project: Path | None,
    db_path: Path | None,
    config_path: Path | None,
    marker: str | None,
    output_json: bool,
) -> None:
    """List index definitions with their reindex properties."""
    from rich.console import Console
    from rich.table import Table

    from oakreindex.detection import is_definition_root

    config = _load_config_or_exit(project, config_path)
    index_marker = marker or config.index_root_marker
    names = (config.reindex_property, config.reindex_count_property)
    rows: list[dict[str, object]] = []
    with _open_existing(_resolve_db(project, db_path)) as session:
        for path in session.list_nodes():
            if not is_definition_root(path, index_marker):
                continue
            row: dict[str, object] = {"path": path}
            for name in names:
                row[name] = session.get_property(path, name)
            rows.append(row)

    if output_json:
        click.echo(json.dumps(rows, indent=2, ensure_ascii=False))
        return
    if not rows:
        click.echo("No index definitions found.")
        return

    table = Table(title="Index definitions", box=None, padding=(0, 1))
    table.add_column("path", style="cyan")
    for name in names:
        table.add_column(name, justify="right")
    for row in rows:
        table.add_row(
            str(row["path"]),
            *("-" if row[name] is None else json.dumps(row[name]) for name in names),
        )
    Console().print(table)
