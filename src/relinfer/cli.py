"""Relinfer CLI - inspect inferred table schemas and manage their cache.

Provides the `relinfer` command:
    relinfer tables [--fields]   List tables of a connection
    relinfer show TABLE          Show the inferred schema of a table
    relinfer warm-up TABLE...    Cache schemas for tables
    relinfer refresh [TABLE...]  Drop cached schemas, optionally re-caching some
    relinfer clear [--all]       Drop cached schemas
    relinfer digest              Show the current migration digest

Connections are configured under [connections] in $RELINFER_HOME/config.toml.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler

from relinfer.cache import SchemaCache
from relinfer.config import RelinferConfig
from relinfer.db.introspection import list_tables
from relinfer.digest import migrations_digest
from relinfer.errors import IntrospectionError, UnsupportedEngine
from relinfer.inference import infer_schema
from relinfer.summary import format_schema, format_schema_summary

if TYPE_CHECKING:
    from relinfer.db.connection import Connection

err_console = Console(stderr=True)


def _configure_logging(level: str) -> None:
    """Send relinfer log records to stderr through rich."""
    logger = logging.getLogger("relinfer")
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=err_console, show_path=False))
    logger.setLevel(level)


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]Error: {message}[/red]", highlight=False)
    raise SystemExit(1)


def connection_option(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the --connection option to a command."""
    return click.option(
        "--connection",
        "-c",
        "connection_name",
        default=None,
        help="Configured connection name (defaults to the only one configured)",
    )(func)


def _get_connection(config: RelinferConfig, name: str | None) -> Connection:
    """Resolve a connection by name, or the single configured one."""
    if name is None:
        if len(config.connections) != 1:
            _fail("Specify --connection; configured: " + (", ".join(sorted(config.connections)) or "(none)"))
        name = next(iter(config.connections))
    try:
        return config.connection(name)
    except KeyError:
        _fail(f"Unknown connection: {name}")
    except UnsupportedEngine as e:
        _fail(str(e))


def _open_cache(config: RelinferConfig) -> SchemaCache:
    return SchemaCache(config.resolved_cache_dir())


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Relinfer - infer normalized table schemas from live databases."""
    ctx.ensure_object(dict)
    config = RelinferConfig.load()
    ctx.obj["config"] = config
    _configure_logging("DEBUG" if verbose else config.log_level)


@cli.command()
@connection_option
@click.option("--fields", "show_fields", is_flag=True, help="Show each table's fields, marking key fields")
@click.pass_context
def tables(ctx: click.Context, connection_name: str | None, show_fields: bool) -> None:
    """List the user tables of a connection."""
    config: RelinferConfig = ctx.obj["config"]
    connection = _get_connection(config, connection_name)

    try:
        names = list_tables(connection)
    except IntrospectionError as e:
        _fail(str(e))

    if show_fields:
        try:
            if config.cache_enabled:
                with _open_cache(config) as cache:
                    schemas = [infer_schema(connection, name, cache=cache) for name in names]
            else:
                schemas = [infer_schema(connection, name) for name in names]
        except IntrospectionError as e:
            _fail(str(e))
        click.echo(format_schema_summary(schemas))
        return

    if not names:
        click.echo("No user tables found")
        return
    for name in names:
        click.echo(name)


@cli.command()
@click.argument("table")
@connection_option
@click.option("--no-cache", is_flag=True, help="Introspect without reading or writing the cache")
@click.pass_context
def show(ctx: click.Context, table: str, connection_name: str | None, no_cache: bool) -> None:
    """Show the inferred schema of TABLE."""
    config: RelinferConfig = ctx.obj["config"]
    connection = _get_connection(config, connection_name)

    try:
        if no_cache or not config.cache_enabled:
            schema = infer_schema(connection, table)
        else:
            with _open_cache(config) as cache:
                schema = infer_schema(connection, table, cache=cache)
    except IntrospectionError as e:
        _fail(str(e))

    click.echo(format_schema(schema))


@cli.command("warm-up")
@click.argument("table_names", nargs=-1, required=True)
@connection_option
@click.pass_context
def warm_up(ctx: click.Context, table_names: tuple[str, ...], connection_name: str | None) -> None:
    """Cache the schemas of TABLE_NAMES."""
    config: RelinferConfig = ctx.obj["config"]
    connection = _get_connection(config, connection_name)

    with _open_cache(config) as cache:
        result = cache.warm_up(connection, table_names)

    click.echo(f"Cached {len(result.schemas)} of {len(table_names)} tables")
    for table, error in result.errors.items():
        err_console.print(f"[yellow]{table}: {error}[/yellow]", highlight=False)
    if not result.ok:
        raise SystemExit(1)


@cli.command()
@click.argument("table_names", nargs=-1)
@connection_option
@click.pass_context
def refresh(ctx: click.Context, table_names: tuple[str, ...], connection_name: str | None) -> None:
    """Drop cached schemas of a connection and re-cache TABLE_NAMES."""
    config: RelinferConfig = ctx.obj["config"]
    connection = _get_connection(config, connection_name)

    with _open_cache(config) as cache:
        result = cache.refresh(connection, list(table_names) or None)

    click.echo(f"Cleared cache for {connection.name}")
    if table_names:
        click.echo(f"Cached {len(result.schemas)} of {len(table_names)} tables")
    for table, error in result.errors.items():
        err_console.print(f"[yellow]{table}: {error}[/yellow]", highlight=False)
    if not result.ok:
        raise SystemExit(1)


@cli.command()
@connection_option
@click.option("--all", "clear_everything", is_flag=True, help="Clear cached schemas of every connection")
@click.pass_context
def clear(ctx: click.Context, connection_name: str | None, clear_everything: bool) -> None:
    """Drop cached schemas."""
    config: RelinferConfig = ctx.obj["config"]

    if clear_everything:
        with _open_cache(config) as cache:
            cache.clear_all()
        click.echo("Cleared all cached schemas")
        return

    connection = _get_connection(config, connection_name)
    with _open_cache(config) as cache:
        cache.clear(connection)
    click.echo(f"Cleared cache for {connection.name}")


@cli.command()
@connection_option
@click.pass_context
def digest(ctx: click.Context, connection_name: str | None) -> None:
    """Show the migration digest of a connection."""
    config: RelinferConfig = ctx.obj["config"]
    connection = _get_connection(config, connection_name)

    try:
        value = migrations_digest(connection.migration_source())
    except OSError as e:
        _fail(f"Cannot read migrations: {e}")

    click.echo(value)


def main() -> None:
    """Entry point for the relinfer CLI."""
    cli()


if __name__ == "__main__":
    main()
