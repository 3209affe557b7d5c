"""CLI module for schema dumps, seed capture/replay and migration flattening.

Usage:
    DB_PROFILE=dev seedkit connect
    seedkit status
    seedkit profiles
    seedkit dump -o schema.sql
    seedkit seed create dev --schemas public,billing
    seedkit seed apply dev --yes
    seedkit flatten --yes
    seedkit migrations new add_users
    seedkit migrations check --base-dir ../main/migrations

Commands:
    connect     - Test the connection and remember the profile
    status      - Show current connection status
    profiles    - List available profiles
    dump        - Print the schema DDL in creation order
    seed        - Capture (create) or replay (apply) seed data
    flatten     - Collapse applied migrations into one baseline
    migrations  - Create or check migration files
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Coroutine

import psycopg
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from seedkit.config.loader import load_config, load_config_or_default
from seedkit.config.models import SeedkitConfig
from seedkit.errors import SeedkitError
from seedkit.factory import (
    connect,
    connect_and_check,
    read_profile_lock,
    redact_url,
    resolve_database_url,
)
from seedkit.migrate.files import check_migrations, create_migration, list_migrations
from seedkit.migrate.flatten import flatten_migrations
from seedkit.schema.ddl import build_exclusion_set, dump_schema
from seedkit.schema.introspector import CatalogReader
from seedkit.seed.artifacts import SCRIPT_FILE, load_seed_dir, write_seed_file
from seedkit.seed.capture import capture_seed
from seedkit.seed.replay import replay_seed

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG with ``-v``."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _fail(message: str) -> int:
    console.print(f"[bold red]x[/bold red] {escape(message)}")
    return 1


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _load_config(args: argparse.Namespace) -> SeedkitConfig:
    return load_config_or_default(_config_path(args))


def _resolve(args: argparse.Namespace) -> str:
    """Resolve the connection URL for a command and echo where it points."""
    url, profile = resolve_database_url(
        database_url=getattr(args, "database_url", None),
        env_prefix=getattr(args, "env_prefix", ""),
        config_path=_config_path(args),
    )
    target = f"profile [bold cyan]{profile}[/bold cyan]" if profile else escape(redact_url(url))
    console.print(f"[dim]Database:[/dim] {target}")
    return url


def _confirm(prompt: str) -> bool:
    response = input(f"{prompt} [y/N] ")
    return response.strip().lower() in ("y", "yes")


def _run(coro: Coroutine[Any, Any, int]) -> int:
    """Run an async command, turning expected failures into exit code 1."""
    try:
        return asyncio.run(coro)
    except (SeedkitError, psycopg.Error, OSError, ValueError) as e:
        return _fail(str(e))


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    """Async implementation for connect command.

    Args:
        args: Parsed arguments with profile, database_url, env_prefix, config.

    Returns:
        0 on success, 1 on failure.
    """
    previous_profile = read_profile_lock()

    console.print("Connecting to database...", style="dim")

    result = await connect_and_check(
        profile_name=getattr(args, "profile", None),
        env_prefix=getattr(args, "env_prefix", ""),
        database_url=getattr(args, "database_url", None),
        config_path=_config_path(args),
    )

    console.print()
    if not result.success:
        return _fail(result.error or "Connection failed")

    name = result.profile_name or escape(result.redacted_url or "")
    console.print(f"[bold green]v[/bold green] Connected to: [bold cyan]{name}[/bold cyan]")
    console.print(f"  PostgreSQL {result.server_version}")

    if result.profile_name and previous_profile and previous_profile != result.profile_name:
        console.print(
            f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
            f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
        )
    return 0


async def _async_dump(args: argparse.Namespace) -> int:
    """Async implementation for dump command.

    DDL goes to stdout (or ``--output``); status lines go to the console.
    """
    config = _load_config(args)
    url = _resolve(args)

    async with connect(url) as conn:
        ddl = await dump_schema(
            conn,
            exclude_tables=args.exclude or [],
            ledger_table=config.migrations.ledger_table,
        )

    if args.output:
        output = Path(args.output)
        output.write_text(ddl)
        console.print(f"[bold green]v[/bold green] Schema written to {output}")
    else:
        sys.stdout.write(ddl)
    return 0


async def _async_seed_create(args: argparse.Namespace) -> int:
    """Async implementation for ``seed create``.

    Captures every table in scope by running ``seed/<name>/dump.sql`` against
    temporary staging tables, writes ``seed/<name>/load.sql`` and then
    flattens applied migrations (unless ``--no-flatten`` or ``--dry-run``).
    """
    config = _load_config(args)
    seed_path = Path(config.paths.seed_dir) / args.name
    migrations_dir = Path(config.paths.migrations_dir)
    ledger = config.migrations.ledger_table
    schemas = None if args.all_schemas else (_split_csv(args.schemas) or config.schemas)

    url = _resolve(args)
    async with connect(url) as conn:
        tables = await CatalogReader(conn).list_tables(
            schemas=schemas, exclude=build_exclusion_set(None, ledger)
        )
        if not tables:
            return _fail("No tables found in the selected schemas")

        artifacts = await capture_seed(conn, tables, seed_path / SCRIPT_FILE)

        summary = Table(title=f"Seed: {args.name}", show_header=True, header_style="bold")
        summary.add_column("Table")
        summary.add_column("Rows", justify="right")
        for artifact in artifacts:
            rows = str(len(artifact.statements)) if artifact.statements else "[dim]0[/dim]"
            summary.add_row(artifact.table.qualified_name, rows)
        console.print(summary)

        if args.dry_run:
            console.print("\n[yellow]Dry run: nothing written[/yellow]")
            return 0

        load_file = write_seed_file(seed_path, artifacts)
        console.print(f"[bold green]v[/bold green] Seed written to {load_file}")

        if args.no_flatten:
            return 0
        if not migrations_dir.is_dir():
            console.print(f"[dim]No migrations directory at {migrations_dir}; skipping flatten[/dim]")
            return 0

        result = await flatten_migrations(conn, migrations_dir, ledger)

    if result.flattened and result.baseline is not None:
        console.print(
            f"[bold green]v[/bold green] Flattened {len(result.removed)} migration(s) "
            f"into {result.baseline.name}"
        )
    else:
        console.print("[dim]No applied migrations to flatten[/dim]")
    return 0


async def _async_seed_apply(args: argparse.Namespace) -> int:
    """Async implementation for ``seed apply``.

    Replaces the contents of every table in ``seed/<name>/load.sql`` in one
    transaction. Run the migration runner first so the schema matches.
    """
    config = _load_config(args)
    seed_path = Path(config.paths.seed_dir) / args.name
    artifacts = load_seed_dir(seed_path, allow_legacy=args.allow_legacy)

    url = _resolve(args)
    if not args.yes:
        console.print(
            f"[yellow]This will TRUNCATE {len(artifacts)} table(s) and load seed "
            f"'{escape(args.name)}'.[/yellow]"
        )
        if not _confirm("Continue?"):
            console.print("Cancelled.")
            return 0

    async with connect(url) as conn:
        result = await replay_seed(conn, artifacts)

    console.print(
        f"[bold green]v[/bold green] Loaded {result.statement_count} row(s) "
        f"into {len(result.load_order)} table(s)"
    )
    if result.empty_tables:
        console.print(f"  Empty: [dim]{', '.join(result.empty_tables)}[/dim]")
    return 0


async def _async_flatten(args: argparse.Namespace) -> int:
    """Async implementation for flatten command."""
    config = _load_config(args)
    migrations_dir = Path(config.paths.migrations_dir)

    url = _resolve(args)
    if not args.yes:
        console.print(
            f"[yellow]Applied migrations in {migrations_dir} will be replaced "
            f"by a single baseline.[/yellow]"
        )
        if not _confirm("Continue?"):
            console.print("Cancelled.")
            return 0

    async with connect(url) as conn:
        result = await flatten_migrations(conn, migrations_dir, config.migrations.ledger_table)

    if not result.flattened or result.baseline is None:
        console.print("[dim]No applied migrations to flatten[/dim]")
        return 0

    console.print(
        f"[bold green]v[/bold green] Flattened {len(result.removed)} migration(s) "
        f"into {result.baseline.name}"
    )
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """Connect to the database and remember the profile.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return _run(_async_connect(args))


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files -- no database calls.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if not profile:
        console.print("[yellow]No connected profile.[/yellow]")
        console.print("[dim]Run:[/dim] [cyan]DB_PROFILE=<name> seedkit connect[/cyan]")
        return 0

    table = Table(title="Connection Status", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
    table.add_row("Profile source", ".seedkit-profile")

    try:
        config = load_config(_config_path(args))
        if profile in config.profiles:
            p = config.profiles[profile]
            table.add_row("URL", escape(redact_url(p.url)))
            if p.description:
                table.add_row("Description", p.description)
        table.add_row("Migrations", config.paths.migrations_dir)
        table.add_row("Seeds", config.paths.seed_dir)
    except FileNotFoundError:
        table.add_row("Warning", "[yellow]seedkit.toml not found[/yellow]")

    console.print(table)
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from seedkit.toml.

    Returns:
        0 on success, 1 if seedkit.toml not found or invalid.
    """
    try:
        config = load_config(_config_path(args))
    except (FileNotFoundError, ValueError) as e:
        return _fail(str(e))

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("URL")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        label = f"[bold cyan]{name}[/bold cyan]" if name == current else name
        table.add_row(marker, label, escape(redact_url(profile.url)), profile.description)

    console.print(table)
    if current:
        console.print("\n[bold green]*[/bold green] = current profile")
    return 0


def cmd_dump(args: argparse.Namespace) -> int:
    """Print the schema DDL in creation order."""
    return _run(_async_dump(args))


def cmd_seed_create(args: argparse.Namespace) -> int:
    """Capture seed data for the named seed."""
    return _run(_async_seed_create(args))


def cmd_seed_apply(args: argparse.Namespace) -> int:
    """Replay the named seed into the database."""
    return _run(_async_seed_apply(args))


def cmd_flatten(args: argparse.Namespace) -> int:
    """Collapse applied migrations into a single baseline."""
    return _run(_async_flatten(args))


def cmd_migrations_new(args: argparse.Namespace) -> int:
    """Create an empty goose migration file."""
    config = _load_config(args)
    try:
        path = create_migration(Path(config.paths.migrations_dir), args.name)
    except (SeedkitError, OSError) as e:
        return _fail(str(e))
    console.print(f"[bold green]v[/bold green] Created {path}")
    return 0


def cmd_migrations_check(args: argparse.Namespace) -> int:
    """Validate migration file names and versions.

    Returns:
        0 when all files are valid, 1 otherwise.
    """
    config = _load_config(args)
    migrations_dir = Path(config.paths.migrations_dir)

    base_versions = None
    if args.base_dir:
        base_versions = {m.version for m in list_migrations(Path(args.base_dir))}

    problems = check_migrations(migrations_dir, base_versions)
    if problems:
        for problem in problems:
            _fail(problem)
        return 1

    count = len(list_migrations(migrations_dir))
    console.print(f"[bold green]v[/bold green] {count} migration file(s) OK")
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every subcommand registered."""
    parser = argparse.ArgumentParser(
        prog="seedkit",
        description="PostgreSQL schema dumps, seed data and migration flattening",
    )

    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE and APP_DATABASE_URL)"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to seedkit.toml (default: ./seedkit.toml)",
    )
    parser.add_argument(
        "--database-url",
        "-d",
        default=None,
        help="Connection URL; overrides profiles and environment",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # connect command
    p_connect = subparsers.add_parser("connect", help="Test the connection and remember the profile")
    p_connect.add_argument("--profile", "-p", default=None, help="Profile name from seedkit.toml")
    p_connect.set_defaults(func=cmd_connect)

    # status command
    p_status = subparsers.add_parser("status", help="Show current connection status")
    p_status.set_defaults(func=cmd_status)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    # dump command
    p_dump = subparsers.add_parser("dump", help="Print the schema DDL in creation order")
    p_dump.add_argument("--output", "-o", default=None, help="Write DDL to this file")
    p_dump.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="TABLE",
        help="Table to leave out (schema.table or bare name); repeatable",
    )
    p_dump.set_defaults(func=cmd_dump)

    # seed commands
    p_seed = subparsers.add_parser("seed", help="Capture or replay seed data")
    seed_sub = p_seed.add_subparsers(dest="seed_command", required=True)

    p_create = seed_sub.add_parser("create", help="Capture seed/<name>/load.sql from seed/<name>/dump.sql")
    p_create.add_argument("name", help="Seed name (directory under the seed dir)")
    scope = p_create.add_mutually_exclusive_group()
    scope.add_argument("--schemas", default=None, help="Comma-separated schemas to capture (default: public)")
    scope.add_argument("--all-schemas", action="store_true", help="Capture every non-system schema")
    p_create.add_argument("--dry-run", action="store_true", help="Capture and report without writing files")
    p_create.add_argument("--no-flatten", action="store_true", help="Do not flatten migrations afterwards")
    p_create.set_defaults(func=cmd_seed_create)

    p_apply = seed_sub.add_parser("apply", help="Replay seed/<name>/load.sql")
    p_apply.add_argument("name", help="Seed name (directory under the seed dir)")
    p_apply.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_apply.add_argument(
        "--allow-legacy",
        action="store_true",
        help="Accept per-table <schema>.<table>.sql files when load.sql is missing",
    )
    p_apply.set_defaults(func=cmd_seed_apply)

    # flatten command
    p_flatten = subparsers.add_parser("flatten", help="Collapse applied migrations into one baseline")
    p_flatten.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_flatten.set_defaults(func=cmd_flatten)

    # migrations commands
    p_migrations = subparsers.add_parser("migrations", help="Create or check migration files")
    migrations_sub = p_migrations.add_subparsers(dest="migrations_command", required=True)

    p_new = migrations_sub.add_parser("new", help="Create an empty timestamped migration")
    p_new.add_argument("name", help="Migration name (e.g. add_users)")
    p_new.set_defaults(func=cmd_migrations_new)

    p_check = migrations_sub.add_parser("check", help="Validate migration file names")
    p_check.add_argument(
        "--base-dir",
        default=None,
        help="Migrations directory of the base branch; new versions must sort after it",
    )
    p_check.set_defaults(func=cmd_migrations_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
