"""Migration flattening.

Collapses every applied migration into one baseline file holding the current
schema DDL:

1. Read applied versions from the migration ledger (``version_id``,
   ``is_applied``); nothing applied means nothing to do
2. Dump the schema, excluding the ledger table
3. Replace the applied migration files with ``<latest>_initial.sql``

Step 3 is staged so the directory is never left without migrations: the
baseline is written to a temporary file, the old files are moved into a
backup directory, the baseline is moved into place, and only then is the
backup removed. Any failure moves the old files back.
"""

import logging
import os
import shutil
from pathlib import Path

import psycopg
from psycopg import AsyncConnection, sql
from pydantic import BaseModel, Field

from seedkit.errors import CatalogQueryError, FlattenError
from seedkit.migrate.files import files_for_version
from seedkit.schema.ddl import DEFAULT_LEDGER_TABLE, dump_schema
from seedkit.schema.introspector import CatalogReader
from seedkit.schema.models import TableRef

logger = logging.getLogger(__name__)

BACKUP_DIR_NAME = ".flatten-backup"


class FlattenResult(BaseModel):
    """Outcome of a flatten run."""

    flattened: bool = False
    baseline: Path | None = None
    latest_version: str | None = None
    removed: list[Path] = Field(default_factory=list)


def render_baseline(ddl: str) -> str:
    """Wrap schema DDL in goose Up annotations."""
    return (
        "-- +goose Up\n"
        "-- +goose StatementBegin\n"
        f"{ddl}"
        "\n-- +goose StatementEnd\n"
    )


async def read_applied_versions(
    conn: AsyncConnection, ledger_table: str = DEFAULT_LEDGER_TABLE
) -> list[str]:
    """Read applied migration versions, oldest first.

    A missing ledger table means no migration has run. Version 0 is the
    runner's own bookkeeping row and is skipped.

    Args:
        conn: Open psycopg async connection.
        ledger_table: Ledger table, bare or ``schema.table``.

    Returns:
        Applied versions as strings (matching file name prefixes).
    """
    reader = CatalogReader(conn)
    if not await reader.relation_exists(ledger_table):
        logger.info(f"Ledger table {ledger_table} not found; no migrations applied")
        return []

    if "." in ledger_table:
        table = TableRef.parse(ledger_table)
        ident = sql.Identifier(table.schema_name, table.name)
    else:
        ident = sql.Identifier(ledger_table)

    query = sql.SQL(
        "SELECT DISTINCT version_id FROM {} "
        "WHERE is_applied AND version_id > 0 ORDER BY version_id"
    ).format(ident)
    try:
        cur = await conn.execute(query)
        rows = await cur.fetchall()
    except psycopg.Error as e:
        raise CatalogQueryError(f"migration ledger {ledger_table}", e) from e

    return [str(row[0]).strip() for row in rows if str(row[0]).strip()]


def replace_migration_files(
    migrations_dir: Path, old_files: list[Path], baseline: Path, content: str
) -> None:
    """Swap ``old_files`` for ``baseline`` without a window of zero files.

    Raises:
        FlattenError: On any filesystem failure, after restoring old files.
    """
    backup_dir = migrations_dir / BACKUP_DIR_NAME
    if backup_dir.exists():
        raise FlattenError(
            f"{backup_dir} exists from an interrupted flatten. "
            f"Move its files back into {migrations_dir} and remove it first."
        )

    tmp = migrations_dir / f".{baseline.name}.tmp"
    moved: list[tuple[Path, Path]] = []
    try:
        tmp.write_text(content)
        backup_dir.mkdir()
        for path in old_files:
            backup = backup_dir / path.name
            os.replace(path, backup)
            moved.append((path, backup))
        os.replace(tmp, baseline)
    except OSError as e:
        for original, backup in reversed(moved):
            os.replace(backup, original)
        if tmp.exists():
            tmp.unlink()
        if backup_dir.exists():
            backup_dir.rmdir()
        raise FlattenError(f"Flatten failed, migration files restored: {e}") from e

    shutil.rmtree(backup_dir)


async def flatten_migrations(
    conn: AsyncConnection,
    migrations_dir: Path,
    ledger_table: str = DEFAULT_LEDGER_TABLE,
) -> FlattenResult:
    """Replace applied migration files with a single schema baseline.

    Args:
        conn: Open psycopg async connection to the migrated database.
        migrations_dir: Directory holding ``<version>_<name>.sql`` files.
        ledger_table: Migration ledger table.

    Returns:
        FlattenResult; ``flattened`` is False when nothing was applied.

    Raises:
        FlattenError: If the directory is missing or files cannot be replaced.
        CatalogQueryError: If the ledger or schema cannot be read.

    Example:
        >>> result = await flatten_migrations(conn, Path("migrations"))
        >>> result.baseline
        PosixPath('migrations/20240301000000_initial.sql')
    """
    if not migrations_dir.is_dir():
        raise FlattenError(f"Migrations directory not found: {migrations_dir}")

    versions = await read_applied_versions(conn, ledger_table)
    if not versions:
        logger.info("No applied migrations found, skipping flatten")
        return FlattenResult()

    latest = versions[-1]
    ddl = await dump_schema(conn, exclude_tables=[ledger_table], ledger_table=ledger_table)

    old_files: list[Path] = []
    for version in versions:
        old_files.extend(files_for_version(migrations_dir, version))

    baseline = migrations_dir / f"{latest}_initial.sql"
    replace_migration_files(migrations_dir, old_files, baseline, render_baseline(ddl))
    logger.info(
        f"Flattened {len(old_files)} migration file(s) into {baseline.name}"
    )

    return FlattenResult(
        flattened=True,
        baseline=baseline,
        latest_version=latest,
        removed=[p for p in old_files if p != baseline],
    )
