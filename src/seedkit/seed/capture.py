"""Seed capture through temporary staging tables.

The capture protocol runs inside one transaction that is always rolled back:

1. ``CREATE TEMP TABLE "seed.<schema>.<table>" (LIKE <schema>.<table> INCLUDING ALL)``
   for every table in scope
2. Run the user's population script verbatim. It ``INSERT``s into the
   staging tables and may read the real tables to pick rows.
3. Read every staging table back and render one ``INSERT INTO`` the real
   table per row
4. Roll back, so the source database is never changed

Usage:
    from seedkit.seed.capture import capture_seed

    async with connect(url) as conn:
        tables = await CatalogReader(conn).list_tables(["public"])
        artifacts = await capture_seed(conn, tables, Path("seed/dev/dump.sql"))
"""

import logging
from pathlib import Path

import psycopg
from psycopg import AsyncConnection, sql
from psycopg.types.string import TextLoader

from seedkit.errors import CatalogQueryError, SeedCaptureError
from seedkit.literals import quote_identifier, serialize_value
from seedkit.schema.introspector import CatalogReader
from seedkit.schema.models import TableRef
from seedkit.seed.models import SeedArtifact, TableSnapshot, staging_name

logger = logging.getLogger(__name__)

# Read back as server text: the Python types cannot hold infinity or
# month-based intervals
TEXT_LOADED_TYPES = ("date", "time", "timetz", "timestamp", "timestamptz", "interval")


def read_population_script(script_path: Path | None) -> str | None:
    """Read the user's population script, or warn and return None if absent."""
    if script_path is None:
        return None
    if not script_path.exists():
        logger.warning(
            f"Population script not found: {script_path}; "
            f"capturing empty staging tables"
        )
        return None
    return script_path.read_text()


def render_insert(snapshot: TableSnapshot, values: tuple) -> str:
    """Render one captured row as an INSERT into the real table.

    Args:
        snapshot: Table and its insertable columns.
        values: Row values, positionally matching ``snapshot.insert_columns``.

    Returns:
        ``INSERT INTO "s"."t" ("a", "b") VALUES (..., ...);``, with
        ``OVERRIDING SYSTEM VALUE`` when a column is GENERATED ALWAYS AS
        IDENTITY.
    """
    columns = snapshot.insert_columns
    if not columns:
        return f"INSERT INTO {snapshot.table.quoted_name} DEFAULT VALUES;"
    names = ", ".join(quote_identifier(c.name) for c in columns)
    literals = ", ".join(
        serialize_value(value, column.data_type) for value, column in zip(values, columns)
    )
    override = " OVERRIDING SYSTEM VALUE" if snapshot.overrides_identity else ""
    return f"INSERT INTO {snapshot.table.quoted_name} ({names}){override} VALUES ({literals});"


async def create_staging_tables(conn: AsyncConnection, tables: list[TableRef]) -> None:
    """Create one structure-identical temp table per real table."""
    for table in tables:
        await conn.execute(
            sql.SQL("CREATE TEMP TABLE {} (LIKE {} INCLUDING ALL)").format(
                sql.Identifier(staging_name(table)),
                sql.Identifier(table.schema_name, table.name),
            )
        )


async def export_staging_table(conn: AsyncConnection, snapshot: TableSnapshot) -> SeedArtifact:
    """Read every row of a staging table and render it as INSERT statements."""
    statements: list[str] = []
    columns = snapshot.insert_columns
    if columns:
        query = sql.SQL("SELECT {} FROM {}").format(
            sql.SQL(", ").join(sql.Identifier(c.name) for c in columns),
            sql.Identifier("pg_temp", snapshot.staging_name),
        )
    else:
        query = sql.SQL("SELECT FROM {}").format(
            sql.Identifier("pg_temp", snapshot.staging_name)
        )
    async with conn.cursor() as cur:
        for type_name in TEXT_LOADED_TYPES:
            cur.adapters.register_loader(type_name, TextLoader)
        await cur.execute(query)
        async for row in cur:
            statements.append(render_insert(snapshot, row))
    return SeedArtifact(table=snapshot.table, statements=statements)


async def capture_seed(
    conn: AsyncConnection,
    tables: list[TableRef],
    script_path: Path | None,
) -> list[SeedArtifact]:
    """Capture seed data for the given tables without changing the database.

    Args:
        conn: Open psycopg async connection with no transaction in progress.
        tables: Real tables in scope.
        script_path: User population script; missing means empty capture.

    Returns:
        One SeedArtifact per table that could be read back, in input order.
        Tables whose staging columns cannot be found are skipped with a
        warning.

    Raises:
        SeedCaptureError: If any statement fails. The transaction is rolled
            back either way.
    """
    script = read_population_script(script_path)
    reader = CatalogReader(conn)
    artifacts: list[SeedArtifact] = []
    step = "creating staging tables"

    try:
        async with conn.transaction(force_rollback=True):
            await create_staging_tables(conn, tables)

            if script is not None and script.strip():
                step = f"running {script_path}"
                logger.info(f"Running population script {script_path}")
                await conn.execute(script)

            for table in tables:
                step = f"exporting {table}"
                columns = await reader.staging_columns(staging_name(table))
                if not columns:
                    logger.warning(f"No staging columns found for {table}; skipping")
                    continue
                snapshot = TableSnapshot(table=table, columns=columns)
                artifact = await export_staging_table(conn, snapshot)
                logger.info(f"Captured {len(artifact.statements)} row(s) from {table}")
                artifacts.append(artifact)
    except (psycopg.Error, CatalogQueryError) as e:
        raise SeedCaptureError(f"Seed capture failed while {step}: {e}") from e

    return artifacts
