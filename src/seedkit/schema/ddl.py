"""Schema DDL synthesis.

Reads every schema object through ``CatalogReader`` and assembles one SQL
script in creation-dependency order (see ``PHASE_ORDER``):

    schemas -> extensions -> enums -> domains -> composites -> sequences
    -> non-SQL functions -> tables -> SQL functions -> views
    -> primary keys -> unique -> check -> foreign keys -> indexes -> triggers

Reading and assembling are separate steps: ``read_schema_objects`` talks to
the database, ``render_ddl`` is a pure function over the collected objects.

Usage:
    from seedkit.schema.ddl import dump_schema

    async with connect(url) as conn:
        sql = await dump_schema(conn, exclude_tables=["audit_log"])
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Iterable

from psycopg import AsyncConnection
from psycopg.pq import TransactionStatus

from seedkit.schema.introspector import CatalogReader
from seedkit.schema.models import PHASE_HEADERS, PHASE_ORDER, ObjectKind, SchemaObject

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_TABLE = "goose_db_version"


def build_exclusion_set(
    exclude_tables: Iterable[str] | None = None,
    ledger_table: str = DEFAULT_LEDGER_TABLE,
) -> set[str]:
    """Build the table exclusion set; the migration ledger is always in it."""
    exclude = set(exclude_tables or [])
    exclude.add(ledger_table)
    return exclude


def _phase_readers(
    reader: CatalogReader, exclude: set[str]
) -> dict[ObjectKind, Callable[[], Awaitable[list[SchemaObject]]]]:
    return {
        ObjectKind.SCHEMA: reader.schemas,
        ObjectKind.EXTENSION: reader.extensions,
        ObjectKind.ENUM: reader.enums,
        ObjectKind.DOMAIN: reader.domains,
        ObjectKind.COMPOSITE: reader.composites,
        ObjectKind.SEQUENCE: lambda: reader.sequences(exclude),
        ObjectKind.FUNCTION_EARLY: lambda: reader.functions(sql_language=False),
        ObjectKind.TABLE: lambda: reader.tables(exclude),
        ObjectKind.FUNCTION_LATE: lambda: reader.functions(sql_language=True),
        ObjectKind.VIEW: lambda: reader.views(exclude),
        ObjectKind.PRIMARY_KEY: lambda: reader.constraints(ObjectKind.PRIMARY_KEY, exclude),
        ObjectKind.UNIQUE: lambda: reader.constraints(ObjectKind.UNIQUE, exclude),
        ObjectKind.CHECK: lambda: reader.constraints(ObjectKind.CHECK, exclude),
        ObjectKind.FOREIGN_KEY: lambda: reader.constraints(ObjectKind.FOREIGN_KEY, exclude),
        ObjectKind.INDEX: lambda: reader.indexes(exclude),
        ObjectKind.TRIGGER: lambda: reader.triggers(exclude),
    }


async def read_schema_objects(
    reader: CatalogReader, exclude: set[str]
) -> list[SchemaObject]:
    """Read all schema objects, phase by phase.

    Any ``CatalogQueryError`` propagates immediately; nothing read so far is
    returned.
    """
    readers = _phase_readers(reader, exclude)
    objects: list[SchemaObject] = []
    for kind in PHASE_ORDER:
        found = await readers[kind]()
        logger.debug(f"Read {len(found)} {PHASE_HEADERS[kind].lower()}")
        objects.extend(found)
    return objects


def render_ddl(objects: Iterable[SchemaObject]) -> str:
    """Assemble DDL text from schema objects.

    Objects are grouped by kind and emitted in ``PHASE_ORDER``, each group
    under a ``-- <Header>`` comment and followed by a blank line. Within a
    group the input order is kept. Empty groups produce nothing.

    Args:
        objects: Schema objects in any phase order.

    Returns:
        Executable SQL script (empty string when there are no objects).

    Example:
        >>> render_ddl([SchemaObject(kind=ObjectKind.SCHEMA, schema_name="app",
        ...     object_name="app", definition='CREATE SCHEMA "app";')])
        '-- Schemas\\nCREATE SCHEMA "app";\\n'
    """
    grouped: dict[ObjectKind, list[str]] = {kind: [] for kind in PHASE_ORDER}
    for obj in objects:
        grouped[obj.kind].append(obj.definition)

    parts: list[str] = []
    for kind in PHASE_ORDER:
        if not grouped[kind]:
            continue
        parts.append(f"-- {PHASE_HEADERS[kind]}")
        parts.extend(grouped[kind])
        parts.append("")
    return "\n".join(parts)


@asynccontextmanager
async def read_snapshot(conn: AsyncConnection) -> AsyncIterator[None]:
    """Run the enclosed catalog reads in one read-only snapshot.

    Opens a REPEATABLE READ, READ ONLY transaction when the connection is
    idle. When the caller already has a transaction open, reads join it.
    """
    if conn.info.transaction_status != TransactionStatus.IDLE:
        yield
        return

    async with conn.transaction():
        await conn.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")
        yield


async def dump_schema(
    conn: AsyncConnection,
    exclude_tables: Iterable[str] | None = None,
    ledger_table: str = DEFAULT_LEDGER_TABLE,
) -> str:
    """Dump the live schema as executable DDL.

    Args:
        conn: Open psycopg async connection.
        exclude_tables: Tables (``schema.table`` or bare name) whose table,
            view, owned sequences, constraints, indexes and triggers are
            left out.
        ledger_table: Migration ledger table, always excluded.

    Returns:
        DDL script in creation-dependency order.

    Raises:
        CatalogQueryError: If any catalog query fails (phase in the message).
    """
    exclude = build_exclusion_set(exclude_tables, ledger_table)
    reader = CatalogReader(conn)
    async with read_snapshot(conn):
        objects = await read_schema_objects(reader, exclude)
    logger.info(f"Dumped {len(objects)} schema objects")
    return render_ddl(objects)
