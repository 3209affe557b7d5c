"""Transactional seed replay.

Loads captured artifacts into a target database in one transaction:

1. Compute the FK load order once (before the transaction)
2. ``TRUNCATE TABLE ... CASCADE`` every table in reverse load order
3. Run each table's INSERT statements in load order
4. Commit only after every artifact is applied

Any failure rolls back the whole transaction, so a target is never left
half-seeded. Replaying the same artifacts twice yields the same rows.
"""

import logging
from typing import Iterator

import psycopg
from psycopg import AsyncConnection, sql

from seedkit.errors import SeedReplayError
from seedkit.schema.models import TableRef
from seedkit.schema.ordering import dependency_order, truncate_order
from seedkit.seed.models import ReplayResult, SeedArtifact

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


def _batches(statements: list[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(statements), size):
        yield statements[start : start + size]


async def replay_seed(
    conn: AsyncConnection,
    artifacts: list[SeedArtifact],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> ReplayResult:
    """Replay seed artifacts into the connected database.

    Args:
        conn: Open psycopg async connection with no transaction in progress.
        artifacts: Artifacts to load, one per table.
        batch_size: INSERT statements sent per round trip.

    Returns:
        ReplayResult with the load order and statement count.

    Raises:
        SeedReplayError: If any statement fails; nothing is committed.

    Example:
        >>> artifacts = load_seed_dir(Path("seed/dev"))
        >>> result = await replay_seed(conn, artifacts)
        >>> result.load_order
        ['public.users', 'public.orders']
    """
    by_table: dict[str, SeedArtifact] = {}
    for artifact in artifacts:
        key = artifact.table.qualified_name
        if key in by_table:
            raise SeedReplayError(f"Duplicate artifact for table {key}", table=key)
        by_table[key] = artifact

    load_order = await dependency_order(conn, list(by_table))
    logger.debug(f"Load order: {', '.join(load_order)}")

    result = ReplayResult(load_order=load_order)
    current: str | None = None
    try:
        async with conn.transaction():
            for key in truncate_order(load_order):
                current = key
                table = TableRef.parse(key)
                await conn.execute(
                    sql.SQL("TRUNCATE TABLE {} CASCADE").format(
                        sql.Identifier(table.schema_name, table.name)
                    )
                )

            for key in load_order:
                current = key
                statements = by_table[key].statements
                if not statements:
                    result.empty_tables.append(key)
                    continue
                for batch in _batches(statements, batch_size):
                    await conn.execute("\n".join(batch))
                result.statement_count += len(statements)
                logger.info(f"Loaded {len(statements)} row(s) into {key}")
    except psycopg.Error as e:
        raise SeedReplayError(f"Seed replay failed on {current}: {e}", table=current) from e

    return result
