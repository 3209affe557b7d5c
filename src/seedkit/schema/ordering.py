"""Foreign-key dependency ordering of tables.

``order_tables`` is pure: given table keys (``schema.table``) and FK edges it
returns a load order where every referenced table precedes the tables that
reference it. Truncation uses the reverse of that order.

``dependency_order`` is the connected variant used by seed replay: it reads
the edges from the catalog and keeps the input order when that read fails.
"""

import bisect
import logging
from typing import Iterable

from psycopg import AsyncConnection

from seedkit.errors import CatalogQueryError
from seedkit.schema.introspector import CatalogReader
from seedkit.schema.models import ForeignKeyEdge

logger = logging.getLogger(__name__)


def order_tables(tables: list[str], edges: Iterable[ForeignKeyEdge]) -> list[str]:
    """Topologically sort tables with Kahn's algorithm.

    Each table's counter starts at the number of *other* in-set tables it
    depends on. Zero-counter tables wait in a ready queue kept in alphabetical
    order, so ties always break the same way. Tables left over by a cycle are
    appended in their input order.

    Args:
        tables: Table keys to order. Duplicates are collapsed.
        edges: FK edges (dependent -> referenced). Edges touching tables
            outside ``tables`` and self-references are ignored.

    Returns:
        Every input table exactly once, parents first.

    Example:
        >>> order_tables(
        ...     ["public.child", "public.parent"],
        ...     [ForeignKeyEdge(dependent="public.child", referenced="public.parent")],
        ... )
        ['public.parent', 'public.child']
    """
    unique_tables = list(dict.fromkeys(tables))
    in_set = set(unique_tables)

    depends_on: dict[str, set[str]] = {t: set() for t in unique_tables}
    dependents: dict[str, set[str]] = {t: set() for t in unique_tables}
    for edge in edges:
        if edge.dependent == edge.referenced:
            continue
        if edge.dependent in in_set and edge.referenced in in_set:
            depends_on[edge.dependent].add(edge.referenced)
            dependents[edge.referenced].add(edge.dependent)

    pending = {t: len(depends_on[t]) for t in unique_tables}
    ready = sorted(t for t in unique_tables if pending[t] == 0)

    result: list[str] = []
    while ready:
        table = ready.pop(0)
        result.append(table)
        for other in dependents[table]:
            pending[other] -= 1
            if pending[other] == 0:
                bisect.insort(ready, other)

    if len(result) < len(unique_tables):
        emitted = set(result)
        remaining = [t for t in unique_tables if t not in emitted]
        logger.warning(
            f"Foreign-key cycle among {len(remaining)} table(s); "
            f"appending in input order: {', '.join(remaining)}"
        )
        result.extend(remaining)

    return result


def truncate_order(load_order: list[str]) -> list[str]:
    """Reverse a load order so dependents are truncated before their parents."""
    return list(reversed(load_order))


async def dependency_order(conn: AsyncConnection, tables: list[str]) -> list[str]:
    """Order tables by the live database's foreign keys.

    Args:
        conn: Open psycopg async connection.
        tables: Table keys (``schema.table``) to order.

    Returns:
        Tables in load order. When the edge query fails the input order is
        returned unchanged and a warning is logged.
    """
    if not tables:
        return []

    try:
        edges = await CatalogReader(conn).foreign_key_edges()
    except CatalogQueryError as e:
        logger.warning(f"Could not read foreign keys, keeping input order: {e}")
        return list(dict.fromkeys(tables))

    return order_tables(tables, edges)
