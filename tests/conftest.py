"""Shared fakes for tests that drive seedkit against a psycopg connection.

``FakeConnection`` stands in for ``psycopg.AsyncConnection``: it records
every executed statement (as text), answers queries through a responder
callable, and tracks transaction begin/commit/rollback.
"""

from contextlib import asynccontextmanager
from typing import Any, Callable

import pytest
from psycopg import sql
from psycopg.pq import TransactionStatus


def render_query(query: Any) -> str:
    """Render a str or psycopg.sql composable as plain text for assertions."""
    if isinstance(query, str):
        return query
    if isinstance(query, sql.Composed):
        return "".join(render_query(part) for part in query)
    if isinstance(query, sql.SQL):
        return query._obj
    if isinstance(query, sql.Identifier):
        return ".".join('"' + part.replace('"', '""') + '"' for part in query._obj)
    return str(query)


class FakeAdapters:
    """Records loaders registered on a cursor's adapters map."""

    def __init__(self) -> None:
        self.loaders: dict[Any, type] = {}

    def register_loader(self, cls: Any, loader: type) -> None:
        self.loaders[cls] = loader


class FakeCursor:
    """Minimal async cursor over a fixed list of rows.

    Cursors opened with ``FakeConnection.cursor()`` run their queries through
    the connection, so statements are recorded in one place.
    """

    def __init__(self, rows: list[tuple] | None = None, conn: "FakeConnection | None" = None):
        self._rows = rows or []
        self._conn = conn
        self.adapters = FakeAdapters()

    async def __aenter__(self) -> "FakeCursor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def execute(self, query: Any, params: Any = None) -> "FakeCursor":
        result = await self._conn.execute(query, params)
        self._rows = result._rows
        return self

    async def fetchall(self) -> list[tuple]:
        return list(self._rows)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for row in self._rows:
            yield row


class FakeTransactionInfo:
    def __init__(self) -> None:
        self.transaction_status = TransactionStatus.IDLE


class FakeConnection:
    """Records statements and transaction outcomes.

    Args:
        responder: ``(sql_text, params) -> rows``; may raise to simulate a
            failing statement. Defaults to returning no rows.
    """

    def __init__(self, responder: Callable[[str, Any], list[tuple]] | None = None):
        self.responder = responder or (lambda text, params: [])
        self.executed: list[str] = []
        self.params: list[Any] = []
        self.transactions: list[dict[str, Any]] = []
        self.info = FakeTransactionInfo()
        self.cursors: list[FakeCursor] = []

    async def execute(self, query: Any, params: Any = None) -> FakeCursor:
        text = render_query(query)
        self.executed.append(text)
        self.params.append(params)
        return FakeCursor(self.responder(text, params))

    def cursor(self) -> FakeCursor:
        cur = FakeCursor(conn=self)
        self.cursors.append(cur)
        return cur

    @asynccontextmanager
    async def transaction(self, force_rollback: bool = False):
        record = {"force_rollback": force_rollback, "outcome": None}
        self.transactions.append(record)
        previous = self.info.transaction_status
        self.info.transaction_status = TransactionStatus.INTRANS
        try:
            yield self
        except BaseException:
            record["outcome"] = "rollback"
            raise
        else:
            record["outcome"] = "rollback" if force_rollback else "commit"
        finally:
            self.info.transaction_status = previous

    def statements_matching(self, prefix: str) -> list[str]:
        return [s for s in self.executed if s.lstrip().startswith(prefix)]


@pytest.fixture
def fake_conn() -> FakeConnection:
    """A FakeConnection that answers every query with no rows."""
    return FakeConnection()
