"""Schema introspection, DDL synthesis and FK ordering.

Provides live catalog reading (``CatalogReader``), whole-schema DDL dumps
(``dump_schema``, ``render_ddl``) and dependency ordering for seed loads
(``order_tables``, ``dependency_order``).

Usage:
    from seedkit.schema import CatalogReader, dump_schema
    from seedkit.schema import order_tables, dependency_order
"""

from seedkit.schema.ddl import DEFAULT_LEDGER_TABLE, dump_schema, read_schema_objects, render_ddl
from seedkit.schema.introspector import CatalogReader
from seedkit.schema.models import (
    PHASE_ORDER,
    ColumnInfo,
    ForeignKeyEdge,
    ObjectKind,
    SchemaObject,
    TableRef,
)
from seedkit.schema.ordering import dependency_order, order_tables, truncate_order

__all__ = [
    "DEFAULT_LEDGER_TABLE",
    "dump_schema",
    "read_schema_objects",
    "render_ddl",
    "CatalogReader",
    "PHASE_ORDER",
    "ColumnInfo",
    "ForeignKeyEdge",
    "ObjectKind",
    "SchemaObject",
    "TableRef",
    "dependency_order",
    "order_tables",
    "truncate_order",
]
