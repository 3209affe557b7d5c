"""PostgreSQL catalog reader.

This module queries the live database to extract creation-ready DDL:
- Schemas, extensions, enum/domain/composite types, sequences
- Functions and procedures (split by language, see ``ObjectKind``)
- Tables with column types, defaults and stored generated columns
- Views, constraints, indexes and triggers

Constraints, indexes, triggers, functions and views are rendered by the
server (``pg_get_constraintdef``, ``pg_indexes.indexdef``,
``pg_get_triggerdef``, ``pg_get_functiondef``, ``pg_views.definition``) so
their syntax is byte-correct. Tables, types and sequences are assembled here
from catalog columns.

Uses psycopg (v3) async connections. Every query failure is raised as
``CatalogQueryError`` carrying the phase name.
"""

from typing import Any

import psycopg
from psycopg import AsyncConnection

from seedkit.errors import CatalogQueryError
from seedkit.literals import quote_identifier, quote_literal
from seedkit.schema.models import (
    ColumnInfo,
    ForeignKeyEdge,
    ObjectKind,
    SchemaObject,
    TableRef,
)

# Namespace filter, {col} is the column expression. Queries always go
# through placeholder parsing, so "%%" reaches the server as "%"
_USER_NAMESPACE = """
    {col} NOT IN ('pg_catalog', 'information_schema', 'pg_toast')
    AND {col} NOT LIKE 'pg_temp_%%'
    AND {col} NOT LIKE 'pg_toast_temp_%%'
"""


def _user_namespace(col: str) -> str:
    return _USER_NAMESPACE.format(col=col)


def is_excluded(schema_name: str, table_name: str, exclude: set[str]) -> bool:
    """Check a table against an exclusion set in both qualified and bare form."""
    return f"{schema_name}.{table_name}" in exclude or table_name in exclude


def _qualified(schema_name: str, name: str) -> str:
    return f"{quote_identifier(schema_name)}.{quote_identifier(name)}"


def _type_reference(schema_name: str, name: str) -> str:
    """Type name as written in a column definition; built-in and public types stay bare."""
    if schema_name in ("public", "pg_catalog"):
        return name
    return f"{schema_name}.{name}"


# ============================================================================
# Column rendering
# ============================================================================


def format_column_type(
    data_type: str,
    char_max_length: int | None = None,
    numeric_precision: int | None = None,
    numeric_scale: int | None = None,
    udt_schema: str = "pg_catalog",
    udt_name: str = "",
    domain_schema: str | None = None,
    domain_name: str | None = None,
) -> str:
    """Render a column type from ``information_schema.columns`` fields.

    Args:
        data_type: ``information_schema.columns.data_type``.
        char_max_length: ``character_maximum_length`` (may be None).
        numeric_precision: ``numeric_precision`` (may be None).
        numeric_scale: ``numeric_scale`` (may be None).
        udt_schema: Schema of the underlying type.
        udt_name: Underlying type name (``_text`` for ``text[]``).
        domain_schema: Schema of the column's domain, if it has one.
        domain_name: Domain name; takes precedence over the base type.

    Returns:
        Type clause for a CREATE TABLE column.

    Example:
        >>> format_column_type("character varying", char_max_length=40)
        'varchar(40)'
        >>> format_column_type("USER-DEFINED", udt_schema="app", udt_name="mood")
        'app.mood'
        >>> format_column_type("ARRAY", udt_schema="app", udt_name="_mood")
        'app._mood'
    """
    if domain_name:
        return _type_reference(domain_schema or "public", domain_name)
    if data_type == "character varying":
        return f"varchar({char_max_length})" if char_max_length is not None else "varchar"
    if data_type == "character":
        return f"char({char_max_length})" if char_max_length is not None else "char"
    if data_type == "numeric":
        if numeric_precision is not None and numeric_scale is not None:
            return f"numeric({numeric_precision},{numeric_scale})"
        if numeric_precision is not None:
            return f"numeric({numeric_precision})"
        return "numeric"
    if data_type in ("ARRAY", "USER-DEFINED"):
        return _type_reference(udt_schema, udt_name)
    return data_type


def format_column(
    name: str,
    type_sql: str,
    nullable: bool = True,
    default: str | None = None,
    generation_expr: str | None = None,
    identity: str | None = None,
) -> str:
    """Render one column definition.

    Stored generated columns get ``GENERATED ALWAYS AS (...) STORED`` and may
    be NOT NULL, but never carry a DEFAULT. Identity columns (``identity`` is
    ``ALWAYS`` or ``BY DEFAULT``) take their values from their own implicit
    sequence and carry no DEFAULT either.
    """
    parts = [quote_identifier(name), type_sql]
    if generation_expr is not None:
        parts.append(f"GENERATED ALWAYS AS ({generation_expr}) STORED")
        if not nullable:
            parts.append("NOT NULL")
        return " ".join(parts)

    if not nullable:
        parts.append("NOT NULL")
    if identity:
        parts.append(f"GENERATED {identity} AS IDENTITY")
        return " ".join(parts)
    if default:
        parts.append(f"DEFAULT {default}")
    return " ".join(parts)


# ============================================================================
# Catalog reader
# ============================================================================


class CatalogReader:
    """Reads schema objects from the PostgreSQL catalog.

    Works on a caller-owned psycopg ``AsyncConnection``; it never commits,
    rolls back or closes it. Run it inside a read-only transaction to get a
    consistent snapshot across phases.

    Usage:
        async with await psycopg.AsyncConnection.connect(url) as conn:
            reader = CatalogReader(conn)
            tables = await reader.tables(exclude={"goose_db_version"})
            edges = await reader.foreign_key_edges()
    """

    def __init__(self, conn: AsyncConnection):
        """Initialize with an open connection.

        Args:
            conn: psycopg async connection
        """
        self._conn = conn

    async def _fetch(
        self, phase: str, query: str, params: tuple | dict | None = None
    ) -> list[tuple[Any, ...]]:
        """Run a catalog query and return all rows.

        Raises:
            CatalogQueryError: If the query fails.
        """
        try:
            cur = await self._conn.execute(query, params if params is not None else ())
            return await cur.fetchall()
        except psycopg.Error as e:
            raise CatalogQueryError(phase, e) from e

    # ------------------------------------------------------------------
    # Namespaces and types
    # ------------------------------------------------------------------

    async def schemas(self) -> list[SchemaObject]:
        """Non-system schemas other than ``public``."""
        query = f"""
            SELECT nspname
            FROM pg_namespace
            WHERE {_user_namespace("nspname")}
              AND nspname != 'public'
            ORDER BY nspname
        """
        rows = await self._fetch("schemas", query)
        return [
            SchemaObject(
                kind=ObjectKind.SCHEMA,
                schema_name=name,
                object_name=name,
                definition=f"CREATE SCHEMA {quote_identifier(name)};",
            )
            for (name,) in rows
        ]

    async def extensions(self) -> list[SchemaObject]:
        """Installed extensions except ``plpgsql``."""
        query = """
            SELECT e.extname, n.nspname
            FROM pg_extension e
            JOIN pg_namespace n ON e.extnamespace = n.oid
            WHERE e.extname != 'plpgsql'
            ORDER BY e.extname
        """
        rows = await self._fetch("extensions", query)
        return [
            SchemaObject(
                kind=ObjectKind.EXTENSION,
                schema_name=schema_name,
                object_name=name,
                definition=(
                    f"CREATE EXTENSION IF NOT EXISTS {quote_identifier(name)} "
                    f"WITH SCHEMA {quote_identifier(schema_name)};"
                ),
            )
            for name, schema_name in rows
        ]

    async def enums(self) -> list[SchemaObject]:
        """Enum types with labels in catalog sort order."""
        query = f"""
            SELECT n.nspname, t.typname,
                   array_agg(e.enumlabel ORDER BY e.enumsortorder)
            FROM pg_type t
            JOIN pg_enum e ON t.oid = e.enumtypid
            JOIN pg_namespace n ON t.typnamespace = n.oid
            WHERE t.typtype = 'e'
              AND {_user_namespace("n.nspname")}
            GROUP BY n.nspname, t.typname
            ORDER BY n.nspname, t.typname
        """
        rows = await self._fetch("enum types", query)
        results = []
        for schema_name, name, labels in rows:
            body = ",\n    ".join(quote_literal(label) for label in labels)
            results.append(
                SchemaObject(
                    kind=ObjectKind.ENUM,
                    schema_name=schema_name,
                    object_name=name,
                    definition=f"CREATE TYPE {_qualified(schema_name, name)} AS ENUM (\n    {body}\n);",
                )
            )
        return results

    async def domains(self) -> list[SchemaObject]:
        """Domain types with base type, NOT NULL, default and constraints.

        Constraints are read with a second query per domain and appended as
        separate clauses.
        """
        query = f"""
            SELECT n.nspname, t.typname,
                   pg_catalog.format_type(t.typbasetype, t.typtypmod),
                   t.typnotnull, t.typdefault, t.oid
            FROM pg_type t
            JOIN pg_namespace n ON t.typnamespace = n.oid
            WHERE t.typtype = 'd'
              AND {_user_namespace("n.nspname")}
            ORDER BY n.nspname, t.typname
        """
        constraint_query = """
            SELECT pg_get_constraintdef(c.oid, true)
            FROM pg_constraint c
            WHERE c.contypid = %s
            ORDER BY c.conname
        """
        rows = await self._fetch("domain types", query)
        results = []
        for schema_name, name, base_type, not_null, default, type_oid in rows:
            sql = f"CREATE DOMAIN {_qualified(schema_name, name)} AS {base_type}"
            if not_null:
                sql += " NOT NULL"
            if default:
                sql += f" DEFAULT {default}"
            constraints = await self._fetch(
                f"constraints of domain {schema_name}.{name}", constraint_query, (type_oid,)
            )
            for (constraint_def,) in constraints:
                sql += f"\n    {constraint_def}"
            results.append(
                SchemaObject(
                    kind=ObjectKind.DOMAIN,
                    schema_name=schema_name,
                    object_name=name,
                    definition=sql + ";",
                )
            )
        return results

    async def composites(self) -> list[SchemaObject]:
        """Standalone composite types (not the row types of relations)."""
        query = f"""
            SELECT n.nspname, t.typname, t.typrelid
            FROM pg_type t
            JOIN pg_namespace n ON t.typnamespace = n.oid
            JOIN pg_class c ON c.oid = t.typrelid
            WHERE t.typtype = 'c'
              AND c.relkind = 'c'
              AND {_user_namespace("n.nspname")}
            ORDER BY n.nspname, t.typname
        """
        attr_query = """
            SELECT a.attname, pg_catalog.format_type(a.atttypid, a.atttypmod)
            FROM pg_attribute a
            WHERE a.attrelid = %s
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """
        rows = await self._fetch("composite types", query)
        results = []
        for schema_name, name, relid in rows:
            attrs = await self._fetch(
                f"attributes of type {schema_name}.{name}", attr_query, (relid,)
            )
            if not attrs:
                continue
            body = ",\n".join(f"    {quote_identifier(a)} {t}" for a, t in attrs)
            results.append(
                SchemaObject(
                    kind=ObjectKind.COMPOSITE,
                    schema_name=schema_name,
                    object_name=name,
                    definition=f"CREATE TYPE {_qualified(schema_name, name)} AS (\n{body}\n);",
                )
            )
        return results

    async def sequences(self, exclude: set[str]) -> list[SchemaObject]:
        """Sequences, skipping those owned by an excluded table.

        Identity sequences are left out: the column's ``GENERATED ... AS
        IDENTITY`` clause creates them.
        """
        query = f"""
            SELECT s.schemaname, s.sequencename,
                   s.start_value, s.increment_by, s.min_value, s.max_value,
                   s.cache_size, s.cycle,
                   owner_ns.nspname, owner.relname, d.deptype
            FROM pg_sequences s
            JOIN pg_namespace sn ON sn.nspname = s.schemaname
            JOIN pg_class sc ON sc.relname = s.sequencename AND sc.relnamespace = sn.oid
            LEFT JOIN pg_depend d
                   ON d.objid = sc.oid
                  AND d.classid = 'pg_class'::regclass
                  AND d.refclassid = 'pg_class'::regclass
                  AND d.deptype IN ('a', 'i')
            LEFT JOIN pg_class owner ON owner.oid = d.refobjid
            LEFT JOIN pg_namespace owner_ns ON owner_ns.oid = owner.relnamespace
            WHERE {_user_namespace("s.schemaname")}
            ORDER BY s.schemaname, s.sequencename
        """
        rows = await self._fetch("sequences", query)
        results = []
        for (
            schema_name, name, start, increment, min_value, max_value,
            cache, cycle, owner_schema, owner_table, deptype,
        ) in rows:
            if deptype == "i":
                continue
            if owner_table is not None and is_excluded(owner_schema, owner_table, exclude):
                continue
            sql = f"CREATE SEQUENCE {_qualified(schema_name, name)}"
            if start is not None:
                sql += f" START WITH {start}"
            if increment is not None:
                sql += f" INCREMENT BY {increment}"
            if min_value is not None:
                sql += f" MINVALUE {min_value}"
            if max_value is not None:
                sql += f" MAXVALUE {max_value}"
            if cache is not None:
                sql += f" CACHE {cache}"
            if cycle:
                sql += " CYCLE"
            results.append(
                SchemaObject(
                    kind=ObjectKind.SEQUENCE,
                    schema_name=schema_name,
                    object_name=name,
                    definition=sql + ";",
                )
            )
        return results

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    async def functions(self, sql_language: bool) -> list[SchemaObject]:
        """Functions and procedures not owned by an extension.

        Args:
            sql_language: True for ``LANGUAGE sql`` bodies (created after
                tables), False for every other language (created before).
        """
        kind = ObjectKind.FUNCTION_LATE if sql_language else ObjectKind.FUNCTION_EARLY
        operator = "=" if sql_language else "!="
        query = f"""
            SELECT n.nspname, p.proname, pg_get_functiondef(p.oid)
            FROM pg_proc p
            JOIN pg_namespace n ON p.pronamespace = n.oid
            JOIN pg_language l ON p.prolang = l.oid
            WHERE {_user_namespace("n.nspname")}
              AND p.prokind IN ('f', 'p')
              AND l.lanname {operator} 'sql'
              AND NOT EXISTS (
                  SELECT 1 FROM pg_depend d
                  WHERE d.objid = p.oid AND d.deptype = 'e'
              )
            ORDER BY n.nspname, p.proname, p.oid
        """
        phase = "SQL functions" if sql_language else "non-SQL functions"
        rows = await self._fetch(phase, query)
        return [
            SchemaObject(
                kind=kind,
                schema_name=schema_name,
                object_name=name,
                definition=definition.rstrip() + ";",
            )
            for schema_name, name, definition in rows
        ]

    # ------------------------------------------------------------------
    # Tables and views
    # ------------------------------------------------------------------

    async def list_tables(
        self,
        schemas: list[str] | None = None,
        exclude: set[str] | None = None,
    ) -> list[TableRef]:
        """List base tables.

        Args:
            schemas: Schemas to include; None means every user schema.
            exclude: Table names (qualified or bare) to leave out.

        Returns:
            TableRefs ordered by schema then name.
        """
        exclude = exclude or set()
        query = f"""
            SELECT schemaname, tablename
            FROM pg_tables
            WHERE {_user_namespace("schemaname")}
        """
        params: tuple = ()
        if schemas is not None:
            query += " AND schemaname = ANY(%s)"
            params = (list(schemas),)
        query += " ORDER BY schemaname, tablename"

        rows = await self._fetch("tables", query, params)
        return [
            TableRef(schema_name=schema_name, name=name)
            for schema_name, name in rows
            if not is_excluded(schema_name, name, exclude)
        ]

    async def _generated_columns(self, table: TableRef) -> dict[str, str]:
        query = """
            SELECT a.attname, pg_get_expr(d.adbin, d.adrelid)
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE n.nspname = %s
              AND c.relname = %s
              AND a.attnum > 0
              AND NOT a.attisdropped
              AND a.attgenerated = 's'
        """
        rows = await self._fetch(
            f"generated columns of {table}", query, (table.schema_name, table.name)
        )
        return dict(rows)

    async def tables(self, exclude: set[str]) -> list[SchemaObject]:
        """CREATE TABLE statements (columns only; constraints come later)."""
        columns_query = """
            SELECT column_name, data_type, character_maximum_length,
                   is_nullable, column_default, udt_schema, udt_name,
                   numeric_precision, numeric_scale,
                   domain_schema, domain_name,
                   is_identity, identity_generation
            FROM information_schema.columns
            WHERE table_schema = %s AND table_name = %s
            ORDER BY ordinal_position
        """
        results = []
        for table in await self.list_tables(exclude=exclude):
            generated = await self._generated_columns(table)
            rows = await self._fetch(
                f"columns of {table}", columns_query, (table.schema_name, table.name)
            )
            columns = []
            for (
                name, data_type, char_len, is_nullable, default,
                udt_schema, udt_name, precision, scale,
                domain_schema, domain_name, is_identity, identity_generation,
            ) in rows:
                type_sql = format_column_type(
                    data_type,
                    char_max_length=char_len,
                    numeric_precision=precision,
                    numeric_scale=scale,
                    udt_schema=udt_schema,
                    udt_name=udt_name,
                    domain_schema=domain_schema,
                    domain_name=domain_name,
                )
                columns.append(
                    format_column(
                        name,
                        type_sql,
                        nullable=(is_nullable == "YES"),
                        default=default,
                        generation_expr=generated.get(name),
                        identity=identity_generation if is_identity == "YES" else None,
                    )
                )
            if not columns:
                continue
            body = ",\n    ".join(columns)
            results.append(
                SchemaObject(
                    kind=ObjectKind.TABLE,
                    schema_name=table.schema_name,
                    object_name=table.name,
                    definition=f"CREATE TABLE {table.quoted_name} (\n    {body}\n);",
                )
            )
        return results

    async def views(self, exclude: set[str]) -> list[SchemaObject]:
        """CREATE VIEW statements from ``pg_views``."""
        query = f"""
            SELECT schemaname, viewname, definition
            FROM pg_views
            WHERE {_user_namespace("schemaname")}
            ORDER BY schemaname, viewname
        """
        rows = await self._fetch("views", query)
        return [
            SchemaObject(
                kind=ObjectKind.VIEW,
                schema_name=schema_name,
                object_name=name,
                definition=(
                    f"CREATE VIEW {_qualified(schema_name, name)} AS\n"
                    f"{definition.rstrip().rstrip(';')};"
                ),
            )
            for schema_name, name, definition in rows
            if not is_excluded(schema_name, name, exclude)
        ]

    # ------------------------------------------------------------------
    # Constraints, indexes, triggers
    # ------------------------------------------------------------------

    _CONSTRAINT_TYPES = {
        ObjectKind.PRIMARY_KEY: ("p", "primary keys"),
        ObjectKind.UNIQUE: ("u", "unique constraints"),
        ObjectKind.CHECK: ("c", "check constraints"),
        ObjectKind.FOREIGN_KEY: ("f", "foreign keys"),
    }

    async def constraints(self, kind: ObjectKind, exclude: set[str]) -> list[SchemaObject]:
        """ALTER TABLE ... ADD CONSTRAINT statements for one constraint kind.

        Args:
            kind: One of PRIMARY_KEY, UNIQUE, CHECK, FOREIGN_KEY.
            exclude: Tables whose constraints are skipped.
        """
        contype, phase = self._CONSTRAINT_TYPES[kind]
        query = f"""
            SELECT n.nspname, c.relname, con.conname, pg_get_constraintdef(con.oid)
            FROM pg_constraint con
            JOIN pg_class c ON con.conrelid = c.oid
            JOIN pg_namespace n ON c.relnamespace = n.oid
            WHERE con.contype = %s
              AND {_user_namespace("n.nspname")}
            ORDER BY n.nspname, c.relname, con.conname
        """
        rows = await self._fetch(phase, query, (contype,))
        return [
            SchemaObject(
                kind=kind,
                schema_name=schema_name,
                object_name=name,
                definition=(
                    f"ALTER TABLE {_qualified(schema_name, table_name)} "
                    f"ADD CONSTRAINT {quote_identifier(name)} {definition};"
                ),
            )
            for schema_name, table_name, name, definition in rows
            if not is_excluded(schema_name, table_name, exclude)
        ]

    async def indexes(self, exclude: set[str]) -> list[SchemaObject]:
        """Indexes that do not back a primary key, unique or exclusion constraint."""
        query = f"""
            SELECT ix.schemaname, ix.tablename, ix.indexname, ix.indexdef
            FROM pg_indexes ix
            WHERE {_user_namespace("ix.schemaname")}
              AND NOT EXISTS (
                  SELECT 1
                  FROM pg_constraint con
                  JOIN pg_namespace cn ON cn.oid = con.connamespace
                  WHERE con.conname = ix.indexname
                    AND cn.nspname = ix.schemaname
                    AND con.contype IN ('p', 'u', 'x')
              )
            ORDER BY ix.schemaname, ix.tablename, ix.indexname
        """
        rows = await self._fetch("indexes", query)
        return [
            SchemaObject(
                kind=ObjectKind.INDEX,
                schema_name=schema_name,
                object_name=name,
                definition=definition + ";",
            )
            for schema_name, table_name, name, definition in rows
            if not is_excluded(schema_name, table_name, exclude)
        ]

    async def triggers(self, exclude: set[str]) -> list[SchemaObject]:
        """User-defined (non-internal) triggers."""
        query = f"""
            SELECT n.nspname, c.relname, t.tgname, pg_get_triggerdef(t.oid)
            FROM pg_trigger t
            JOIN pg_class c ON t.tgrelid = c.oid
            JOIN pg_namespace n ON c.relnamespace = n.oid
            WHERE NOT t.tgisinternal
              AND {_user_namespace("n.nspname")}
            ORDER BY n.nspname, c.relname, t.tgname
        """
        rows = await self._fetch("triggers", query)
        return [
            SchemaObject(
                kind=ObjectKind.TRIGGER,
                schema_name=schema_name,
                object_name=name,
                definition=definition + ";",
            )
            for schema_name, table_name, name, definition in rows
            if not is_excluded(schema_name, table_name, exclude)
        ]

    # ------------------------------------------------------------------
    # Lookups used by seed and flatten
    # ------------------------------------------------------------------

    async def foreign_key_edges(self) -> list[ForeignKeyEdge]:
        """All FK edges as ``schema.table`` pairs (dependent -> referenced)."""
        query = """
            SELECT DISTINCT
                dn.nspname || '.' || dc.relname,
                rn.nspname || '.' || rc.relname
            FROM pg_constraint con
            JOIN pg_class dc ON dc.oid = con.conrelid
            JOIN pg_namespace dn ON dn.oid = dc.relnamespace
            JOIN pg_class rc ON rc.oid = con.confrelid
            JOIN pg_namespace rn ON rn.oid = rc.relnamespace
            WHERE con.contype = 'f'
            ORDER BY 1, 2
        """
        rows = await self._fetch("foreign key dependencies", query)
        return [
            ForeignKeyEdge(dependent=dependent, referenced=referenced)
            for dependent, referenced in rows
        ]

    async def staging_columns(self, staging_name: str) -> list[ColumnInfo]:
        """Columns of a temporary table in this session's temp schema."""
        query = """
            SELECT a.attname,
                   pg_catalog.format_type(a.atttypid, a.atttypmod),
                   a.attgenerated = 's',
                   a.attidentity = 'a'
            FROM pg_attribute a
            JOIN pg_class c ON a.attrelid = c.oid
            WHERE c.relname = %s
              AND c.relnamespace = pg_my_temp_schema()
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """
        rows = await self._fetch(f"columns of {staging_name}", query, (staging_name,))
        return [
            ColumnInfo(
                name=name,
                data_type=data_type,
                generated=bool(generated),
                identity_always=bool(identity_always),
            )
            for name, data_type, generated, identity_always in rows
        ]

    async def relation_exists(self, name: str) -> bool:
        """Check whether a (possibly schema-qualified) relation exists."""
        rows = await self._fetch(
            f"lookup of {name}", "SELECT to_regclass(%s) IS NOT NULL", (name,)
        )
        return bool(rows and rows[0][0])

    async def server_version(self) -> str:
        """Server version string (``SHOW server_version``)."""
        rows = await self._fetch("server version", "SHOW server_version")
        return rows[0][0]
