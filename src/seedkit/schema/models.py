"""Pydantic models for catalog objects, tables, and dump phases."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from seedkit.literals import quote_identifier


# ============================================================================
# Dump phases
# ============================================================================


class ObjectKind(str, Enum):
    """Kind of schema object, declared in creation-dependency order.

    Functions are split in two: non-SQL languages are created before tables
    (table defaults may call them), SQL-language bodies are validated at
    creation time and must come after the tables they read.
    """

    SCHEMA = "schema"
    EXTENSION = "extension"
    ENUM = "enum"
    DOMAIN = "domain"
    COMPOSITE = "composite"
    SEQUENCE = "sequence"
    FUNCTION_EARLY = "function-early"
    TABLE = "table"
    FUNCTION_LATE = "function-late"
    VIEW = "view"
    PRIMARY_KEY = "primary-key"
    UNIQUE = "unique"
    CHECK = "check"
    FOREIGN_KEY = "foreign-key"
    INDEX = "index"
    TRIGGER = "trigger"


# Single source of truth for emission order
PHASE_ORDER: list[ObjectKind] = list(ObjectKind)

PHASE_HEADERS: dict[ObjectKind, str] = {
    ObjectKind.SCHEMA: "Schemas",
    ObjectKind.EXTENSION: "Extensions",
    ObjectKind.ENUM: "Enum types",
    ObjectKind.DOMAIN: "Domain types",
    ObjectKind.COMPOSITE: "Composite types",
    ObjectKind.SEQUENCE: "Sequences",
    ObjectKind.FUNCTION_EARLY: "Functions (PL/pgSQL)",
    ObjectKind.TABLE: "Tables",
    ObjectKind.FUNCTION_LATE: "Functions (SQL)",
    ObjectKind.VIEW: "Views",
    ObjectKind.PRIMARY_KEY: "Primary keys",
    ObjectKind.UNIQUE: "Unique constraints",
    ObjectKind.CHECK: "Check constraints",
    ObjectKind.FOREIGN_KEY: "Foreign keys",
    ObjectKind.INDEX: "Indexes",
    ObjectKind.TRIGGER: "Triggers",
}


# ============================================================================
# Catalog objects
# ============================================================================


class SchemaObject(BaseModel):
    """One executable DDL statement read from the catalog."""

    model_config = ConfigDict(frozen=True)

    kind: ObjectKind
    schema_name: str
    object_name: str
    definition: str  # complete statement, terminated with ';'


class ColumnInfo(BaseModel):
    """A column as seen by the value serializer."""

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str  # format_type() rendering, e.g. "character varying(40)"
    generated: bool = False  # STORED generated column, never inserted into
    identity_always: bool = False  # GENERATED ALWAYS AS IDENTITY


class TableRef(BaseModel):
    """Schema-qualified table name."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    name: str

    @classmethod
    def parse(cls, qualified: str, default_schema: str = "public") -> "TableRef":
        """Parse ``schema.table`` (or a bare ``table``) into a TableRef.

        Only the first dot separates schema from table, so names that contain
        dots are kept intact after it.

        Args:
            qualified: ``schema.table`` or bare ``table``.
            default_schema: Schema used for bare names.

        Returns:
            TableRef for the given name.

        Example:
            >>> TableRef.parse("app.users").quoted_name
            '"app"."users"'
        """
        if "." in qualified:
            schema_name, name = qualified.split(".", 1)
            return cls(schema_name=schema_name, name=name)
        return cls(schema_name=default_schema, name=qualified)

    @property
    def qualified_name(self) -> str:
        """``schema.table`` form used as the graph key and artifact header."""
        return f"{self.schema_name}.{self.name}"

    @property
    def quoted_name(self) -> str:
        """``"schema"."table"`` form for SQL statements."""
        return f"{quote_identifier(self.schema_name)}.{quote_identifier(self.name)}"

    def __str__(self) -> str:
        return self.qualified_name


class ForeignKeyEdge(BaseModel):
    """Directed FK dependency: ``dependent`` references ``referenced``."""

    model_config = ConfigDict(frozen=True)

    dependent: str
    referenced: str
