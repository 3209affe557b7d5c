"""Seed capture and replay models.

A seed is captured as one ``SeedArtifact`` per table in scope. An artifact
with no statements is still written, as an explicit no-data marker, so a
missing section always means "not in scope" and never "nothing captured".
"""

from pydantic import BaseModel, Field

from seedkit.schema.models import ColumnInfo, TableRef

TABLE_HEADER_PREFIX = "-- Table: "
NO_DATA_PREFIX = "-- No data for table "
STAGING_PREFIX = "seed."


def staging_name(table: TableRef) -> str:
    """Name of the temporary staging table for a real table.

    The whole ``seed.<schema>.<table>`` string is a single identifier living
    in the session's temp schema.
    """
    return f"{STAGING_PREFIX}{table.schema_name}.{table.name}"


class TableSnapshot(BaseModel):
    """A real table paired with its staging table's columns."""

    table: TableRef
    columns: list[ColumnInfo] = Field(default_factory=list)

    @property
    def staging_name(self) -> str:
        return staging_name(self.table)

    @property
    def insert_columns(self) -> list[ColumnInfo]:
        """Columns that accept explicit values (stored generated ones don't)."""
        return [c for c in self.columns if not c.generated]

    @property
    def overrides_identity(self) -> bool:
        """True when explicit values go into a GENERATED ALWAYS identity column."""
        return any(c.identity_always for c in self.insert_columns)


class SeedArtifact(BaseModel):
    """Captured INSERT statements for one table."""

    table: TableRef
    statements: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.statements

    @property
    def header(self) -> str:
        return f"{TABLE_HEADER_PREFIX}{self.table.qualified_name}"

    @property
    def no_data_marker(self) -> str:
        return f"{NO_DATA_PREFIX}{self.table.qualified_name}"

    def render(self) -> str:
        """Render this artifact as one section of the consolidated seed file."""
        body = self.statements if self.statements else [self.no_data_marker]
        return "\n".join([self.header, *body]) + "\n"


class ReplayResult(BaseModel):
    """Summary of a seed replay."""

    load_order: list[str] = Field(default_factory=list)
    statement_count: int = 0
    empty_tables: list[str] = Field(default_factory=list)
