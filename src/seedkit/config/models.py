"""Pydantic models for seedkit configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from seedkit.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution


class PathSettings(BaseModel):
    """Project-relative directories used by seed and migration commands."""

    migrations_dir: str = "migrations"
    seed_dir: str = "seed"


class MigrationSettings(BaseModel):
    """Settings shared with the external migration runner."""

    ledger_table: str = "goose_db_version"


class SeedkitConfig(BaseModel):
    """Complete seedkit configuration from seedkit.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    paths: PathSettings = Field(default_factory=PathSettings)
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)
    schemas: list[str] = Field(default_factory=lambda: ["public"])


# ============================================================================
# Connection Result
# ============================================================================


class ConnectionResult(BaseModel):
    """Result of connect_and_check()."""

    success: bool
    profile_name: str | None = None
    server_version: str | None = None
    redacted_url: str | None = None
    error: str | None = None
