"""seedkit: PostgreSQL schema dumps, seed capture/replay and migration flattening.

Reads a live database's catalog to produce dependency-ordered DDL, captures
seed data through a population script run against temporary staging tables,
replays seed artifacts transactionally in foreign-key order, and collapses
applied goose migrations into a single baseline.

Usage:
    from seedkit import dump_schema, capture_seed, replay_seed
    from seedkit import flatten_migrations, load_config, connect
"""

__version__ = "0.1.0"

# Config
from seedkit.config.loader import load_config
from seedkit.config.models import DatabaseProfile, SeedkitConfig

# Errors
from seedkit.errors import (
    CatalogQueryError,
    FlattenError,
    ProfileNotFoundError,
    SeedCaptureError,
    SeedkitError,
    SeedReplayError,
    StaleSeedFormatError,
)

# Factory
from seedkit.factory import connect, connect_and_check, resolve_database_url, resolve_url

# Literals
from seedkit.literals import serialize_value

# Migrations
from seedkit.migrate.flatten import FlattenResult, flatten_migrations

# Schema
from seedkit.schema.ddl import dump_schema
from seedkit.schema.introspector import CatalogReader
from seedkit.schema.ordering import dependency_order, order_tables

# Seed
from seedkit.seed.artifacts import load_seed_dir, write_seed_file
from seedkit.seed.capture import capture_seed
from seedkit.seed.models import ReplayResult, SeedArtifact
from seedkit.seed.replay import replay_seed

__all__ = [
    # Config
    "load_config",
    "DatabaseProfile",
    "SeedkitConfig",
    # Errors
    "SeedkitError",
    "CatalogQueryError",
    "FlattenError",
    "ProfileNotFoundError",
    "SeedCaptureError",
    "SeedReplayError",
    "StaleSeedFormatError",
    # Factory
    "connect",
    "connect_and_check",
    "resolve_database_url",
    "resolve_url",
    # Literals
    "serialize_value",
    # Migrations
    "FlattenResult",
    "flatten_migrations",
    # Schema
    "dump_schema",
    "CatalogReader",
    "dependency_order",
    "order_tables",
    # Seed
    "capture_seed",
    "load_seed_dir",
    "write_seed_file",
    "replay_seed",
    "ReplayResult",
    "SeedArtifact",
]
