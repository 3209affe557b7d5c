"""Migration flattening and file helpers."""

from seedkit.migrate.files import check_migrations, create_migration, list_migrations
from seedkit.migrate.flatten import FlattenResult, flatten_migrations, read_applied_versions

__all__ = [
    "check_migrations",
    "create_migration",
    "list_migrations",
    "FlattenResult",
    "flatten_migrations",
    "read_applied_versions",
]
