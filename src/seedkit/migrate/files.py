"""Migration file helpers.

Migration files follow the goose naming convention
``<version>_<name>.sql`` where new versions are 14-digit UTC timestamps
(``20240101120000_create_users.sql``). A flattened baseline keeps the latest
applied version: ``<version>_initial.sql``.
"""

import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel

from seedkit.errors import MigrationFileError

MIGRATION_NAME_RE = re.compile(r"^(\d+)_(\w+)\.sql$")
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

MIGRATION_TEMPLATE = """-- +goose Up
-- +goose StatementBegin

-- +goose StatementEnd

-- +goose Down
-- +goose StatementBegin

-- +goose StatementEnd
"""


class MigrationFile(BaseModel):
    """A migration file on disk."""

    version: int
    name: str
    path: Path


def parse_migration_filename(path: Path) -> MigrationFile | None:
    """Parse ``<version>_<name>.sql``; returns None for other file names."""
    match = MIGRATION_NAME_RE.match(path.name)
    if not match:
        return None
    return MigrationFile(version=int(match.group(1)), name=match.group(2), path=path)


def list_migrations(migrations_dir: Path) -> list[MigrationFile]:
    """List migration files sorted by version (other files are ignored)."""
    if not migrations_dir.is_dir():
        return []
    found = []
    for path in migrations_dir.iterdir():
        if not path.is_file():
            continue
        parsed = parse_migration_filename(path)
        if parsed is not None:
            found.append(parsed)
    return sorted(found, key=lambda m: (m.version, m.name))


def files_for_version(migrations_dir: Path, version: str) -> list[Path]:
    """Migration files whose version prefix equals ``version``."""
    return sorted(migrations_dir.glob(f"{version}_*.sql"))


def create_migration(migrations_dir: Path, name: str, now: datetime | None = None) -> Path:
    """Create an empty goose migration file.

    Args:
        migrations_dir: Directory to write into (created if missing).
        name: Migration name; spaces and dashes become underscores.
        now: Timestamp to use (default: current UTC time).

    Returns:
        Path of the new file.

    Raises:
        MigrationFileError: If the name is invalid or the version is taken.

    Example:
        >>> create_migration(Path("migrations"), "add users")
        PosixPath('migrations/20240101120000_add_users.sql')
    """
    slug = re.sub(r"[\s\-]+", "_", name.strip()).lower()
    if not slug or not re.fullmatch(r"\w+", slug):
        raise MigrationFileError(
            f"Invalid migration name '{name}': use letters, digits and underscores"
        )

    stamp = (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)
    migrations_dir.mkdir(parents=True, exist_ok=True)
    if files_for_version(migrations_dir, stamp):
        raise MigrationFileError(f"A migration with version {stamp} already exists")

    path = migrations_dir / f"{stamp}_{slug}.sql"
    path.write_text(MIGRATION_TEMPLATE)
    return path


def check_migrations(
    migrations_dir: Path,
    base_versions: set[int] | None = None,
) -> list[str]:
    """Validate migration files, for CI.

    Checks that every ``.sql`` file is named ``<version>_<name>.sql``, that
    versions are unique, and, when ``base_versions`` is given (the versions
    already on the base branch), that every new migration sorts after all of
    them so it cannot be skipped by the migration runner.

    Args:
        migrations_dir: Directory to check.
        base_versions: Versions present on the base branch, if known.

    Returns:
        Human-readable problems; empty when everything is valid.
    """
    if not migrations_dir.is_dir():
        return [f"Migrations directory not found: {migrations_dir}"]

    problems: list[str] = []
    for path in sorted(migrations_dir.glob("*.sql")):
        if parse_migration_filename(path) is None:
            problems.append(f"{path.name}: expected <version>_<name>.sql")

    by_version: dict[int, list[str]] = {}
    for migration in list_migrations(migrations_dir):
        by_version.setdefault(migration.version, []).append(migration.path.name)
    for version, names in sorted(by_version.items()):
        if len(names) > 1:
            problems.append(f"Duplicate version {version}: {', '.join(names)}")

    if base_versions:
        latest_base = max(base_versions)
        for version, names in sorted(by_version.items()):
            if version not in base_versions and version < latest_base:
                problems.append(
                    f"{names[0]}: version {version} is older than the latest "
                    f"base migration {latest_base}; regenerate it with "
                    f"'seedkit migrations new'"
                )

    return problems
