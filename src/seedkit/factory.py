"""Database URL resolution and connection factory.

Supports two configuration modes:
1. Profile mode (seedkit.toml + .seedkit-profile): named connection profiles
2. Direct mode (--database-url or {prefix}DATABASE_URL): a single URL

Resolution priority for the connection URL:
1. Explicit ``database_url`` argument (CLI ``--database-url``)
2. Profile named by the ``profile_name`` argument (CLI ``--profile``)
3. ``{prefix}DATABASE_URL`` environment variable
4. Profile named by ``{prefix}DB_PROFILE`` environment variable
5. Profile stored in the ``.seedkit-profile`` lock file (written by connect)
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
from urllib.parse import quote

import psycopg
from psycopg import AsyncConnection
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from seedkit.config.loader import load_config
from seedkit.config.models import ConnectionResult, DatabaseProfile
from seedkit.errors import CatalogQueryError, ProfileNotFoundError
from seedkit.schema.introspector import CatalogReader

logger = logging.getLogger(__name__)

# Profile lock file path (relative to the working directory)
_PROFILE_LOCK_FILE = Path(".seedkit-profile")

PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"
DEFAULT_CONNECT_TIMEOUT = 10


# ============================================================================
# Profile Lock File Operations
# ============================================================================


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip() or None
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after a successful connection check.

    Args:
        profile_name: Name of the checked profile
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Priority:
    1. {env_prefix}DB_PROFILE env var (for initial connect or CI/CD)
    2. .seedkit-profile file (profile from previous connect)
    3. Raise ProfileNotFoundError

    Args:
        env_prefix: Prefix for environment variable lookup.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_profile = os.environ.get(f"{env_prefix}DB_PROFILE")
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database configured.\n"
        f"Pass --database-url, set {env_prefix}DATABASE_URL, "
        f"or run: {env_prefix}DB_PROFILE=<name> seedkit connect"
    )


# ============================================================================
# URL handling
# ============================================================================


def normalize_url(database_url: str) -> str:
    """Normalize a PostgreSQL URL for psycopg.

    - ``postgres://`` and driver-suffixed schemes (``postgresql+asyncpg://``)
      become ``postgresql://``
    - ``connect_timeout`` is added when absent

    Args:
        database_url: Connection URL in any PostgreSQL scheme.

    Returns:
        URL accepted by ``psycopg.AsyncConnection.connect``.

    Raises:
        ValueError: If the URL is unparseable or not a PostgreSQL URL.
    """
    try:
        url = make_url(database_url)
    except ArgumentError as e:
        raise ValueError(f"Invalid database URL: {e}") from e

    backend = url.drivername.split("+", 1)[0]
    if backend not in ("postgres", "postgresql"):
        raise ValueError(f"Not a PostgreSQL URL (scheme '{url.drivername}')")

    url = url.set(drivername="postgresql")
    if "connect_timeout" not in url.query:
        url = url.update_query_dict({"connect_timeout": str(DEFAULT_CONNECT_TIMEOUT)})
    return url.render_as_string(hide_password=False)


def redact_url(database_url: str) -> str:
    """Render a URL with its password masked, for display and logs."""
    try:
        return make_url(database_url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable url>"


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Normalized connection URL with password substituted

    Example:
        >>> resolve_url(DatabaseProfile(
        ...     url="postgres://app:[YOUR-PASSWORD]@db/app", db_password="p@ss"))
        'postgresql://app:p%40ss@db/app?connect_timeout=10'
    """
    url = profile.url
    if profile.db_password and PASSWORD_PLACEHOLDER in url:
        url = url.replace(PASSWORD_PLACEHOLDER, quote(profile.db_password, safe=""))
    return normalize_url(url)


def resolve_database_url(
    database_url: str | None = None,
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> tuple[str, str | None]:
    """Resolve the connection URL from arguments, environment and profiles.

    Args:
        database_url: Explicit URL; wins over everything else.
        profile_name: Profile to use when no URL is given.
        env_prefix: Prefix for ``DATABASE_URL`` / ``DB_PROFILE`` lookup.
        config_path: Path to seedkit.toml.

    Returns:
        Tuple of (normalized URL, profile name or None in direct mode).

    Raises:
        ProfileNotFoundError: If nothing is configured or the profile is unknown.
        FileNotFoundError: If a profile is needed but seedkit.toml is missing.
    """
    if database_url:
        return normalize_url(database_url), None

    if profile_name is None:
        env_url = os.environ.get(f"{env_prefix}DATABASE_URL")
        if env_url:
            return normalize_url(env_url), None
        profile_name = get_active_profile_name(env_prefix)

    config = load_config(config_path)
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found. Available: {available}"
        )
    return resolve_url(config.profiles[profile_name]), profile_name


# ============================================================================
# Connections
# ============================================================================


@asynccontextmanager
async def connect(database_url: str) -> AsyncIterator[AsyncConnection]:
    """Open an autocommit psycopg connection and close it on exit.

    Autocommit keeps the session idle between operations; every operation
    that needs atomicity opens its own ``conn.transaction()`` block.

    Example:
        async with connect(url) as conn:
            sql = await dump_schema(conn)
    """
    conn = await psycopg.AsyncConnection.connect(database_url, autocommit=True)
    try:
        yield conn
    finally:
        await conn.close()


async def connect_and_check(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    config_path: Path | None = None,
) -> ConnectionResult:
    """Resolve, connect and report the server version.

    On success in profile mode the profile is written to the lock file so
    later commands use it without ``{prefix}DB_PROFILE``.

    Args:
        profile_name: Profile name from seedkit.toml. If None, uses
            ``{env_prefix}DB_PROFILE`` or the existing lock file.
        env_prefix: Prefix for environment variable lookup.
        database_url: Explicit URL (direct mode, no lock file written).
        config_path: Path to seedkit.toml.

    Returns:
        ConnectionResult with success status

    Example:
        >>> result = await connect_and_check("dev")
        >>> if result.success:
        ...     print(f"Connected to {result.profile_name}")
    """
    try:
        url, resolved_profile = resolve_database_url(
            database_url=database_url,
            profile_name=profile_name,
            env_prefix=env_prefix,
            config_path=config_path,
        )
    except (ProfileNotFoundError, FileNotFoundError, ValueError) as e:
        return ConnectionResult(success=False, profile_name=profile_name, error=str(e))

    try:
        async with connect(url) as conn:
            version = await CatalogReader(conn).server_version()
    except (psycopg.Error, CatalogQueryError) as e:
        return ConnectionResult(
            success=False,
            profile_name=resolved_profile,
            redacted_url=redact_url(url),
            error=f"Failed to connect to database: {e}",
        )

    if resolved_profile is not None:
        write_profile_lock(resolved_profile)
    logger.info(f"Connected to {redact_url(url)} (PostgreSQL {version})")

    return ConnectionResult(
        success=True,
        profile_name=resolved_profile,
        server_version=version,
        redacted_url=redact_url(url),
    )
