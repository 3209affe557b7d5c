"""Configuration loading for seedkit."""

import tomllib
from pathlib import Path

from seedkit.config.models import (
    DatabaseProfile,
    MigrationSettings,
    PathSettings,
    SeedkitConfig,
)

DEFAULT_CONFIG_FILE = "seedkit.toml"


def load_config(config_path: Path | None = None) -> SeedkitConfig:
    """Load seedkit configuration from TOML file.

    Args:
        config_path: Path to seedkit.toml (default: ``./seedkit.toml``)

    Returns:
        SeedkitConfig with all profiles and path settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid

    Example:
        >>> config = load_config(Path("seedkit.toml"))
        >>> config.paths.migrations_dir
        'migrations'
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"seedkit config not found: {config_path}\n"
            f"Create {DEFAULT_CONFIG_FILE} with a [profiles.<name>] section, "
            f"or pass --database-url."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    # Parse profiles
    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DatabaseProfile(**profile_data)

    schemas = data.get("schemas", ["public"])
    if not isinstance(schemas, list):
        raise ValueError(f"'schemas' must be a list in {config_path}")

    return SeedkitConfig(
        profiles=profiles,
        paths=PathSettings(**data.get("paths", {})),
        migrations=MigrationSettings(**data.get("migrations", {})),
        schemas=schemas,
    )


def load_config_or_default(config_path: Path | None = None) -> SeedkitConfig:
    """Load configuration, falling back to defaults when the file is absent.

    Commands that can run on an explicit ``--database-url`` alone use this so a
    project without seedkit.toml still gets default directories.

    Args:
        config_path: Path to seedkit.toml (default: ``./seedkit.toml``)

    Returns:
        Loaded SeedkitConfig, or ``SeedkitConfig()`` when no file exists
    """
    try:
        return load_config(config_path)
    except FileNotFoundError:
        return SeedkitConfig()
