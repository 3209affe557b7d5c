"""Configuration loading and models."""

from seedkit.config.loader import load_config, load_config_or_default
from seedkit.config.models import (
    ConnectionResult,
    DatabaseProfile,
    MigrationSettings,
    PathSettings,
    SeedkitConfig,
)

__all__ = [
    "load_config",
    "load_config_or_default",
    "ConnectionResult",
    "DatabaseProfile",
    "MigrationSettings",
    "PathSettings",
    "SeedkitConfig",
]
