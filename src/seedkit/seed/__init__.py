"""Seed capture, artifact files and replay.

Usage:
    from seedkit.seed import capture_seed, write_seed_file, load_seed_dir, replay_seed
"""

from seedkit.seed.artifacts import (
    LOAD_FILE,
    SCRIPT_FILE,
    load_seed_dir,
    parse_consolidated,
    parse_table_file,
    write_seed_file,
)
from seedkit.seed.capture import capture_seed
from seedkit.seed.models import ReplayResult, SeedArtifact, TableSnapshot
from seedkit.seed.replay import replay_seed

__all__ = [
    "LOAD_FILE",
    "SCRIPT_FILE",
    "capture_seed",
    "load_seed_dir",
    "parse_consolidated",
    "parse_table_file",
    "replay_seed",
    "write_seed_file",
    "ReplayResult",
    "SeedArtifact",
    "TableSnapshot",
]
