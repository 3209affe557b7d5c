"""Seed artifact files.

A seed lives in ``<seed_dir>/<name>/``:

- ``dump.sql``: the user's population script (input to capture)
- ``load.sql``: the consolidated artifact (output of capture, input to replay)

``load.sql`` holds one section per table::

    -- Table: public.users
    INSERT INTO "public"."users" ("id", "name") VALUES (1, 'Ada');

    -- Table: public.orders
    -- No data for table public.orders

Older captures wrote one ``<schema>.<table>.sql`` file per table (and, before
that, CSV exports). Those files are still parsed, but a directory holding
only them is reported as stale so the user regenerates it.
"""

import logging
import os
import re
from pathlib import Path

from seedkit.errors import StaleSeedFormatError
from seedkit.schema.models import TableRef
from seedkit.seed.models import TABLE_HEADER_PREFIX, SeedArtifact

logger = logging.getLogger(__name__)

LOAD_FILE = "load.sql"
SCRIPT_FILE = "dump.sql"

_LEGACY_TABLE_FILE_RE = re.compile(r"^[^.]+\.[^/]+\.sql$")
_DOLLAR_TAG_RE = re.compile(r"\$([A-Za-z_][A-Za-z_0-9]*)?\$")


# ============================================================================
# Statement splitting
# ============================================================================


def split_sql(text: str) -> list[tuple[str, str]]:
    """Split SQL text into comment lines and complete statements.

    Quote-aware: semicolons and ``--`` inside single-quoted strings
    (including ``E''`` strings), double-quoted identifiers and dollar-quoted
    bodies do not end a statement or start a comment.

    Args:
        text: SQL script.

    Returns:
        List of ``("comment", line)`` and ``("statement", sql)`` entries in
        source order. Statements keep their trailing ``;``. Comments that
        appear inside a statement stay part of it.

    Raises:
        StaleSeedFormatError: If the text ends inside a quoted value.
    """
    entries: list[tuple[str, str]] = []
    buf: list[str] = []
    i, n = 0, len(text)

    def flush() -> None:
        stmt = "".join(buf).strip()
        if stmt:
            entries.append(("statement", stmt))
        buf.clear()

    while i < n:
        ch = text[i]
        at_statement_start = not buf
        if at_statement_start and ch.isspace():
            i += 1
            continue

        if ch == "-" and text.startswith("--", i):
            end = text.find("\n", i)
            end = n if end == -1 else end
            if at_statement_start:
                entries.append(("comment", text[i:end].rstrip()))
            else:
                buf.append(text[i:end])
            i = end
            continue

        if ch == "'":
            escapes = i > 0 and text[i - 1] in "eE" and (i < 2 or not text[i - 2].isalnum())
            j = i + 1
            while True:
                if j >= n:
                    raise StaleSeedFormatError("Unterminated string literal in seed file")
                if escapes and text[j] == "\\":
                    j += 2
                    continue
                if text[j] == "'":
                    if j + 1 < n and text[j + 1] == "'":
                        j += 2
                        continue
                    break
                j += 1
            buf.append(text[i : j + 1])
            i = j + 1
            continue

        if ch == '"':
            j = i + 1
            while True:
                j = text.find('"', j)
                if j == -1:
                    raise StaleSeedFormatError("Unterminated quoted identifier in seed file")
                if text.startswith('""', j):
                    j += 2
                    continue
                break
            buf.append(text[i : j + 1])
            i = j + 1
            continue

        if ch == "$":
            match = _DOLLAR_TAG_RE.match(text, i)
            if match:
                delimiter = match.group(0)
                end = text.find(delimiter, match.end())
                if end == -1:
                    raise StaleSeedFormatError("Unterminated dollar-quoted value in seed file")
                end += len(delimiter)
                buf.append(text[i:end])
                i = end
                continue

        if ch == ";":
            buf.append(ch)
            flush()
            i += 1
            continue

        buf.append(ch)
        i += 1

    flush()
    return entries


_INSERT_PREFIX = "INSERT INTO"


def _names_table(target: str, name: str) -> bool:
    """True when ``target`` starts with ``name`` as a whole relation name."""
    if not target.startswith(name):
        return False
    rest = target[len(name):]
    return not rest or not (rest[0].isalnum() or rest[0] in "_$\"")


def _check_statement(statement: str, source: str, table: TableRef) -> None:
    """Accept only INSERTs into the section's own table."""
    first_line = statement.splitlines()[0][:80]
    if statement[: len(_INSERT_PREFIX)].upper() != _INSERT_PREFIX:
        raise StaleSeedFormatError(
            f"Unrecognized statement in {source}: {first_line!r}\n"
            f"Regenerate the seed with: seedkit seed create <name>"
        )
    target = statement[len(_INSERT_PREFIX):].lstrip()
    if not (_names_table(target, table.quoted_name) or _names_table(target, table.qualified_name)):
        raise StaleSeedFormatError(
            f"Statement in the {table} section of {source} targets another table: "
            f"{first_line!r}\n"
            f"Regenerate the seed with: seedkit seed create <name>"
        )


# ============================================================================
# Reading
# ============================================================================


def parse_consolidated(text: str, source: str = LOAD_FILE) -> list[SeedArtifact]:
    """Parse a consolidated seed file into artifacts.

    Args:
        text: Contents of ``load.sql``.
        source: File name used in error messages.

    Returns:
        Artifacts in file order.

    Raises:
        StaleSeedFormatError: If a statement appears outside a table section,
            a table appears twice, or a statement is not an INSERT into
            its section's table.
    """
    artifacts: list[SeedArtifact] = []
    seen: set[str] = set()
    current: SeedArtifact | None = None

    for kind, value in split_sql(text):
        if kind == "comment":
            if value.startswith(TABLE_HEADER_PREFIX):
                table = TableRef.parse(value[len(TABLE_HEADER_PREFIX):].strip())
                if table.qualified_name in seen:
                    raise StaleSeedFormatError(
                        f"Table {table} appears twice in {source}"
                    )
                seen.add(table.qualified_name)
                current = SeedArtifact(table=table)
                artifacts.append(current)
            continue

        if current is None:
            raise StaleSeedFormatError(
                f"Statement outside a '{TABLE_HEADER_PREFIX.strip()}' section in {source}.\n"
                f"Regenerate the seed with: seedkit seed create <name>"
            )
        _check_statement(value, source, current.table)
        current.statements.append(value)

    return artifacts


def parse_table_file(path: Path) -> SeedArtifact:
    """Parse a legacy per-table ``<schema>.<table>.sql`` file."""
    table = TableRef.parse(path.name[: -len(".sql")])
    statements = []
    for kind, value in split_sql(path.read_text()):
        if kind == "statement":
            _check_statement(value, path.name, table)
            statements.append(value)
    return SeedArtifact(table=table, statements=statements)


def find_legacy_files(seed_path: Path) -> list[Path]:
    """Per-table ``.sql`` and ``.csv`` files left by older capture layouts."""
    if not seed_path.is_dir():
        return []
    found = []
    for path in sorted(seed_path.iterdir()):
        if path.name in (LOAD_FILE, SCRIPT_FILE) or not path.is_file():
            continue
        if path.suffix == ".csv" or _LEGACY_TABLE_FILE_RE.match(path.name):
            found.append(path)
    return found


def load_seed_dir(seed_path: Path, allow_legacy: bool = False) -> list[SeedArtifact]:
    """Load the artifacts of one seed directory.

    Args:
        seed_path: ``<seed_dir>/<name>`` directory.
        allow_legacy: Accept per-table ``.sql`` files when no ``load.sql``
            exists. CSV exports are never accepted.

    Returns:
        Artifacts to replay.

    Raises:
        FileNotFoundError: If the directory holds no seed artifacts at all.
        StaleSeedFormatError: If only a legacy layout is present (and not
            allowed) or the consolidated file is malformed.
    """
    load_file = seed_path / LOAD_FILE
    if load_file.exists():
        legacy = find_legacy_files(seed_path)
        if legacy:
            logger.warning(
                f"Ignoring {len(legacy)} legacy file(s) next to {load_file}"
            )
        return parse_consolidated(load_file.read_text(), source=str(load_file))

    legacy = find_legacy_files(seed_path)
    if not legacy:
        raise FileNotFoundError(
            f"No seed data in {seed_path} (expected {LOAD_FILE}).\n"
            f"Create it with: seedkit seed create {seed_path.name}"
        )

    csv_files = [p for p in legacy if p.suffix == ".csv"]
    if csv_files or not allow_legacy:
        raise StaleSeedFormatError(
            f"{seed_path} uses a legacy per-table layout "
            f"({', '.join(p.name for p in legacy[:3])}{', ...' if len(legacy) > 3 else ''}) "
            f"and has no {LOAD_FILE}.\n"
            f"Regenerate it with: seedkit seed create {seed_path.name}"
        )

    logger.warning(f"Reading legacy per-table seed files from {seed_path}")
    return [parse_table_file(p) for p in legacy]


# ============================================================================
# Writing
# ============================================================================


def render_seed_file(artifacts: list[SeedArtifact]) -> str:
    """Render artifacts as the consolidated seed file text."""
    return "\n".join(artifact.render() for artifact in artifacts)


def write_seed_file(seed_path: Path, artifacts: list[SeedArtifact]) -> Path:
    """Write ``load.sql`` atomically and remove legacy per-table files.

    The text is written to a temporary file in the same directory and moved
    into place, so an interrupted write never leaves a truncated seed.

    Args:
        seed_path: ``<seed_dir>/<name>`` directory (created if missing).
        artifacts: Captured artifacts, one per table.

    Returns:
        Path of the written ``load.sql``.
    """
    seed_path.mkdir(parents=True, exist_ok=True)
    target = seed_path / LOAD_FILE
    tmp = seed_path / f".{LOAD_FILE}.tmp"
    tmp.write_text(render_seed_file(artifacts))
    os.replace(tmp, target)

    for legacy in find_legacy_files(seed_path):
        logger.info(f"Removing legacy seed file {legacy.name}")
        legacy.unlink()

    return target
