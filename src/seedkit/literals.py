"""SQL literal rendering for captured row values.

Turns values read through psycopg into literal text that PostgreSQL parses
back into the same value under the column's declared type. Dispatch is keyed
on the ``format_type()`` rendering of the column, normalized once and resolved
to a closed set of ``TypeKind`` values:

- BOOLEAN / INTEGER / FLOAT: unquoted textual form
- TEMPORAL: fixed-pattern text, single-quoted, numeric UTC offset when zoned
- ARRAY: dollar-quoted PostgreSQL array text
- BINARY: ``'\\x<hex>'``
- TEXTUAL: single-quoted, ``E`` prefix when a backslash is present
- OPAQUE: everything else (uuid, json, network, geometric, ranges, enums,
  domains, unknown), quoted textual form

Usage:
    from seedkit.literals import serialize_value

    serialize_value("O'Brien", "text")          # "'O''Brien'"
    serialize_value(["a", 'b"c'], "text[]")     # '$q${a,"b\\"c"}$q$'
"""

import json
import math
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, Sequence


class TypeKind(str, Enum):
    """Serialization strategy for a PostgreSQL type."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    TEMPORAL = "temporal"
    ARRAY = "array"
    BINARY = "binary"
    TEXTUAL = "textual"
    OPAQUE = "opaque"


_TYPE_KINDS: dict[str, TypeKind] = {
    "boolean": TypeKind.BOOLEAN,
    "bool": TypeKind.BOOLEAN,
    "smallint": TypeKind.INTEGER,
    "integer": TypeKind.INTEGER,
    "int": TypeKind.INTEGER,
    "int2": TypeKind.INTEGER,
    "int4": TypeKind.INTEGER,
    "int8": TypeKind.INTEGER,
    "bigint": TypeKind.INTEGER,
    "smallserial": TypeKind.INTEGER,
    "serial": TypeKind.INTEGER,
    "bigserial": TypeKind.INTEGER,
    "real": TypeKind.FLOAT,
    "float4": TypeKind.FLOAT,
    "float8": TypeKind.FLOAT,
    "double precision": TypeKind.FLOAT,
    "numeric": TypeKind.FLOAT,
    "decimal": TypeKind.FLOAT,
    "timestamp": TypeKind.TEMPORAL,
    "timestamp without time zone": TypeKind.TEMPORAL,
    "timestamp with time zone": TypeKind.TEMPORAL,
    "timestamptz": TypeKind.TEMPORAL,
    "date": TypeKind.TEMPORAL,
    "time": TypeKind.TEMPORAL,
    "time without time zone": TypeKind.TEMPORAL,
    "time with time zone": TypeKind.TEMPORAL,
    "timetz": TypeKind.TEMPORAL,
    "interval": TypeKind.TEMPORAL,
    "bytea": TypeKind.BINARY,
    "text": TypeKind.TEXTUAL,
    "character varying": TypeKind.TEXTUAL,
    "varchar": TypeKind.TEXTUAL,
    "character": TypeKind.TEXTUAL,
    "char": TypeKind.TEXTUAL,
    "bpchar": TypeKind.TEXTUAL,
    "name": TypeKind.TEXTUAL,
    "citext": TypeKind.TEXTUAL,
}

_ZONED_TYPES = {"timestamp with time zone", "timestamptz", "time with time zone", "timetz"}
_JSON_TYPES = {"json", "jsonb"}

_PARAMS_RE = re.compile(r"\([^)]*\)")
_SPACE_RE = re.compile(r"\s+")
_ARRAY_SPECIAL_RE = re.compile(r'[{},"\\\s]')


def normalize_type_name(pg_type: str) -> str:
    """Normalize a type name for lookup.

    Lower-cases, drops parameter lists and collapses whitespace, so
    ``"TIMESTAMP(3) WITH TIME ZONE"`` becomes ``"timestamp with time zone"``
    and ``"character varying(40)[]"`` becomes ``"character varying[]"``.
    """
    name = _PARAMS_RE.sub("", pg_type.lower())
    name = _SPACE_RE.sub(" ", name).strip()
    return name.replace(" []", "[]")


@lru_cache(maxsize=512)
def resolve_type_kind(pg_type: str) -> TypeKind:
    """Resolve a declared column type to its TypeKind.

    Args:
        pg_type: Type as rendered by ``format_type()`` (any case, may carry
            parameters or an array suffix).

    Returns:
        The TypeKind used to render values of this type. Unknown types
        resolve to ``TypeKind.OPAQUE``.
    """
    name = normalize_type_name(pg_type)
    if name.endswith("[]"):
        return TypeKind.ARRAY
    # Schema-qualified domains and enums fall through to OPAQUE
    return _TYPE_KINDS.get(name, TypeKind.OPAQUE)


# ============================================================================
# Quoting primitives
# ============================================================================


def quote_identifier(name: str) -> str:
    """Quote an identifier, doubling embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def quote_string(value: str) -> str:
    """Quote a string literal for text-like columns.

    Embedded single quotes are doubled. When the value contains a backslash
    the literal gets an ``E`` prefix; the text itself is not altered.

    Example:
        >>> quote_string("O'Brien\\\\Co")
        "E'O''Brien\\\\Co'"
    """
    escaped = value.replace("'", "''")
    if "\\" in value:
        return f"E'{escaped}'"
    return f"'{escaped}'"


def quote_literal(value: str) -> str:
    """Quote a string as a standard-conforming literal (backslashes verbatim)."""
    return "'" + value.replace("'", "''") + "'"


def quote_dollar(value: str) -> str:
    """Dollar-quote a payload with the shortest non-colliding tag.

    Tags are tried in the order ``q``, ``qq``, ``qqq``, ... The chosen tag
    never occurs as ``$tag$`` inside the payload, and the payload cannot end
    in ``$tag`` (which would close the literal early).

    Example:
        >>> quote_dollar("has $q$ inside")
        '$qq$has $q$ inside$qq$'
    """
    tag = "q"
    while f"${tag}$" in f"{value}${tag}":
        tag += "q"
    return f"${tag}${value}${tag}$"


# ============================================================================
# Value rendering
# ============================================================================


def _fraction(microsecond: int) -> str:
    """Render microseconds with trailing zeros trimmed ('' when zero)."""
    if not microsecond:
        return ""
    return "." + f"{microsecond:06d}".rstrip("0")


def _format_date(value: date) -> str:
    # strftime("%Y") does not zero-pad years below 1000 on every platform
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def _format_clock(value: datetime | time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}{_fraction(value.microsecond)}"


def _utc_offset(offset: timedelta | None) -> str:
    if offset is None:
        return ""
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _format_interval(value: timedelta) -> str:
    # timedelta keeps days signed and seconds positive; PostgreSQL reads
    # "-1 days 23:00:00" the same way
    hours, rest = divmod(value.seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    clock = f"{hours:02d}:{minutes:02d}:{seconds:02d}{_fraction(value.microseconds)}"
    return f"{value.days} days {clock}"


def _format_temporal(value: Any, base: str) -> str | None:
    """Render a temporal value, or None when the value isn't temporal."""
    zoned = base in _ZONED_TYPES
    if base.startswith("timestamp") and isinstance(value, datetime):
        text = f"{_format_date(value)} {_format_clock(value)}"
        return text + _utc_offset(value.utcoffset()) if zoned else text
    if base == "date" and isinstance(value, date):
        return _format_date(value)
    if base.startswith("time") and isinstance(value, time):
        text = _format_clock(value)
        return text + _utc_offset(value.utcoffset()) if zoned else text
    if base == "interval" and isinstance(value, timedelta):
        return _format_interval(value)
    return None


def _format_float(value: Any) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "'NaN'"
        if math.isinf(value):
            return "'Infinity'" if value > 0 else "'-Infinity'"
        return repr(value)
    if isinstance(value, Decimal):
        if value.is_nan():
            return "'NaN'"
        if value.is_infinite():
            return "'Infinity'" if value > 0 else "'-Infinity'"
    return str(value)


def _array_element(value: Any) -> str:
    """Render one element of a PostgreSQL array literal."""
    if value is None:
        return "NULL"
    if isinstance(value, (list, tuple)):
        return array_literal(value)
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, (bytes, bytearray, memoryview)):
        text = "\\x" + bytes(value).hex()
    elif isinstance(value, dict):
        text = json.dumps(value, ensure_ascii=False)
    elif isinstance(value, datetime):
        text = value.isoformat(sep=" ")
    else:
        text = str(value)
    if text == "" or text.upper() == "NULL" or _ARRAY_SPECIAL_RE.search(text):
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


def array_literal(values: Sequence[Any]) -> str:
    """Render a (possibly nested) sequence as PostgreSQL array input text.

    Example:
        >>> array_literal(["a", None, 'say "hi"'])
        '{a,NULL,"say \\\\"hi\\\\""}'
    """
    return "{" + ",".join(_array_element(v) for v in values) + "}"


def _opaque_text(value: Any, base: str) -> str:
    if base in _JSON_TYPES or isinstance(value, (dict, list)):
        return quote_literal(json.dumps(value, ensure_ascii=False))
    # Backslashes in uuid/network/range/enum text are literal data
    return quote_literal(str(value))


def serialize_value(value: Any, pg_type: str) -> str:
    """Serialize a Python value into a SQL literal for the given column type.

    Pure function: no I/O, no connection state.

    Args:
        value: Value as returned by psycopg (``None``, bool, int, float,
            Decimal, str, bytes, datetime family, list, dict, ...).
        pg_type: Declared column type (``format_type()`` rendering).

    Returns:
        Literal text ready to splice into an INSERT statement.

    Example:
        >>> serialize_value(None, "integer")
        'NULL'
        >>> serialize_value(b"\\x01\\xff", "bytea")
        "'\\\\x01ff'"
        >>> serialize_value("O'Brien\\\\Co", "text")
        "E'O''Brien\\\\Co'"
    """
    if value is None:
        return "NULL"

    kind = resolve_type_kind(pg_type)
    base = normalize_type_name(pg_type)

    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if kind is TypeKind.BINARY:
            return f"'\\x{raw.hex()}'"
        text = raw.decode("utf-8", errors="replace")
        if kind is TypeKind.ARRAY:
            return quote_dollar(text)
        return quote_string(text)

    if kind is TypeKind.BOOLEAN:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    if kind is TypeKind.INTEGER:
        return str(int(value)) if isinstance(value, bool) else str(value)

    if kind is TypeKind.FLOAT:
        return _format_float(value)

    if kind is TypeKind.TEMPORAL:
        text = _format_temporal(value, base)
        return quote_string(text if text is not None else str(value))

    if kind is TypeKind.ARRAY:
        if isinstance(value, (list, tuple)):
            return quote_dollar(array_literal(value))
        return quote_dollar(str(value))

    if kind is TypeKind.BINARY:
        return quote_string(str(value))

    if kind is TypeKind.TEXTUAL:
        return quote_string(str(value))

    return _opaque_text(value, base)


def serialize_row(values: Sequence[Any], types: Sequence[str]) -> list[str]:
    """Serialize a row positionally; values without a known type are opaque."""
    return [
        serialize_value(value, types[i] if i < len(types) else "")
        for i, value in enumerate(values)
    ]
