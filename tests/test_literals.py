"""Tests for SQL literal rendering (seedkit.literals)."""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from seedkit.literals import (
    TypeKind,
    array_literal,
    normalize_type_name,
    quote_dollar,
    quote_identifier,
    quote_string,
    resolve_type_kind,
    serialize_row,
    serialize_value,
)


# ============================================================================
# Type resolution
# ============================================================================


class TestTypeResolution:
    """Declared type names resolve to a closed set of kinds."""

    @pytest.mark.parametrize(
        "pg_type, expected",
        [
            ("boolean", TypeKind.BOOLEAN),
            ("bigint", TypeKind.INTEGER),
            ("double precision", TypeKind.FLOAT),
            ("numeric(10,2)", TypeKind.FLOAT),
            ("timestamp(3) with time zone", TypeKind.TEMPORAL),
            ("interval", TypeKind.TEMPORAL),
            ("text[]", TypeKind.ARRAY),
            ("character varying(40)[]", TypeKind.ARRAY),
            ("bytea", TypeKind.BINARY),
            ("character varying(255)", TypeKind.TEXTUAL),
            ("uuid", TypeKind.OPAQUE),
            ("jsonb", TypeKind.OPAQUE),
            ("app.mood", TypeKind.OPAQUE),
        ],
    )
    def test_resolve(self, pg_type: str, expected: TypeKind) -> None:
        assert resolve_type_kind(pg_type) is expected

    def test_normalize_strips_params_and_case(self) -> None:
        assert normalize_type_name("TIMESTAMP(6)  WITH TIME ZONE") == "timestamp with time zone"
        assert normalize_type_name("character varying(40) []") == "character varying[]"


# ============================================================================
# Quoting primitives
# ============================================================================


class TestQuoting:
    def test_identifier_doubles_quotes(self) -> None:
        assert quote_identifier('we"ird') == '"we""ird"'

    def test_string_doubles_single_quotes(self) -> None:
        assert quote_string("O'Brien") == "'O''Brien'"

    def test_backslash_adds_escape_prefix(self) -> None:
        """O'Brien\\Co under a text type becomes E'O''Brien\\Co'."""
        assert quote_string("O'Brien\\Co") == "E'O''Brien\\Co'"

    def test_dollar_tag_avoids_payload(self) -> None:
        assert quote_dollar("plain") == "$q$plain$q$"
        assert quote_dollar("has $q$ inside") == "$qq$has $q$ inside$qq$"
        assert quote_dollar("$q$ and $qq$") == "$qqq$$q$ and $qq$$qqq$"

    def test_dollar_tag_avoids_trailing_partial_tag(self) -> None:
        quoted = quote_dollar("ends with $q")
        assert quoted == "$qq$ends with $q$qq$"


# ============================================================================
# serialize_value
# ============================================================================


class TestSerializeScalars:
    """Scalar values render in PostgreSQL's input syntax."""

    def test_null(self) -> None:
        assert serialize_value(None, "text") == "NULL"
        assert serialize_value(None, "integer") == "NULL"

    def test_boolean(self) -> None:
        assert serialize_value(True, "boolean") == "true"
        assert serialize_value(False, "bool") == "false"

    def test_integer(self) -> None:
        assert serialize_value(42, "integer") == "42"
        assert serialize_value(-7, "bigint") == "-7"

    def test_float_and_numeric(self) -> None:
        assert serialize_value(1.5, "double precision") == "1.5"
        assert serialize_value(Decimal("12.30"), "numeric(10,2)") == "12.30"

    def test_float_specials_are_quoted(self) -> None:
        assert serialize_value(float("nan"), "real") == "'NaN'"
        assert serialize_value(float("inf"), "double precision") == "'Infinity'"
        assert serialize_value(float("-inf"), "double precision") == "'-Infinity'"
        assert serialize_value(Decimal("NaN"), "numeric") == "'NaN'"

    def test_text_with_quote_and_backslash(self) -> None:
        assert serialize_value("O'Brien\\Co", "text") == "E'O''Brien\\Co'"

    def test_varchar(self) -> None:
        assert serialize_value("hello", "character varying(20)") == "'hello'"

    def test_bytea_hex(self) -> None:
        assert serialize_value(b"\x01\xff", "bytea") == "'\\x01ff'"
        assert serialize_value(memoryview(b"\x00"), "bytea") == "'\\x00'"

    def test_uuid_is_quoted(self) -> None:
        value = UUID("12345678-1234-5678-1234-567812345678")
        assert serialize_value(value, "uuid") == "'12345678-1234-5678-1234-567812345678'"

    def test_json_keeps_backslashes(self) -> None:
        assert serialize_value({"path": "a\\b"}, "jsonb") == "'{\"path\": \"a\\\\b\"}'"

    def test_unknown_type_is_quoted_text(self) -> None:
        assert serialize_value("happy", "app.mood") == "'happy'"


class TestSerializeTemporal:
    """Temporal values use fixed patterns; zoned types carry a numeric offset."""

    def test_timestamp_without_zone(self) -> None:
        value = datetime(2024, 3, 1, 12, 30, 5, 120000)
        assert serialize_value(value, "timestamp without time zone") == "'2024-03-01 12:30:05.12'"

    def test_timestamp_with_zone(self) -> None:
        value = datetime(2024, 3, 1, 12, 30, 5, tzinfo=timezone(timedelta(hours=-5)))
        assert serialize_value(value, "timestamp with time zone") == "'2024-03-01 12:30:05-05:00'"

    def test_utc_offset(self) -> None:
        value = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert serialize_value(value, "timestamptz") == "'2024-01-01 00:00:00+00:00'"

    def test_date_pads_year(self) -> None:
        assert serialize_value(date(33, 1, 2), "date") == "'0033-01-02'"

    def test_time(self) -> None:
        assert serialize_value(time(8, 5, 0, 500), "time") == "'08:05:00.0005'"

    def test_interval(self) -> None:
        assert serialize_value(timedelta(days=2, hours=3), "interval") == "'2 days 03:00:00'"
        assert serialize_value(timedelta(hours=-1), "interval") == "'-1 days 23:00:00'"

    @pytest.mark.parametrize(
        "text, pg_type",
        [
            ("infinity", "timestamp without time zone"),
            ("-infinity", "timestamp with time zone"),
            ("-infinity", "date"),
            ("1 mon", "interval"),
            ("1 year 2 mons 3 days", "interval"),
        ],
    )
    def test_server_text_quoted_verbatim(self, text: str, pg_type: str) -> None:
        assert serialize_value(text, pg_type) == f"'{text}'"


class TestSerializeArrays:
    """Arrays are rendered as array text inside a dollar-quoted literal."""

    def test_simple_array(self) -> None:
        assert serialize_value([1, 2, 3], "integer[]") == "$q${1,2,3}$q$"

    def test_embedded_double_quotes(self) -> None:
        literal = serialize_value(['say "hi"', "plain"], "text[]")
        assert literal == '$q${"say \\"hi\\"",plain}$q$'

    def test_tag_distinct_from_payload(self) -> None:
        literal = serialize_value(['a "quoted" $q$ value'], "text[]")
        assert literal.startswith("$qq$")
        assert literal.endswith("$qq$")
        assert literal.count("$qq$") == 2

    def test_nulls_and_empty_strings(self) -> None:
        assert array_literal([None, "", "NULL"]) == '{NULL,"","NULL"}'

    def test_nested(self) -> None:
        assert array_literal([[1, 2], [3, 4]]) == "{{1,2},{3,4}}"


class TestSerializeRow:
    def test_positional(self) -> None:
        assert serialize_row([1, "x", None], ["integer", "text", "uuid"]) == ["1", "'x'", "NULL"]

    def test_missing_types_fall_back(self) -> None:
        assert serialize_row([1, "x"], ["integer"]) == ["1", "'x'"]
