"""Tests for the PostgreSQL array literal format."""

from __future__ import annotations

from datetime import date

import pytest

from logfire_pg.schema.literals import format_array_literal, parse_array_literal
from logfire_pg.schema.mapping import map_value
from logfire_pg.wire import oids


@pytest.mark.parametrize("size", [0, 1, 5])
def test_integer_list_round_trip(size: int) -> None:
    values = [i * 10 - 7 for i in range(size)]
    decoded = parse_array_literal(map_value(oids.INT8_ARRAY, values) or "")
    assert [int(v) for v in decoded if v is not None] == values
    assert len(decoded) == size


@pytest.mark.parametrize("size", [0, 1, 5])
def test_text_list_round_trip(size: int) -> None:
    pool = ["plain", "with space", 'quote"d', "back\\slash", "{braces}", "NULL", ""]
    values = pool[:size]
    assert parse_array_literal(map_value(oids.TEXT_ARRAY, values) or "") == values


@pytest.mark.parametrize("size", [0, 1, 5])
def test_date_list_round_trip(size: int) -> None:
    values = [date(2024, 1, day + 1) for day in range(size)]
    decoded = parse_array_literal(map_value(oids.DATE_ARRAY, values) or "")
    assert [date.fromisoformat(v) for v in decoded if v is not None] == values


def test_nulls_survive_round_trip() -> None:
    literal = map_value(oids.FLOAT8_ARRAY, [1.5, None, 2.0])
    assert literal == "{1.5,NULL,2.0}"
    assert parse_array_literal(literal) == ["1.5", None, "2.0"]


def test_quoted_null_is_a_string() -> None:
    assert format_array_literal(["NULL", None]) == '{"NULL",NULL}'
    assert parse_array_literal('{"NULL",NULL}') == ["NULL", None]


def test_parse_tolerates_whitespace() -> None:
    assert parse_array_literal(' { 1 , "a b" ,NULL } ') == ["1", "a b", None]


@pytest.mark.parametrize("literal", ["1,2", "{1,{2}}", '{"unterminated}', "{1,,2}", "{a b\"c}"])
def test_parse_rejects_malformed(literal: str) -> None:
    with pytest.raises(ValueError):
        parse_array_literal(literal)
