"""Tests for client tool introspection detection."""

from __future__ import annotations

import pytest

from logfire_pg.policy.client_tools import detect_client_tool_query, normalize_whitespace

# What psql sends for `\dt`, as it appears on the wire.
PSQL_LIST_TABLES = """SELECT n.nspname as "Schema",
  c.relname as "Name",
  CASE c.relkind WHEN 'r' THEN 'table' WHEN 'v' THEN 'view' WHEN 'm' THEN 'materialized view' WHEN 'i' THEN 'index' WHEN 'S' THEN 'sequence' WHEN 't' THEN 'TOAST table' WHEN 'f' THEN 'foreign table' WHEN 'p' THEN 'partitioned table' WHEN 'I' THEN 'partitioned index' END as "Type",
  pg_catalog.pg_get_userbyid(c.relowner) as "Owner"
FROM pg_catalog.pg_class c
     LEFT JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
     LEFT JOIN pg_catalog.pg_am am ON am.oid = c.relam
WHERE c.relkind IN ('r','p','')
      AND n.nspname <> 'pg_catalog'
      AND n.nspname !~ '^pg_toast'
      AND n.nspname <> 'information_schema'
  AND pg_catalog.pg_table_is_visible(c.oid)
ORDER BY 1,2;"""  # noqa: E501

PSQL_DESCRIBE_TABLE = """SELECT c.oid,
  n.nspname,
  c.relname
FROM pg_catalog.pg_class c
     LEFT JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
WHERE c.relname OPERATOR(pg_catalog.~) '^(records)$' COLLATE pg_catalog.default
  AND pg_catalog.pg_table_is_visible(c.oid)
ORDER BY 2, 3;"""

PSQL_DESCRIBE_SCHEMA_TABLE = """SELECT c.oid,
  n.nspname,
  c.relname
FROM pg_catalog.pg_class c
     LEFT JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
WHERE c.relname OPERATOR(pg_catalog.~) '^(records)$' COLLATE pg_catalog.default
  AND n.nspname OPERATOR(pg_catalog.~) '^(public)$' COLLATE pg_catalog.default
ORDER BY 2, 3;"""


def test_list_tables_is_detected() -> None:
    match = detect_client_tool_query(PSQL_LIST_TABLES)
    assert match is not None
    assert match.detected_command == "\\dt"
    assert match.suggested_query == "show tables;"


def test_describe_table_is_detected() -> None:
    match = detect_client_tool_query(PSQL_DESCRIBE_TABLE)
    assert match is not None
    assert match.detected_command == "\\d records"
    assert match.suggested_query == "show columns from records;"


def test_describe_schema_table_is_detected() -> None:
    match = detect_client_tool_query(PSQL_DESCRIBE_SCHEMA_TABLE)
    assert match is not None
    assert match.detected_command == "\\d public.records"
    assert match.suggested_query == "show columns from public.records;"


@pytest.mark.parametrize(
    "query",
    [
        "SELECT 1",
        "select * from records limit 10",
        "",
        PSQL_LIST_TABLES.replace("ORDER BY 1,2", "ORDER BY 2,1"),
    ],
)
def test_ordinary_queries_pass_through(query: str) -> None:
    assert detect_client_tool_query(query) is None


def test_extra_whitespace_does_not_change_result() -> None:
    padded = "\n\t  " + PSQL_LIST_TABLES.replace(" ", "   ") + "  \n"
    assert detect_client_tool_query(padded) == detect_client_tool_query(PSQL_LIST_TABLES)


def test_normalize_whitespace() -> None:
    assert normalize_whitespace("  SELECT\n\t1  ,\r\n 2 ") == "SELECT 1 , 2"
    once = normalize_whitespace(PSQL_DESCRIBE_TABLE)
    assert normalize_whitespace(once) == once
