"""Detection of catalog queries issued by interactive clients.

psql backslash commands such as `\\dt` and `\\d table` expand into queries against
pg_catalog, which the upstream store does not have. Those queries are recognized
here so the user can be pointed to the upstream-native equivalent instead.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

# psql `\dt`
_LIST_TABLES_QUERY: Final[str] = (
    'SELECT n.nspname as "Schema", c.relname as "Name", '
    "CASE c.relkind WHEN 'r' THEN 'table' WHEN 'v' THEN 'view' "
    "WHEN 'm' THEN 'materialized view' WHEN 'i' THEN 'index' WHEN 'S' THEN 'sequence' "
    "WHEN 't' THEN 'TOAST table' WHEN 'f' THEN 'foreign table' "
    "WHEN 'p' THEN 'partitioned table' WHEN 'I' THEN 'partitioned index' END as \"Type\", "
    'pg_catalog.pg_get_userbyid(c.relowner) as "Owner" '
    "FROM pg_catalog.pg_class c "
    "LEFT JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
    "LEFT JOIN pg_catalog.pg_am am ON am.oid = c.relam "
    "WHERE c.relkind IN ('r','p','') "
    "AND n.nspname <> 'pg_catalog' AND n.nspname !~ '^pg_toast' "
    "AND n.nspname <> 'information_schema' "
    "AND pg_catalog.pg_table_is_visible(c.oid) ORDER BY 1,2;"
)

_DESCRIBE_PREFIX: Final[str] = (
    r"^SELECT c\.oid, n\.nspname, c\.relname FROM pg_catalog\.pg_class c "
    r"LEFT JOIN pg_catalog\.pg_namespace n ON n\.oid = c\.relnamespace "
    r"WHERE c\.relname OPERATOR\(pg_catalog\.~\) '\^\(([^)]+)\)\$' COLLATE pg_catalog\.default "
)

# psql `\d table`
_DESCRIBE_TABLE_PATTERN: Final[re.Pattern[str]] = re.compile(
    _DESCRIBE_PREFIX + r"AND pg_catalog\.pg_table_is_visible\(c\.oid\) ORDER BY 2, 3;$"
)

# psql `\d schema.table`
_DESCRIBE_SCHEMA_TABLE_PATTERN: Final[re.Pattern[str]] = re.compile(
    _DESCRIBE_PREFIX
    + r"AND n\.nspname OPERATOR\(pg_catalog\.~\) '\^\(([^)]+)\)\$' COLLATE pg_catalog\.default "
    r"ORDER BY 2, 3;$"
)


@dataclass(frozen=True)
class ClientToolMatch:
    """A recognized client command and the query to run instead."""

    detected_command: str
    suggested_query: str


def normalize_whitespace(query: str) -> str:
    """Collapse whitespace runs to single spaces and trim the ends."""
    return " ".join(query.split())


def detect_client_tool_query(query: str) -> ClientToolMatch | None:
    """Return the matching client command for a catalog query, or None.

    Purely advisory: nothing is executed.
    """
    normalized = normalize_whitespace(query)

    if normalized == _LIST_TABLES_QUERY:
        return ClientToolMatch("\\dt", "show tables;")

    match = _DESCRIBE_TABLE_PATTERN.match(normalized)
    if match:
        table = match.group(1)
        return ClientToolMatch(f"\\d {table}", f"show columns from {table};")

    match = _DESCRIBE_SCHEMA_TABLE_PATTERN.match(normalized)
    if match:
        table, schema = match.group(1), match.group(2)
        return ClientToolMatch(
            f"\\d {schema}.{table}", f"show columns from {schema}.{table};"
        )

    return None
