from logfire_pg.policy.client_tools import (
    ClientToolMatch,
    detect_client_tool_query,
    normalize_whitespace,
)

__all__ = ["ClientToolMatch", "detect_client_tool_query", "normalize_whitespace"]
