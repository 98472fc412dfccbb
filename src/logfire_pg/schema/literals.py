"""PostgreSQL array literal text format (`{a,"b c",NULL}`).

Only one-dimensional arrays are produced; nested lists are rejected earlier by
the type mapper.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Final

_NEEDS_QUOTING: Final = frozenset('{},"\\')


def _quote_element(element: str) -> str:
    if (
        element == ""
        or element.upper() == "NULL"
        or any(ch in _NEEDS_QUOTING or ch.isspace() for ch in element)
    ):
        escaped = element.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return element


def format_array_literal(elements: Iterable[str | None]) -> str:
    """Render already-converted element texts as an array literal."""
    return "{" + ",".join("NULL" if e is None else _quote_element(e) for e in elements) + "}"


def parse_array_literal(literal: str) -> list[str | None]:
    """Parse a one-dimensional array literal into element texts.

    Unquoted `NULL` (any case) becomes None; quoted `"NULL"` stays a string.

    Raises:
        ValueError: If the literal is not a well-formed one-dimensional array.
    """
    text = literal.strip()
    if len(text) < 2 or text[0] != "{" or text[-1] != "}":
        raise ValueError(f"not an array literal: {literal!r}")

    body = text[1:-1]
    if not body.strip():
        return []

    elements: list[str | None] = []
    i = 0
    n = len(body)
    while i <= n:
        while i < n and body[i].isspace():
            i += 1

        if i < n and body[i] == '"':
            i += 1
            chars: list[str] = []
            while True:
                if i >= n:
                    raise ValueError(f"unterminated quoted element in {literal!r}")
                ch = body[i]
                if ch == "\\":
                    if i + 1 >= n:
                        raise ValueError(f"dangling escape in {literal!r}")
                    chars.append(body[i + 1])
                    i += 2
                    continue
                if ch == '"':
                    i += 1
                    break
                chars.append(ch)
                i += 1
            elements.append("".join(chars))
            while i < n and body[i].isspace():
                i += 1
        else:
            start = i
            while i < n and body[i] != ",":
                if body[i] in '{}"':
                    raise ValueError(f"nested or malformed array literal: {literal!r}")
                i += 1
            raw = body[start:i].strip()
            if raw == "":
                raise ValueError(f"empty element in {literal!r}")
            elements.append(None if raw.upper() == "NULL" else raw)

        if i >= n:
            break
        if body[i] != ",":
            raise ValueError(f"expected ',' at offset {i} in {literal!r}")
        i += 1

    return elements

