"""
core/naming.py
--------------
Target identifier rules.

GoogleSQL identifiers start with a letter, continue with letters, digits
or underscores, are at most 128 characters long and are compared
case-insensitively.  Tables, indexes and constraints share one schema-wide
namespace; column names are scoped to their table.
"""
from __future__ import annotations

import re

MAX_IDENTIFIER_LENGTH = 128

RESERVED_WORDS = frozenset({
    "ALL", "AND", "ANY", "ARRAY", "AS", "ASC", "ASSERT_ROWS_MODIFIED", "AT",
    "BETWEEN", "BY", "CASE", "CAST", "COLLATE", "CONTAINS", "CREATE", "CROSS",
    "CUBE", "CURRENT", "DEFAULT", "DEFINE", "DESC", "DISTINCT", "ELSE", "END",
    "ENUM", "ESCAPE", "EXCEPT", "EXCLUDE", "EXISTS", "EXTRACT", "FALSE",
    "FETCH", "FOLLOWING", "FOR", "FROM", "FULL", "GROUP", "GROUPING", "GROUPS",
    "HASH", "HAVING", "IF", "IGNORE", "IN", "INNER", "INTERSECT", "INTERVAL",
    "INTO", "IS", "JOIN", "LATERAL", "LEFT", "LIKE", "LIMIT", "LOOKUP",
    "MERGE", "NATURAL", "NEW", "NO", "NOT", "NULL", "NULLS", "OF", "ON", "OR",
    "ORDER", "OUTER", "OVER", "PARTITION", "PRECEDING", "PROTO", "RANGE",
    "RECURSIVE", "RESPECT", "RIGHT", "ROLLUP", "ROWS", "SELECT", "SET", "SOME",
    "STRUCT", "TABLESAMPLE", "THEN", "TO", "TREAT", "TRUE", "UNBOUNDED",
    "UNION", "UNNEST", "USING", "WHEN", "WHERE", "WINDOW", "WITH", "WITHIN",
})

_ILLEGAL_CHARS = re.compile(r"[^A-Za-z0-9_]")


def sanitize(name: str) -> tuple[str, str | None]:
    """
    Make *name* a legal target identifier.

    Returns:
        ``(identifier, reason)`` where *reason* explains a change, or is None
        when *name* was already legal.

    Examples::

        sanitize("order-items")  →  ("order_items", "illegal characters replaced")
        sanitize("2fa")          →  ("x2fa", "must start with a letter")
        sanitize("select")       →  ("select_", "reserved word")
    """
    result = _ILLEGAL_CHARS.sub("_", name) or "x"
    reasons = []
    if result != name:
        reasons.append("illegal characters replaced")
    if not result[0].isalpha():
        result = "x" + result
        reasons.append("must start with a letter")
    if result.upper() in RESERVED_WORDS:
        result += "_"
        reasons.append("reserved word")
    if len(result) > MAX_IDENTIFIER_LENGTH:
        result = result[:MAX_IDENTIFIER_LENGTH]
        reasons.append(f"longer than {MAX_IDENTIFIER_LENGTH} characters")
    return result, ("; ".join(reasons) or None)


class NameScope:
    """Hands out case-insensitively unique identifiers within one scope."""

    def __init__(self) -> None:
        self._used: set[str] = set()

    def claim(self, name: str) -> str:
        """Reserve *name*, adding ``_2``, ``_3`` ... when it is already taken."""
        candidate = name
        suffix = 2
        while candidate.lower() in self._used:
            tail = f"_{suffix}"
            candidate = name[:MAX_IDENTIFIER_LENGTH - len(tail)] + tail
            suffix += 1
        self._used.add(candidate.lower())
        return candidate
