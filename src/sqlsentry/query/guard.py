"""Safety guard for generated SQL.

Decides whether candidate query text may run against the embedded database.
Checks run in a fixed order and the first failing check names the rejection:

1. Text must be a non-empty string
2. One trailing terminator is allowed, any other terminator means stacked statements
3. No comment markers (`--`, `/*`, `*/`)
4. The statement must start with SELECT or WITH
5. No deny-listed keyword anywhere, matched on word boundaries
6. A LIMIT clause is appended when the text has none

The guard is a pure function of its input: no I/O and no state between calls.
Keyword matching is textual, so a forbidden word inside a string literal or an alias
is rejected too.
"""

from __future__ import annotations

import re
from typing import Any

from sqlsentry.core.types import GuardVerdict

DEFAULT_ROW_CAP = 200

# Schema, data, transaction and configuration mutation, plus extension loading.
FORBIDDEN_KEYWORDS = (
    "pragma",
    "attach",
    "detach",
    "vacuum",
    "drop",
    "alter",
    "create",
    "insert",
    "update",
    "delete",
    "replace",
    "truncate",
    "reindex",
    "analyze",
    "load_extension",
    "begin",
    "commit",
    "rollback",
    "savepoint",
)

READ_ENTRY_POINTS = ("select", "with")

REASON_INVALID = "SQL is not a string."
REASON_EMPTY = "SQL is empty."
REASON_MULTI_STATEMENT = "Multi-statement SQL is not allowed."
REASON_COMMENT = "SQL comments are not allowed."
REASON_NOT_READ = "Only SELECT queries are allowed."

COMMENT_MARKERS = ("--", "/*", "*/")

_ENTRY_PATTERN = re.compile(r"^\s*(" + "|".join(READ_ENTRY_POINTS) + r")\b", re.IGNORECASE)
_FIRST_WORD_PATTERN = re.compile(r"^\s*([a-z_]+)", re.IGNORECASE)
_KEYWORD_PATTERNS = tuple(
    (kw, re.compile(rf"\b{re.escape(kw)}\b", re.IGNORECASE)) for kw in FORBIDDEN_KEYWORDS
)
_LIMIT_PATTERN = re.compile(r"\blimit\b", re.IGNORECASE)


def forbidden_keyword_reason(keyword: str) -> str:
    return f"Forbidden keyword: {keyword}"


class SafetyGuard:
    """Allow-list/deny-list gate for untrusted SQL text.

    Example:
        >>> guard = SafetyGuard()
        >>> guard.validate("SELECT name FROM items").normalized_text
        'SELECT name FROM items LIMIT 200'
        >>> guard.validate("DROP TABLE items").accepted
        False
    """

    def __init__(self, row_cap: int = DEFAULT_ROW_CAP) -> None:
        """Initialize the guard.

        Args:
            row_cap: LIMIT appended to statements that have no LIMIT clause
        """
        self._row_cap = row_cap

    @property
    def row_cap(self) -> int:
        return self._row_cap

    def validate(self, candidate: Any) -> GuardVerdict:
        """Validate candidate SQL text.

        Args:
            candidate: Text proposed by the generator (anything; non-strings are rejected)

        Returns:
            GuardVerdict; an accepted verdict carries the only text that may be executed
        """
        if not isinstance(candidate, str):
            return GuardVerdict.reject(REASON_INVALID)

        sql = candidate.strip()
        if not sql:
            return GuardVerdict.reject(REASON_EMPTY)

        # A single trailing terminator is common formatting, anything else is stacking.
        if sql.endswith(";"):
            sql = sql[:-1].rstrip()
        if ";" in sql:
            return GuardVerdict.reject(REASON_MULTI_STATEMENT)

        if any(marker in sql for marker in COMMENT_MARKERS):
            return GuardVerdict.reject(REASON_COMMENT)

        if not _ENTRY_PATTERN.match(sql):
            return GuardVerdict.reject(self._entry_point_reason(sql))

        keyword = self._find_forbidden_keyword(sql)
        if keyword:
            return GuardVerdict.reject(forbidden_keyword_reason(keyword))

        if not _LIMIT_PATTERN.search(sql):
            sql = f"{sql} LIMIT {self._row_cap}"

        return GuardVerdict.accept(sql)

    def _entry_point_reason(self, sql: str) -> str:
        """Rejection text for a non-read statement, naming a deny-listed leading keyword."""
        match = _FIRST_WORD_PATTERN.match(sql)
        first_word = match.group(1).lower() if match else ""
        if first_word in FORBIDDEN_KEYWORDS:
            return f"{REASON_NOT_READ} {forbidden_keyword_reason(first_word)}"
        return REASON_NOT_READ

    def _find_forbidden_keyword(self, sql: str) -> str | None:
        for keyword, pattern in _KEYWORD_PATTERNS:
            if pattern.search(sql):
                return keyword
        return None


def validate_sql(candidate: Any, row_cap: int = DEFAULT_ROW_CAP) -> GuardVerdict:
    """Convenience function to validate candidate SQL with a fresh guard."""
    return SafetyGuard(row_cap=row_cap).validate(candidate)
