"""Best-effort repair of common generator mistakes, applied before the guard.

Normalization is a small, named table of textual rewrites. It never replaces the guard:
text no rule matches passes through unchanged and is judged as-is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class RewriteRule:
    """A named regex substitution."""

    name: str
    pattern: re.Pattern[str]
    replacement: str

    def apply(self, sql: str) -> str:
        return self.pattern.sub(self.replacement, sql)


@dataclass(frozen=True)
class KeywordAliasRule:
    """Rename a table alias that collides with a SQL keyword.

    Rewrites both the alias definition (`item_nutrients in`, `item_nutrients AS in`) and
    every qualified reference (`in.amount_per_100g`) to the replacement alias.
    """

    name: str
    table: str
    alias: str
    replacement: str

    def apply(self, sql: str) -> str:
        definition = re.compile(
            rf"\b{re.escape(self.table)}\b\s+(as\s+)?{re.escape(self.alias)}\b", re.IGNORECASE
        )
        # Qualified references only, matched case-sensitively.
        reference = re.compile(rf"\b{re.escape(self.alias)}\.")
        sql = definition.sub(f"{self.table} {self.replacement}", sql)
        return reference.sub(f"{self.replacement}.", sql)


DEFAULT_RULES: tuple[RewriteRule | KeywordAliasRule, ...] = (
    RewriteRule(
        name="strip_line_comments",
        pattern=re.compile(r"--.*$", re.MULTILINE),
        replacement="",
    ),
    RewriteRule(
        name="strip_block_comments",
        pattern=re.compile(r"/\*[\s\S]*?\*/"),
        replacement="",
    ),
    KeywordAliasRule(
        name="item_nutrients_in_alias",
        table="item_nutrients",
        alias="in",
        replacement="inut",
    ),
)


class TextNormalizer:
    """Applies the rewrite table in order and reports which rules changed the text."""

    def __init__(self, rules: tuple[RewriteRule | KeywordAliasRule, ...] = DEFAULT_RULES) -> None:
        self._rules = rules

    @property
    def rules(self) -> tuple[RewriteRule | KeywordAliasRule, ...]:
        return self._rules

    def normalize(self, raw: object) -> str:
        """Return the rewritten text (non-strings become their string form, None becomes '')."""
        text, _ = self.normalize_with_edits(raw)
        return text

    def normalize_with_edits(self, raw: object) -> tuple[str, tuple[str, ...]]:
        """Return the rewritten text and the names of the rules that changed it."""
        sql = "" if raw is None else str(raw)
        edits: list[str] = []
        for rule in self._rules:
            rewritten = rule.apply(sql)
            if rewritten != sql:
                edits.append(rule.name)
                sql = rewritten
        return sql.strip(), tuple(edits)
