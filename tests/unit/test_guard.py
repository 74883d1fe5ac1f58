"""Tests for the SQL safety guard."""

import pytest

from sqlsentry.core.types import GuardVerdict
from sqlsentry.query.guard import (
    DEFAULT_ROW_CAP,
    FORBIDDEN_KEYWORDS,
    REASON_COMMENT,
    REASON_EMPTY,
    REASON_INVALID,
    REASON_MULTI_STATEMENT,
    REASON_NOT_READ,
    SafetyGuard,
    validate_sql,
)


@pytest.fixture
def guard() -> SafetyGuard:
    return SafetyGuard()


class TestAcceptance:
    """Read-only statements that pass the guard."""

    def test_simple_select_gets_default_cap(self, guard: SafetyGuard) -> None:
        verdict = guard.validate("SELECT name FROM items")
        assert verdict.accepted is True
        assert verdict.normalized_text == f"SELECT name FROM items LIMIT {DEFAULT_ROW_CAP}"
        assert verdict.rejection_reason is None

    def test_existing_limit_kept(self, guard: SafetyGuard) -> None:
        verdict = guard.validate("SELECT name FROM items LIMIT 5")
        assert verdict.normalized_text == "SELECT name FROM items LIMIT 5"

    def test_limit_detection_is_case_insensitive(self, guard: SafetyGuard) -> None:
        verdict = guard.validate("select name from items limit 3")
        assert verdict.normalized_text == "select name from items limit 3"

    def test_with_statement_accepted(self, guard: SafetyGuard) -> None:
        sql = "WITH t AS (SELECT item_id FROM items) SELECT * FROM t"
        verdict = guard.validate(sql)
        assert verdict.accepted is True
        assert verdict.normalized_text == f"{sql} LIMIT 200"

    def test_single_trailing_terminator_dropped(self, guard: SafetyGuard) -> None:
        verdict = guard.validate("SELECT 1 LIMIT 1;  ")
        assert verdict.accepted is True
        assert verdict.normalized_text == "SELECT 1 LIMIT 1"

    def test_surrounding_whitespace_trimmed(self, guard: SafetyGuard) -> None:
        verdict = guard.validate("\n\n   SELECT 1\n")
        assert verdict.normalized_text == "SELECT 1 LIMIT 200"

    def test_cap_appended_exactly_once(self, guard: SafetyGuard) -> None:
        verdict = guard.validate("SELECT name FROM items")
        assert verdict.normalized_text is not None
        assert verdict.normalized_text.count("LIMIT") == 1

    def test_idempotent_on_accepted_text(self, guard: SafetyGuard) -> None:
        for sql in [
            "SELECT name FROM items",
            "with x as (select 1 as a) select a from x;",
            "SELECT * FROM items ORDER BY name LIMIT 10",
        ]:
            first = guard.validate(sql)
            second = guard.validate(first.normalized_text)
            assert second.accepted is True
            assert second.normalized_text == first.normalized_text

    def test_custom_row_cap(self) -> None:
        verdict = SafetyGuard(row_cap=10).validate("SELECT 1")
        assert verdict.normalized_text == "SELECT 1 LIMIT 10"

    def test_keyword_as_substring_allowed(self, guard: SafetyGuard) -> None:
        # updated_at / created_by / dropdown contain deny-listed words but not on a boundary
        verdict = guard.validate("SELECT updated_at, created_by, dropdown FROM items")
        assert verdict.accepted is True

    def test_validate_sql_helper(self) -> None:
        assert validate_sql("SELECT 1", row_cap=7).normalized_text == "SELECT 1 LIMIT 7"


class TestRejection:
    """Rejections and their reasons."""

    @pytest.mark.parametrize("candidate", [None, 42, ["SELECT 1"], b"SELECT 1"])
    def test_non_string(self, guard: SafetyGuard, candidate: object) -> None:
        verdict = guard.validate(candidate)
        assert verdict.accepted is False
        assert verdict.rejection_reason == REASON_INVALID
        assert verdict.normalized_text is None

    @pytest.mark.parametrize("candidate", ["", "   ", "\n\t"])
    def test_empty(self, guard: SafetyGuard, candidate: str) -> None:
        assert guard.validate(candidate).rejection_reason == REASON_EMPTY

    @pytest.mark.parametrize(
        "candidate",
        [
            "SELECT 1; SELECT 2",
            "select 1 ;select 2;",
            "SELECT 1;\n\n  DELETE FROM items",
            "SELECT 1;;",
            "DROP TABLE items; SELECT 1",
        ],
    )
    def test_multi_statement(self, guard: SafetyGuard, candidate: str) -> None:
        assert guard.validate(candidate).rejection_reason == REASON_MULTI_STATEMENT

    @pytest.mark.parametrize(
        "candidate",
        ["SELECT 1 -- why", "SELECT /* hi */ 1", "SELECT 1 */", "-- note\nSELECT 1"],
    )
    def test_comments(self, guard: SafetyGuard, candidate: str) -> None:
        assert guard.validate(candidate).rejection_reason == REASON_COMMENT

    @pytest.mark.parametrize(
        "keyword", ["insert", "update", "delete", "drop", "alter", "create", "attach", "pragma"]
    )
    def test_leading_mutating_keyword_is_named(self, guard: SafetyGuard, keyword: str) -> None:
        for prefix in ["", "   ", "\n\n\t", " \n "]:
            for word in [keyword, keyword.upper(), keyword.capitalize()]:
                verdict = guard.validate(f"{prefix}{word} something")
                assert verdict.accepted is False
                assert verdict.rejection_reason is not None
                assert verdict.rejection_reason.startswith(REASON_NOT_READ)
                assert keyword in verdict.rejection_reason

    def test_non_read_entry_without_keyword(self, guard: SafetyGuard) -> None:
        verdict = guard.validate("EXPLAIN SELECT 1")
        assert verdict.rejection_reason == REASON_NOT_READ

    def test_select_prefix_of_longer_word_rejected(self, guard: SafetyGuard) -> None:
        assert guard.validate("SELECTED 1").accepted is False

    @pytest.mark.parametrize("keyword", FORBIDDEN_KEYWORDS)
    def test_forbidden_keyword_anywhere(self, guard: SafetyGuard, keyword: str) -> None:
        verdict = guard.validate(f"SELECT * FROM items WHERE name = '{keyword.upper()}'")
        assert verdict.accepted is False
        assert verdict.rejection_reason == f"Forbidden keyword: {keyword}"

    def test_forbidden_function(self, guard: SafetyGuard) -> None:
        verdict = guard.validate("SELECT replace(name, 'a', 'b') FROM items")
        assert verdict.rejection_reason == "Forbidden keyword: replace"

    def test_multi_statement_checked_before_comment(self, guard: SafetyGuard) -> None:
        assert guard.validate("SELECT 1 -- x;").rejection_reason == REASON_COMMENT
        assert guard.validate("SELECT 1; -- x").rejection_reason == REASON_MULTI_STATEMENT


class TestGuardVerdict:
    """Verdict shape invariants."""

    def test_accept_shape(self) -> None:
        verdict = GuardVerdict.accept("SELECT 1 LIMIT 200")
        assert verdict.accepted and verdict.rejection_reason is None

    def test_reject_shape(self) -> None:
        verdict = GuardVerdict.reject("nope")
        assert not verdict.accepted and verdict.normalized_text is None

    def test_inconsistent_shape_refused(self) -> None:
        with pytest.raises(ValueError):
            GuardVerdict(accepted=True)
        with pytest.raises(ValueError):
            GuardVerdict(accepted=False, normalized_text="SELECT 1", rejection_reason="x")
