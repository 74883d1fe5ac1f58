"""Tests for the repair loop."""

from __future__ import annotations

import asyncio
import logging
import re

import pytest

from sqlsentry.core.types import (
    AttemptRecord,
    CandidateQuery,
    Disposition,
    ExecutionOutcome,
    GuardVerdict,
    Strategy,
)
from sqlsentry.exceptions import ExhaustionError, GenerationError, GuardRejectionError
from sqlsentry.pipeline.orchestrator import RepairOrchestrator, next_state
from sqlsentry.pipeline.session import RequestSession, State
from sqlsentry.query.context import SchemaContextBuilder
from sqlsentry.query.executor import QueryExecutor
from sqlsentry.query.guard import REASON_MULTI_STATEMENT


@pytest.fixture
def orchestrator(provider, executor: QueryExecutor) -> RepairOrchestrator:
    return RepairOrchestrator(
        provider,
        executor,
        SchemaContextBuilder("CREATE TABLE items (item_id INTEGER);"),
        generation_timeout_s=2.0,
    )


def _run(orchestrator: RepairOrchestrator, question: str = "q", strategy=Strategy.FEW):
    return asyncio.run(orchestrator.run(question, strategy))


class TestScenarios:
    def test_first_candidate_succeeds(self, orchestrator, provider, vitamin_c_sql: str) -> None:
        provider.script(vitamin_c_sql)
        session = _run(orchestrator, "Top 5 supplements by vitamin C per 100g")

        assert session.disposition == Disposition.SUCCEEDED
        assert session.state == State.SUCCEEDED
        assert session.attempt_count == 1
        assert session.sql == vitamin_c_sql
        assert session.outcome is not None
        assert session.outcome.row_count == 5
        assert session.error() is None

    def test_engine_error_repaired_on_second_attempt(
        self, orchestrator, provider, vitamin_c_sql: str
    ) -> None:
        broken = "SELECT i n.name FROM items i n LIMIT 5"
        provider.script(broken, vitamin_c_sql)
        session = _run(orchestrator)

        assert session.disposition == Disposition.SUCCEEDED
        assert session.attempt_count == 2
        first = session.attempts[0]
        assert first.normalization_edits == ()
        assert first.outcome is not None and not first.outcome.succeeded
        # The second conversation carries the failed SQL and the engine error verbatim
        repair = provider.sql_calls[1][-1].content
        assert broken in repair
        assert first.outcome.error_message in repair
        assert provider.sql_calls[1][-2].content == "q"

    def test_guard_rejection_is_terminal(self, orchestrator, provider) -> None:
        provider.script("DROP TABLE items; SELECT 1", "SELECT 1")
        session = _run(orchestrator)

        assert session.disposition == Disposition.GUARD_REJECTED
        assert session.attempt_count == 1
        assert session.guard_reason == REASON_MULTI_STATEMENT
        assert session.attempts[0].outcome is None
        assert len(provider.sql_calls) == 1
        error = session.error()
        assert isinstance(error, GuardRejectionError)
        assert error.reason == REASON_MULTI_STATEMENT

    def test_guard_rejection_on_later_attempt_stops_there(
        self, orchestrator, provider
    ) -> None:
        provider.script("SELECT nope FROM items", "DELETE FROM items", "SELECT 1")
        session = _run(orchestrator)

        assert session.disposition == Disposition.GUARD_REJECTED
        assert session.attempt_count == 2
        assert "delete" in (session.guard_reason or "")
        assert len(provider.sql_calls) == 2

    def test_exhaustion_reports_last_sql_and_error(self, orchestrator, provider) -> None:
        provider.script(
            "SELECT a FROM items",
            "SELECT b FROM items",
            "SELECT c FROM items",
        )
        session = _run(orchestrator)

        assert session.disposition == Disposition.EXECUTION_EXHAUSTED
        assert session.attempt_count == 3
        assert session.sql == "SELECT c FROM items LIMIT 200"
        assert session.last_error == "no such column: c"
        error = session.error()
        assert isinstance(error, ExhaustionError)
        assert error.exec_error == "no such column: c"
        assert error.attempts == 3

    def test_zero_rows_is_success_without_retry(self, orchestrator, provider) -> None:
        provider.script("SELECT name FROM items WHERE item_id = -1")
        session = _run(orchestrator)

        assert session.disposition == Disposition.SUCCEEDED
        assert session.attempt_count == 1
        assert session.outcome is not None
        assert session.outcome.rows == []
        assert len(provider.sql_calls) == 1

    def test_normalizer_runs_before_guard(self, orchestrator, provider) -> None:
        provider.script(
            "SELECT in.amount_per_100g FROM item_nutrients in WHERE in.item_id = 4 -- vit C"
        )
        session = _run(orchestrator)

        assert session.disposition == Disposition.SUCCEEDED
        attempt = session.attempts[0]
        assert attempt.normalization_edits == ("strip_line_comments", "item_nutrients_in_alias")
        assert session.sql == (
            "SELECT inut.amount_per_100g FROM item_nutrients inut WHERE inut.item_id = 4 LIMIT 200"
        )


class TestGenerationFailures:
    def test_generation_error_consumes_an_attempt(
        self, orchestrator, provider, vitamin_c_sql: str
    ) -> None:
        provider.script(GenerationError("Malformed model response: Field required"), vitamin_c_sql)
        session = _run(orchestrator)

        assert session.disposition == Disposition.SUCCEEDED
        assert session.attempt_count == 2
        failed = session.attempts[0]
        assert failed.candidate is None
        assert failed.generation_error == "Malformed model response: Field required"
        assert "Malformed model response" in provider.sql_calls[1][-1].content

    def test_generation_timeout(self, provider, executor: QueryExecutor) -> None:
        provider.delay_s = 0.5
        orchestrator = RepairOrchestrator(
            provider,
            executor,
            SchemaContextBuilder(""),
            max_attempts=1,
            generation_timeout_s=0.05,
        )
        provider.script("SELECT 1")
        session = _run(orchestrator)

        assert session.disposition == Disposition.EXECUTION_EXHAUSTED
        assert session.attempt_count == 1
        assert session.last_error == "Generation timed out after 0.05s"

    def test_unexpected_provider_exception_is_retried(
        self, orchestrator, provider, vitamin_c_sql: str
    ) -> None:
        provider.script(ValueError("bad provider state"), vitamin_c_sql)
        session = _run(orchestrator)

        assert session.disposition == Disposition.SUCCEEDED
        assert session.attempt_count == 2
        assert session.attempts[0].generation_error == "ValueError: bad provider state"
        assert "ValueError: bad provider state" in provider.sql_calls[1][-1].content

    def test_each_generation_logged_with_elapsed_ms(
        self, orchestrator, provider, caplog: pytest.LogCaptureFixture
    ) -> None:
        provider.script("SELECT a FROM items", "SELECT 1")
        with caplog.at_level(logging.INFO, logger="sqlsentry.pipeline.orchestrator"):
            _run(orchestrator)

        timings = [r.getMessage() for r in caplog.records if "sql_gen" in r.getMessage()]
        assert len(timings) == 2
        assert re.fullmatch(r"\[ask\] sql_gen attempt=1 \(\d+ms\)", timings[0])
        assert timings[1].startswith("[ask] sql_gen attempt=2 (")

    def test_all_generations_fail(self, orchestrator, provider) -> None:
        provider.script(
            GenerationError("Empty model response."),
            GenerationError("Empty model response."),
            GenerationError("Empty model response."),
        )
        session = _run(orchestrator)

        assert session.disposition == Disposition.EXECUTION_EXHAUSTED
        assert session.attempt_count == 3
        assert session.sql == ""
        assert session.assumptions == []


class TestBounds:
    def test_max_attempts_setting(self, provider, executor: QueryExecutor) -> None:
        orchestrator = RepairOrchestrator(
            provider, executor, SchemaContextBuilder(""), max_attempts=2
        )
        provider.script("SELECT a FROM items", "SELECT b FROM items", "SELECT 1")
        session = _run(orchestrator)
        assert session.attempt_count == 2
        assert session.disposition == Disposition.EXECUTION_EXHAUSTED

    @pytest.mark.parametrize("max_attempts", [0, 4])
    def test_ceiling_enforced(self, provider, executor: QueryExecutor, max_attempts: int) -> None:
        with pytest.raises(ValueError):
            RepairOrchestrator(
                provider, executor, SchemaContextBuilder(""), max_attempts=max_attempts
            )

    def test_strategy_constant_across_attempts(self, orchestrator, provider) -> None:
        provider.script("SELECT a FROM items", "SELECT 1")
        session = _run(orchestrator, strategy=Strategy.ZERO)
        assert session.strategy == Strategy.ZERO
        # zero-shot: system + question (+ repair)
        assert len(provider.sql_calls[0]) == 2
        assert len(provider.sql_calls[1]) == 3


class TestTransitions:
    def _record(self, n: int, **kwargs) -> AttemptRecord:
        return AttemptRecord(attempt_number=n, **kwargs)

    def test_rejected_verdict(self) -> None:
        record = self._record(1, verdict=GuardVerdict.reject("x"))
        assert next_state(record, 3) == State.GUARD_REJECTED

    def test_success(self) -> None:
        record = self._record(
            1,
            verdict=GuardVerdict.accept("SELECT 1"),
            outcome=ExecutionOutcome.success(["a"], []),
        )
        assert next_state(record, 3) == State.SUCCEEDED

    def test_failure_below_and_at_ceiling(self) -> None:
        kwargs = {
            "verdict": GuardVerdict.accept("SELECT x"),
            "outcome": ExecutionOutcome.failure("no such column: x"),
        }
        assert next_state(self._record(2, **kwargs), 3) == State.RETRYING
        assert next_state(self._record(3, **kwargs), 3) == State.EXECUTION_EXHAUSTED

    def test_generation_failure(self) -> None:
        assert next_state(self._record(1, generation_error="boom"), 3) == State.RETRYING


class TestRequestSession:
    def test_attempt_numbers_must_be_sequential(self) -> None:
        session = RequestSession(question="q", strategy=Strategy.FEW)
        with pytest.raises(ValueError):
            session.record(AttemptRecord(attempt_number=2))

    def test_ceiling(self) -> None:
        session = RequestSession(question="q", strategy=Strategy.FEW, max_attempts=1)
        session.record(AttemptRecord(attempt_number=1, generation_error="x"))
        with pytest.raises(ValueError):
            session.record(AttemptRecord(attempt_number=2, generation_error="x"))

    def test_finished_session_is_closed(self) -> None:
        session = RequestSession(question="q", strategy=Strategy.FEW)
        session.finish(Disposition.GUARD_REJECTED)
        assert session.state == State.GUARD_REJECTED
        with pytest.raises(RuntimeError):
            session.enter(State.GENERATING)

    def test_assumptions_from_latest_candidate(self) -> None:
        session = RequestSession(question="q", strategy=Strategy.FEW)
        session.record(
            AttemptRecord(
                attempt_number=1,
                candidate=CandidateQuery(text="SELECT a", assumptions=("first",)),
                normalized_text="SELECT a",
            )
        )
        session.record(AttemptRecord(attempt_number=2, generation_error="x"))
        assert session.assumptions == ["first"]
        assert session.sql == "SELECT a"
        assert session.last_error == "x"
