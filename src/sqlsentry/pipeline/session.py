"""Per-request session state and response rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from sqlsentry.config import MAX_ATTEMPTS
from sqlsentry.core.types import (
    Answer,
    AttemptRecord,
    Disposition,
    ExecutionOutcome,
    ResultPreview,
    Strategy,
)
from sqlsentry.exceptions import ExhaustionError, GuardRejectionError


class State(StrEnum):
    """Repair loop states."""

    GENERATING = "generating"
    NORMALIZING = "normalizing"
    GUARDING = "guarding"
    EXECUTING = "executing"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    GUARD_REJECTED = "guard_rejected"
    EXECUTION_EXHAUSTED = "execution_exhausted"


TERMINAL_STATES: dict[State, Disposition] = {
    State.SUCCEEDED: Disposition.SUCCEEDED,
    State.GUARD_REJECTED: Disposition.GUARD_REJECTED,
    State.EXECUTION_EXHAUSTED: Disposition.EXECUTION_EXHAUSTED,
}


@dataclass
class RequestSession:
    """Everything one inbound question accumulates. Never shared between requests."""

    question: str
    strategy: Strategy
    max_attempts: int = MAX_ATTEMPTS
    attempts: list[AttemptRecord] = field(default_factory=list)
    state: State = State.GENERATING
    disposition: Disposition | None = None

    def enter(self, state: State) -> None:
        if self.disposition is not None:
            raise RuntimeError(f"Session already finished as {self.disposition}")
        self.state = state

    def record(self, attempt: AttemptRecord) -> None:
        """Append the next attempt; numbering is 1-based, sequential and capped."""
        expected = len(self.attempts) + 1
        if attempt.attempt_number != expected:
            raise ValueError(f"Expected attempt {expected}, got {attempt.attempt_number}")
        if attempt.attempt_number > self.max_attempts:
            raise ValueError(f"Attempt ceiling is {self.max_attempts}")
        self.attempts.append(attempt)

    def finish(self, disposition: Disposition) -> None:
        self.state = next(s for s, d in TERMINAL_STATES.items() if d == disposition)
        self.disposition = disposition

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def last_attempt(self) -> AttemptRecord | None:
        return self.attempts[-1] if self.attempts else None

    @property
    def sql(self) -> str:
        """Most recent query text: executed text on success, last candidate otherwise."""
        for attempt in reversed(self.attempts):
            if attempt.sql is not None:
                return attempt.sql
        return ""

    @property
    def assumptions(self) -> list[str]:
        for attempt in reversed(self.attempts):
            if attempt.candidate is not None:
                return list(attempt.candidate.assumptions)
        return []

    @property
    def outcome(self) -> ExecutionOutcome | None:
        """The successful outcome, if the session succeeded."""
        if self.disposition != Disposition.SUCCEEDED or self.last_attempt is None:
            return None
        return self.last_attempt.outcome

    @property
    def guard_reason(self) -> str | None:
        last = self.last_attempt
        if last is None or last.verdict is None:
            return None
        return last.verdict.rejection_reason

    @property
    def last_error(self) -> str | None:
        """Error of the final attempt only, never an aggregate."""
        last = self.last_attempt
        return last.error if last else None

    def error(self) -> GuardRejectionError | ExhaustionError | None:
        """Exception matching a failed disposition, for outer surfaces."""
        if self.disposition == Disposition.GUARD_REJECTED:
            return GuardRejectionError(self.guard_reason or "", self.sql, self.attempt_count)
        if self.disposition == Disposition.EXECUTION_EXHAUSTED:
            return ExhaustionError(self.sql, self.last_error or "", self.attempt_count)
        return None

    def trail(self) -> list[dict[str, Any]]:
        return [attempt.to_trail() for attempt in self.attempts]


@dataclass
class AskResult:
    """A finished session plus what the facade derived from it."""

    session: RequestSession
    preview: ResultPreview | None = None
    answer: Answer | None = None
    answer_error: str | None = None

    @property
    def disposition(self) -> Disposition | None:
        return self.session.disposition

    @property
    def ok(self) -> bool:
        return self.disposition == Disposition.SUCCEEDED and self.answer_error is None

    @property
    def status_code(self) -> int:
        if self.disposition == Disposition.GUARD_REJECTED:
            return 400
        if self.disposition == Disposition.EXECUTION_EXHAUSTED or self.answer_error is not None:
            return 500
        return 200

    def to_response(self, include_trail: bool = False) -> dict[str, Any]:
        """Render the transport response for this result."""
        session = self.session
        response: dict[str, Any]

        if session.disposition == Disposition.GUARD_REJECTED:
            response = {
                "error": "SQL rejected by guard.",
                "guard_reason": session.guard_reason,
                "sql": session.sql,
                "assumptions": session.assumptions,
                "strategy": session.strategy.value,
                "attempts": session.attempt_count,
            }
        elif session.disposition == Disposition.EXECUTION_EXHAUSTED:
            response = {
                "error": "Failed to generate executable SQL.",
                "sql": session.sql,
                "assumptions": session.assumptions,
                "strategy": session.strategy.value,
                "attempts": session.attempt_count,
                "exec_error": session.last_error,
            }
        else:
            response = {}
            if self.answer_error is not None:
                response["error"] = "Failed to generate natural language answer."
            response.update(
                {
                    "strategy": session.strategy.value,
                    "attempts": session.attempt_count,
                    "sql": session.sql,
                    "assumptions": session.assumptions,
                }
            )
            if self.preview is not None:
                response.update(
                    {
                        "columns": self.preview.columns,
                        "row_count": self.preview.row_count,
                        "rows": self.preview.rows,
                    }
                )
            if self.answer is not None:
                response["answer"] = self.answer.answer
                response["caveats"] = self.answer.caveats
            if self.answer_error is not None:
                response["answer_error"] = self.answer_error

        if include_trail:
            response["trail"] = session.trail()
        return response
