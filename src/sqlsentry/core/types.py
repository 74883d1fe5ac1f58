"""Core types for SQLSentry.

All types are JSON-serializable so the audit trail can be returned to callers as-is.
Pipeline records (candidates, verdicts, outcomes, attempts) are frozen: a later attempt
supersedes an earlier one, it never mutates it.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Strategy(StrEnum):
    """How many worked examples the generator is shown."""

    ZERO = "zero"  # Schema and instructions only
    FEW = "few"  # Schema, instructions and worked examples

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid strategy values."""
        return [s.value for s in cls]


class Disposition(StrEnum):
    """Terminal outcome of one request session."""

    SUCCEEDED = "succeeded"
    GUARD_REJECTED = "guard_rejected"
    EXECUTION_EXHAUSTED = "execution_exhausted"


class ChatMessage(BaseModel):
    """One message of the structured conversation sent to the generator."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class SQLGeneration(BaseModel):
    """Schema-validated body of a SQL generation response."""

    sql: str
    assumptions: list[str] = Field(default_factory=list)


class Answer(BaseModel):
    """Schema-validated body of an answer synthesis response."""

    answer: str
    caveats: list[str] = Field(default_factory=list)


class CandidateQuery(BaseModel):
    """A query text proposed by the generator for one attempt."""

    model_config = ConfigDict(frozen=True)

    text: str
    assumptions: tuple[str, ...] = ()


class GuardVerdict(BaseModel):
    """Output of the safety guard.

    `normalized_text` is present iff the verdict accepts, `rejection_reason` iff it rejects.
    Only `normalized_text` of an accepted verdict may ever be executed.
    """

    model_config = ConfigDict(frozen=True)

    accepted: bool
    normalized_text: str | None = None
    rejection_reason: str | None = None

    @model_validator(mode="after")
    def _check_shape(self) -> GuardVerdict:
        if self.accepted and (self.normalized_text is None or self.rejection_reason is not None):
            raise ValueError("An accepted verdict carries normalized_text and no rejection_reason")
        if not self.accepted and (
            self.rejection_reason is None or self.normalized_text is not None
        ):
            raise ValueError("A rejected verdict carries rejection_reason and no normalized_text")
        return self

    @classmethod
    def accept(cls, text: str) -> GuardVerdict:
        return cls(accepted=True, normalized_text=text)

    @classmethod
    def reject(cls, reason: str) -> GuardVerdict:
        return cls(accepted=False, rejection_reason=reason)


class ExecutionOutcome(BaseModel):
    """Result of running a validated statement: columns and rows, or an engine error.

    Rows keep the engine's column order and result order.
    """

    model_config = ConfigDict(frozen=True)

    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    error_message: str | None = None
    execution_time_ms: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.error_message is None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @classmethod
    def success(
        cls,
        columns: list[str],
        rows: list[dict[str, Any]],
        execution_time_ms: float | None = None,
    ) -> ExecutionOutcome:
        return cls(columns=columns, rows=rows, execution_time_ms=execution_time_ms)

    @classmethod
    def failure(
        cls, error_message: str, execution_time_ms: float | None = None
    ) -> ExecutionOutcome:
        return cls(error_message=error_message, execution_time_ms=execution_time_ms)


class AttemptRecord(BaseModel):
    """One generate -> normalize -> guard -> execute cycle.

    When generation fails, `candidate`, `verdict` and `outcome` are absent and
    `generation_error` holds the failure message. When the guard rejects, `outcome` is absent.
    """

    model_config = ConfigDict(frozen=True)

    attempt_number: int = Field(..., ge=1)
    candidate: CandidateQuery | None = None
    normalized_text: str | None = None
    normalization_edits: tuple[str, ...] = ()
    verdict: GuardVerdict | None = None
    outcome: ExecutionOutcome | None = None
    generation_error: str | None = None

    @property
    def error(self) -> str | None:
        """Failure text fed back to the generator on the next attempt."""
        if self.generation_error is not None:
            return self.generation_error
        if self.outcome is not None:
            return self.outcome.error_message
        return None

    @property
    def sql(self) -> str | None:
        """Text the engine saw, else the normalized candidate."""
        if self.verdict is not None and self.verdict.accepted:
            return self.verdict.normalized_text
        return self.normalized_text

    def to_trail(self) -> dict[str, Any]:
        """Compact audit-trail entry (rows are omitted)."""
        entry: dict[str, Any] = {
            "attempt": self.attempt_number,
            "generated_sql": self.candidate.text if self.candidate else None,
            "normalized_sql": self.normalized_text,
            "normalization_edits": list(self.normalization_edits),
        }
        if self.verdict is not None:
            entry["guard"] = {
                "accepted": self.verdict.accepted,
                "sql": self.verdict.normalized_text,
                "reason": self.verdict.rejection_reason,
            }
        if self.outcome is not None:
            entry["execution"] = {
                "ok": self.outcome.succeeded,
                "row_count": self.outcome.row_count if self.outcome.succeeded else None,
                "error": self.outcome.error_message,
            }
        if self.generation_error is not None:
            entry["generation_error"] = self.generation_error
        return entry


class ResultPreview(BaseModel):
    """Row sequence capped for transport, with the authoritative row count."""

    columns: list[str]
    row_count: int
    rows: list[dict[str, Any]]

    @property
    def truncated(self) -> bool:
        return len(self.rows) < self.row_count


class AskRequest(BaseModel):
    """Inbound question as received from a transport."""

    question: str | None = None
    strategy: str | None = Strategy.FEW.value
