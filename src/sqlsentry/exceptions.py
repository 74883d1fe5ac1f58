"""Custom exceptions for SQLSentry.

All exceptions carry an agent-readable shape:
- A message that says what went wrong
- A context dict with the data needed to act on it (the rejected SQL, the engine error, ...)
"""

from __future__ import annotations

from typing import Any


class SQLSentryError(Exception):
    """Base exception for all SQLSentry errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict for agent consumption."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(SQLSentryError):
    """Settings are missing or invalid (e.g. no API key)."""

    pass


class ConnectionError(SQLSentryError):
    """The embedded database could not be opened."""

    pass


class InputError(SQLSentryError):
    """The inbound request is unusable (empty question, unknown strategy)."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class GuardRejectionError(SQLSentryError):
    """A candidate query was rejected by the safety guard. Never retried."""

    def __init__(self, reason: str, sql: str, attempts: int | None = None) -> None:
        context: dict[str, Any] = {"guard_reason": reason, "sql": sql}
        if attempts is not None:
            context["attempts"] = attempts
        super().__init__("SQL rejected by guard.", context)
        self.reason = reason
        self.sql = sql
        self.attempts = attempts


class GenerationError(SQLSentryError):
    """The generation capability failed (timeout, transport, malformed or empty response)."""

    pass


class ExecutionError(SQLSentryError):
    """The database engine reported an error while running a statement."""

    def __init__(self, engine_message: str, sql: str) -> None:
        super().__init__(f"Query execution failed: {engine_message}", {"sql": sql})
        self.engine_message = engine_message
        self.sql = sql


class ExhaustionError(SQLSentryError):
    """The repair loop used every attempt without producing an executable query."""

    def __init__(self, sql: str, exec_error: str, attempts: int) -> None:
        super().__init__(
            "Failed to generate executable SQL.",
            {"sql": sql, "exec_error": exec_error, "attempts": attempts},
        )
        self.sql = sql
        self.exec_error = exec_error
        self.attempts = attempts


class SynthesisError(SQLSentryError):
    """The natural-language answer step failed after a successful execution."""

    pass


class DeadlineExceededError(SQLSentryError):
    """The overall per-request deadline elapsed before the pipeline finished."""

    def __init__(self, deadline_s: float) -> None:
        super().__init__(
            f"Request exceeded its {deadline_s:g}s deadline.",
            {"deadline_s": deadline_s},
        )
        self.deadline_s = deadline_s
