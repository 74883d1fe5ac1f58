"""SQLSentry - guarded natural-language queries over a read-only SQLite database.

A question goes through a bounded generate -> normalize -> guard -> execute loop.
Generated SQL never reaches the database without passing the safety guard, and
engine errors are fed back to the generator for at most three attempts.

Example:
    import asyncio

    from sqlsentry import SentrySettings, SQLSentry

    sentry = SQLSentry(SentrySettings(database="./db/aidb.sqlite"))

    # Guard and run SQL you wrote yourself
    verdict, outcome = sentry.run_sql("SELECT name FROM items")

    # Ask a question (needs OPENAI_API_KEY)
    result = asyncio.run(sentry.ask("Top 5 supplements by vitamin C per 100g."))
    print(result.to_response())
"""

from sqlsentry.config import MAX_ATTEMPTS, SentrySettings
from sqlsentry.core.engine import SQLSentry
from sqlsentry.core.types import (
    Answer,
    AttemptRecord,
    CandidateQuery,
    Disposition,
    ExecutionOutcome,
    GuardVerdict,
    ResultPreview,
    Strategy,
)
from sqlsentry.exceptions import (
    ConfigurationError,
    ConnectionError,
    DeadlineExceededError,
    ExecutionError,
    ExhaustionError,
    GenerationError,
    GuardRejectionError,
    InputError,
    SQLSentryError,
    SynthesisError,
)
from sqlsentry.pipeline import AskResult, RepairOrchestrator, RequestSession
from sqlsentry.query import QueryExecutor, ResultShaper, SafetyGuard, TextNormalizer

__version__ = "0.1.0"

__all__ = [
    # Main classes
    "SQLSentry",
    "SentrySettings",
    "MAX_ATTEMPTS",
    # Pipeline
    "SafetyGuard",
    "TextNormalizer",
    "QueryExecutor",
    "RepairOrchestrator",
    "ResultShaper",
    "RequestSession",
    "AskResult",
    # Types
    "Strategy",
    "Disposition",
    "CandidateQuery",
    "GuardVerdict",
    "ExecutionOutcome",
    "AttemptRecord",
    "ResultPreview",
    "Answer",
    # Exceptions
    "SQLSentryError",
    "ConfigurationError",
    "ConnectionError",
    "InputError",
    "GuardRejectionError",
    "GenerationError",
    "ExecutionError",
    "ExhaustionError",
    "SynthesisError",
    "DeadlineExceededError",
]
