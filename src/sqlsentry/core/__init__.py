"""Core components for SQLSentry."""

from sqlsentry.core.connection import DatabaseConnection
from sqlsentry.core.types import (
    AttemptRecord,
    CandidateQuery,
    Disposition,
    ExecutionOutcome,
    GuardVerdict,
    ResultPreview,
    Strategy,
)

__all__ = [
    "DatabaseConnection",
    "Strategy",
    "Disposition",
    "CandidateQuery",
    "GuardVerdict",
    "ExecutionOutcome",
    "AttemptRecord",
    "ResultPreview",
]
