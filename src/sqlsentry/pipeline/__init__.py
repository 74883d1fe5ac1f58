"""Repair loop and per-request session state."""

from sqlsentry.pipeline.orchestrator import RepairOrchestrator, next_state
from sqlsentry.pipeline.session import AskResult, RequestSession, State

__all__ = [
    "RepairOrchestrator",
    "next_state",
    "RequestSession",
    "AskResult",
    "State",
]
