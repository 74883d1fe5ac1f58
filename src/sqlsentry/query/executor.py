"""Executes guard-approved SQL against the embedded database.

Engine errors are expected and recoverable: they come back as an ExecutionOutcome
carrying the engine's message, not as exceptions.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from sqlsentry.core.connection import DatabaseConnection
from sqlsentry.core.types import ExecutionOutcome

logger = logging.getLogger(__name__)

# SQLite VM instructions between progress-handler callbacks.
PROGRESS_STEPS = 10_000

# How often a queued call re-checks its cancel token while waiting for the handle.
LOCK_POLL_S = 0.05

CANCELLED_BEFORE_START = "cancelled before execution (request ended)"
INTERRUPTED_BY_CANCEL = "interrupted (request cancelled)"


class QueryExecutor:
    """Runs statements on the shared handle, one at a time.

    The handle is passed in by the owner; access is serialized through a lock held for
    the whole statement, so concurrent requests queue here rather than sharing the
    SQLite connection.

    Cancellation belongs to a single call: each `execute` may carry its own
    `threading.Event`. Setting it stops that call only, whether it is still queued for
    the handle or already running. Other callers' statements are never touched.
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        statement_timeout_s: float | None = 10.0,
    ) -> None:
        """Initialize the executor.

        Args:
            connection: Read-only database handle owned by the caller
            statement_timeout_s: Interrupt statements running longer than this (None = no limit)
        """
        self._connection = connection
        self._statement_timeout_s = statement_timeout_s
        self._lock = threading.Lock()

    def execute(self, sql: str, cancel: threading.Event | None = None) -> ExecutionOutcome:
        """Run one validated statement.

        Args:
            sql: Text from an accepted GuardVerdict
            cancel: Token owned by the calling request; once set, the call gives up its
                place in the queue or aborts its own running statement

        Returns:
            ExecutionOutcome with columns and rows (engine order, nulls kept) or the engine error
        """
        if not self._acquire(cancel):
            return ExecutionOutcome.failure(CANCELLED_BEFORE_START)
        try:
            if cancel is not None and cancel.is_set():
                return ExecutionOutcome.failure(CANCELLED_BEFORE_START)
            return self._run(sql, cancel)
        finally:
            self._lock.release()

    async def aexecute(self, sql: str) -> ExecutionOutcome:
        """Run `execute` on a worker thread so the event loop stays free.

        Cancelling the awaiting task cancels this statement (queued or running) and
        nothing else.
        """
        cancel = threading.Event()
        try:
            return await asyncio.to_thread(self.execute, sql, cancel)
        except asyncio.CancelledError:
            cancel.set()
            logger.info("Cancelled statement for an ended request")
            raise

    def _acquire(self, cancel: threading.Event | None) -> bool:
        if cancel is None:
            self._lock.acquire()
            return True
        while not self._lock.acquire(timeout=LOCK_POLL_S):
            if cancel.is_set():
                return False
        return True

    def _run(self, sql: str, cancel: threading.Event | None) -> ExecutionOutcome:
        start_time = time.perf_counter()
        try:
            with self._connection.engine.connect() as conn:
                raw = conn.connection.driver_connection
                self._install_progress_handler(raw, start_time, cancel)
                try:
                    result = conn.exec_driver_sql(sql)
                    if result.returns_rows:
                        columns = list(result.keys())
                        rows = [dict(zip(columns, row)) for row in result.fetchall()]
                    else:
                        columns, rows = [], []
                finally:
                    raw.set_progress_handler(None, 0)
        except DBAPIError as e:
            elapsed = (time.perf_counter() - start_time) * 1000
            return ExecutionOutcome.failure(self._engine_message(e, cancel), elapsed)
        except SQLAlchemyError as e:
            elapsed = (time.perf_counter() - start_time) * 1000
            return ExecutionOutcome.failure(str(e), elapsed)

        elapsed = (time.perf_counter() - start_time) * 1000
        logger.debug(f"Executed in {elapsed:.1f}ms rows={len(rows)}")
        return ExecutionOutcome.success(columns, rows, elapsed)

    def _install_progress_handler(
        self, raw: Any, start_time: float, cancel: threading.Event | None
    ) -> None:
        if self._statement_timeout_s is None and cancel is None:
            return
        deadline = (
            None if self._statement_timeout_s is None else start_time + self._statement_timeout_s
        )

        def _should_abort() -> int:
            # Non-zero aborts the statement with "interrupted".
            if cancel is not None and cancel.is_set():
                return 1
            return 1 if deadline is not None and time.perf_counter() > deadline else 0

        raw.set_progress_handler(_should_abort, PROGRESS_STEPS)

    def _engine_message(self, error: DBAPIError, cancel: threading.Event | None) -> str:
        message = str(error.orig) if error.orig is not None else str(error)
        if message != "interrupted":
            return message
        if cancel is not None and cancel.is_set():
            return INTERRUPTED_BY_CANCEL
        if self._statement_timeout_s is not None:
            return f"interrupted (statement exceeded {self._statement_timeout_s:g}s)"
        return message
