"""Bounded generate -> normalize -> guard -> execute repair loop.

A guard rejection ends the session immediately and is never fed back to the generator.
Engine errors and generation failures are fed back on the next attempt until the
attempt ceiling is reached.
"""

from __future__ import annotations

import asyncio
import logging
import time

from sqlsentry.config import MAX_ATTEMPTS
from sqlsentry.core.types import AttemptRecord, CandidateQuery, ChatMessage, Strategy
from sqlsentry.exceptions import GenerationError
from sqlsentry.generation.provider import GenerationProvider
from sqlsentry.pipeline.session import TERMINAL_STATES, RequestSession, State
from sqlsentry.query.context import SchemaContextBuilder
from sqlsentry.query.executor import QueryExecutor
from sqlsentry.query.guard import SafetyGuard
from sqlsentry.query.normalizer import TextNormalizer

logger = logging.getLogger(__name__)


def next_state(record: AttemptRecord, max_attempts: int) -> State:
    """State entered once an attempt has finished."""
    if record.verdict is not None and not record.verdict.accepted:
        return State.GUARD_REJECTED
    if record.outcome is not None and record.outcome.succeeded:
        return State.SUCCEEDED
    if record.attempt_number < max_attempts:
        return State.RETRYING
    return State.EXECUTION_EXHAUSTED


class RepairOrchestrator:
    """Drives one request session through at most `max_attempts` attempts.

    Example:
        >>> orchestrator = RepairOrchestrator(provider, executor, SchemaContextBuilder(ddl))
        >>> session = await orchestrator.run("Top 5 foods by protein", Strategy.FEW)
        >>> session.disposition
        <Disposition.SUCCEEDED: 'succeeded'>
    """

    def __init__(
        self,
        provider: GenerationProvider,
        executor: QueryExecutor,
        context_builder: SchemaContextBuilder,
        guard: SafetyGuard | None = None,
        normalizer: TextNormalizer | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        generation_timeout_s: float | None = 45.0,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            provider: Generation capability
            executor: Executor bound to the shared database handle
            context_builder: Builds generation conversations for this schema
            guard: Safety guard (defaults to SafetyGuard())
            normalizer: Text normalizer (defaults to TextNormalizer())
            max_attempts: Attempt ceiling, 1..3
            generation_timeout_s: Limit for each generation call (None = no limit)
        """
        if not 1 <= max_attempts <= MAX_ATTEMPTS:
            raise ValueError(f"max_attempts must be between 1 and {MAX_ATTEMPTS}")
        self._provider = provider
        self._executor = executor
        self._context_builder = context_builder
        self._guard = guard or SafetyGuard()
        self._normalizer = normalizer or TextNormalizer()
        self._max_attempts = max_attempts
        self._generation_timeout_s = generation_timeout_s

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def run(self, question: str, strategy: Strategy = Strategy.FEW) -> RequestSession:
        """Run the repair loop to a terminal disposition.

        Args:
            question: Natural-language question (non-empty)
            strategy: Prompting strategy, constant for the whole session

        Returns:
            The finished RequestSession
        """
        session = RequestSession(
            question=question, strategy=strategy, max_attempts=self._max_attempts
        )
        logger.info(f"[ask] strategy={strategy} q={question!r}")

        previous: AttemptRecord | None = None
        while True:
            record = await self._attempt(session, previous)
            session.record(record)

            state = next_state(record, self._max_attempts)
            self._log_attempt(record, state)
            if state in TERMINAL_STATES:
                session.finish(TERMINAL_STATES[state])
                return session

            session.enter(state)
            previous = record

    async def _attempt(
        self, session: RequestSession, previous: AttemptRecord | None
    ) -> AttemptRecord:
        attempt_number = session.attempt_count + 1

        session.enter(State.GENERATING)
        messages = self._context_builder.sql_messages(
            session.question,
            session.strategy,
            previous_sql=previous.sql if previous else None,
            previous_error=previous.error if previous else None,
        )
        try:
            candidate = await self._generate(messages, attempt_number)
        except GenerationError as e:
            return AttemptRecord(attempt_number=attempt_number, generation_error=e.message)

        session.enter(State.NORMALIZING)
        normalized, edits = self._normalizer.normalize_with_edits(candidate.text)
        if edits:
            logger.debug(f"[ask] attempt {attempt_number} normalized: {', '.join(edits)}")

        session.enter(State.GUARDING)
        verdict = self._guard.validate(normalized)
        record = AttemptRecord(
            attempt_number=attempt_number,
            candidate=candidate,
            normalized_text=normalized,
            normalization_edits=edits,
            verdict=verdict,
        )
        if not verdict.accepted or verdict.normalized_text is None:
            return record

        session.enter(State.EXECUTING)
        outcome = await self._executor.aexecute(verdict.normalized_text)
        return record.model_copy(update={"outcome": outcome})

    async def _generate(self, messages: list[ChatMessage], attempt_number: int) -> CandidateQuery:
        """Call the provider; every failure comes back as a GenerationError."""
        start_time = time.perf_counter()
        try:
            async with asyncio.timeout(self._generation_timeout_s):
                candidate = await self._provider.generate_sql(messages)
        except GenerationError:
            raise
        except TimeoutError as e:
            raise GenerationError(
                f"Generation timed out after {self._generation_timeout_s:g}s"
            ) from e
        except Exception as e:
            logger.exception(f"[ask] attempt {attempt_number} provider raised unexpectedly")
            raise GenerationError(f"{type(e).__name__}: {e}") from e
        finally:
            elapsed = (time.perf_counter() - start_time) * 1000
            logger.info(f"[ask] sql_gen attempt={attempt_number} ({elapsed:.0f}ms)")
        return candidate

    def _log_attempt(self, record: AttemptRecord, state: State) -> None:
        n = record.attempt_number
        if record.generation_error is not None:
            logger.warning(f"[ask] attempt {n} generation failed: {record.generation_error}")
        elif state == State.GUARD_REJECTED:
            reason = record.verdict.rejection_reason if record.verdict else None
            logger.warning(f"[ask] attempt {n} rejected by guard: {reason}")
        elif state == State.SUCCEEDED and record.outcome is not None:
            logger.info(f"[ask] attempt {n} ok rows={record.outcome.row_count}")
        elif record.outcome is not None:
            logger.warning(f"[ask] attempt {n} SQLite error: {record.outcome.error_message}")

        if state == State.EXECUTION_EXHAUSTED:
            logger.error(f"[ask] giving up after {n} attempts")
