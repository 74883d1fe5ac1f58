"""Main SQLSentry engine."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

from sqlsentry.config import SentrySettings
from sqlsentry.core.connection import DatabaseConnection
from sqlsentry.core.types import Answer, Disposition, ExecutionOutcome, GuardVerdict, Strategy
from sqlsentry.exceptions import (
    ConfigurationError,
    DeadlineExceededError,
    ExecutionError,
    GenerationError,
    InputError,
    SynthesisError,
)
from sqlsentry.generation import GenerationProvider, get_provider
from sqlsentry.pipeline.orchestrator import RepairOrchestrator
from sqlsentry.pipeline.session import AskResult
from sqlsentry.query.context import SchemaContextBuilder, answer_messages
from sqlsentry.query.executor import QueryExecutor
from sqlsentry.query.guard import SafetyGuard
from sqlsentry.query.normalizer import TextNormalizer
from sqlsentry.query.shaper import ResultShaper

logger = logging.getLogger(__name__)


class SQLSentry:
    """Guarded natural-language query service over one read-only SQLite file.

    Owns the single database handle and everything built on it. Each call to `ask`
    gets its own RequestSession; nothing about one request is visible to another.

    Example:
        >>> sentry = SQLSentry(SentrySettings(database="./db/aidb.sqlite", openai_api_key="sk-..."))
        >>> result = asyncio.run(sentry.ask("Top 5 supplements by vitamin C"))
        >>> result.to_response()["rows"]
    """

    def __init__(
        self,
        settings: SentrySettings | None = None,
        provider: GenerationProvider | None = None,
    ) -> None:
        """Initialize SQLSentry.

        Args:
            settings: Runtime settings (defaults to SentrySettings.from_env())
            provider: Generation capability (defaults to OpenAI, created on first use)
        """
        self._settings = settings or SentrySettings.from_env()
        self._connection = DatabaseConnection(self._settings.database, echo=self._settings.echo)
        self._executor = QueryExecutor(
            self._connection, statement_timeout_s=self._settings.statement_timeout_s
        )
        self._guard = SafetyGuard()
        self._normalizer = TextNormalizer()
        self._shaper = ResultShaper(
            preview_rows=self._settings.preview_rows,
            prompt_rows=self._settings.prompt_rows,
            prompt_chars=self._settings.prompt_chars,
        )
        self._provider = provider
        self._context_builder: SchemaContextBuilder | None = None

    @property
    def settings(self) -> SentrySettings:
        return self._settings

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    @property
    def guard(self) -> SafetyGuard:
        return self._guard

    @property
    def normalizer(self) -> TextNormalizer:
        return self._normalizer

    @property
    def provider(self) -> GenerationProvider:
        """Generation capability, created from settings on first use.

        Raises:
            ConfigurationError: If no provider was given and no API key is configured
        """
        if self._provider is None:
            self._provider = get_provider(
                "openai",
                api_key=self._settings.require_api_key(),
                model=self._settings.model,
                timeout_s=self._settings.generation_timeout_s,
                max_retries=self._settings.openai_max_retries,
            )
        return self._provider

    def close(self) -> None:
        """Close the database connection."""
        self._connection.close()

    def __enter__(self) -> SQLSentry:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    # === Schema Discovery ===

    def schema_ddl(self) -> str:
        """DDL shown to the generator: the configured schema file, else sqlite_master."""
        schema_path = self._settings.schema_path
        if schema_path:
            try:
                return Path(schema_path).read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigurationError(
                    f"Cannot read schema file {schema_path}: {e}", {"schema_path": schema_path}
                ) from e
        return self._connection.schema_ddl()

    def context_builder(self) -> SchemaContextBuilder:
        if self._context_builder is None:
            self._context_builder = SchemaContextBuilder(self.schema_ddl())
        return self._context_builder

    # === Guarded SQL ===

    def normalize(self, sql: str) -> str:
        """Apply the text normalizer only."""
        return self._normalizer.normalize(sql)

    def validate(self, sql: Any, normalize: bool = True) -> GuardVerdict:
        """Run the safety guard, optionally after normalization.

        Args:
            sql: Candidate query text
            normalize: Normalize before guarding, as the pipeline does

        Returns:
            GuardVerdict; only its normalized_text may be executed
        """
        if normalize and isinstance(sql, str):
            sql = self._normalizer.normalize(sql)
        return self._guard.validate(sql)

    def run_sql(
        self, sql: str, raise_on_error: bool = False
    ) -> tuple[GuardVerdict, ExecutionOutcome | None]:
        """Normalize, guard and execute caller-supplied SQL (no generation involved).

        Args:
            sql: Query text
            raise_on_error: Raise ExecutionError instead of returning a failed outcome

        Returns:
            (verdict, outcome); outcome is None when the guard rejected the text

        Raises:
            ExecutionError: If raise_on_error is set and the engine reported an error
        """
        verdict = self.validate(sql)
        if not verdict.accepted or verdict.normalized_text is None:
            return verdict, None
        outcome = self._executor.execute(verdict.normalized_text)
        if raise_on_error and not outcome.succeeded:
            raise ExecutionError(outcome.error_message or "", verdict.normalized_text)
        return verdict, outcome

    # === Natural-language questions ===

    async def ask(
        self,
        question: Any,
        strategy: Any = Strategy.FEW,
        synthesize: bool = True,
    ) -> AskResult:
        """Answer a natural-language question with guarded, self-repairing SQL.

        Args:
            question: Natural-language question (non-empty string)
            strategy: "zero" or "few" (case-insensitive)
            synthesize: Also produce a prose answer for a successful result

        Returns:
            AskResult for the finished session. Guard rejection and exhaustion are
            dispositions of the result, not exceptions.

        Raises:
            InputError: If the question or strategy is unusable
            ConfigurationError: If no generation capability can be created
            DeadlineExceededError: If the request deadline elapsed
        """
        question, strategy = self._check_request(question, strategy)
        provider = self.provider
        orchestrator = RepairOrchestrator(
            provider,
            self._executor,
            self.context_builder(),
            guard=self._guard,
            normalizer=self._normalizer,
            max_attempts=self._settings.max_attempts,
            generation_timeout_s=self._settings.generation_timeout_s,
        )

        deadline_s = self._settings.request_deadline_s
        try:
            async with asyncio.timeout(deadline_s):
                session = await orchestrator.run(question, strategy)
                result = AskResult(session=session)
                if session.disposition == Disposition.SUCCEEDED and session.outcome is not None:
                    result.preview = self._shaper.for_response(session.outcome)
                    if synthesize:
                        try:
                            result.answer = await self._synthesize(
                                provider, question, session.sql, session.outcome
                            )
                        except SynthesisError as e:
                            logger.error(f"[ask] answer synthesis failed: {e.message}")
                            result.answer_error = e.message
        except TimeoutError as e:
            # The timeout already cancelled this request's own queued or running statement.
            logger.error(f"[ask] deadline of {deadline_s:g}s exceeded")
            raise DeadlineExceededError(deadline_s or 0.0) from e

        logger.info(
            f"[ask] finished disposition={session.disposition} attempts={session.attempt_count}"
        )
        return result

    def _check_request(self, question: Any, strategy: Any) -> tuple[str, Strategy]:
        if not isinstance(question, str) or not question.strip():
            raise InputError("Missing question.", field="question")
        raw_strategy = Strategy.FEW.value if strategy is None or strategy == "" else strategy
        try:
            parsed = Strategy(str(raw_strategy).lower())
        except ValueError as e:
            raise InputError(
                f"Invalid strategy. Use one of: {', '.join(Strategy.values())}",
                field="strategy",
            ) from e
        return question.strip(), parsed

    async def _synthesize(
        self,
        provider: GenerationProvider,
        question: str,
        sql: str,
        outcome: ExecutionOutcome,
    ) -> Answer:
        start_time = time.perf_counter()
        rows_json = self._shaper.for_prompt(outcome)
        messages = answer_messages(question, sql, outcome.row_count, rows_json)
        try:
            async with asyncio.timeout(self._settings.generation_timeout_s):
                answer = await provider.generate_answer(messages)
        except TimeoutError as e:
            raise SynthesisError(
                f"Answer generation timed out after {self._settings.generation_timeout_s:g}s"
            ) from e
        except GenerationError as e:
            raise SynthesisError(e.message) from e

        elapsed = (time.perf_counter() - start_time) * 1000
        logger.info(f"[ask] answer in {elapsed:.0f}ms rows={outcome.row_count}")
        return answer
