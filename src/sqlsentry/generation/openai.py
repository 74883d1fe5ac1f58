"""OpenAI generation provider."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlsentry.core.types import Answer, CandidateQuery, ChatMessage
from sqlsentry.exceptions import ConfigurationError, GenerationError
from sqlsentry.generation.provider import GenerationProvider, parse_answer, parse_sql_generation

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

SQL_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "sql_generation",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "sql": {"type": "string"},
                "assumptions": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["sql", "assumptions"],
            "additionalProperties": False,
        },
    },
}

ANSWER_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "nl_answer",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "answer": {"type": "string"},
                "caveats": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["answer", "caveats"],
            "additionalProperties": False,
        },
    },
}


class OpenAIProvider(GenerationProvider):
    """Chat Completions provider with strict JSON-schema responses.

    SQL generation runs at temperature 0, answer synthesis at 0.2.

    Example:
        >>> provider = OpenAIProvider(api_key="sk-...")
        >>> candidate = await provider.generate_sql(messages)
    """

    DEFAULT_MODEL = "gpt-4o-mini"
    SQL_TEMPERATURE = 0.0
    ANSWER_TEMPERATURE = 0.2

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout_s: float = 45.0,
        max_retries: int = 1,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Chat model name
            timeout_s: Per-call transport timeout
            max_retries: Transport-level retries done by the SDK
            client: Preconfigured client (tests)
        """
        if client is None:
            if not api_key:
                raise ConfigurationError(
                    "OpenAI API key required. Set OPENAI_API_KEY.",
                    {"variable": "OPENAI_API_KEY"},
                )
            from openai import AsyncOpenAI

            client = AsyncOpenAI(api_key=api_key, timeout=timeout_s, max_retries=max_retries)

        self._client: AsyncOpenAI = client
        self._model = model

    @property
    def model_name(self) -> str:
        return self._model

    async def generate_sql(self, messages: list[ChatMessage]) -> CandidateQuery:
        content = await self._complete(messages, SQL_RESPONSE_FORMAT, self.SQL_TEMPERATURE)
        return parse_sql_generation(content)

    async def generate_answer(self, messages: list[ChatMessage]) -> Answer:
        content = await self._complete(messages, ANSWER_RESPONSE_FORMAT, self.ANSWER_TEMPERATURE)
        return parse_answer(content)

    async def _complete(
        self,
        messages: list[ChatMessage],
        response_format: dict[str, Any],
        temperature: float,
    ) -> str | None:
        from openai import OpenAIError

        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                temperature=temperature,
                messages=[m.model_dump() for m in messages],  # type: ignore[misc]
                response_format=response_format,  # type: ignore[arg-type]
            )
        except OpenAIError as e:
            raise GenerationError(str(e) or e.__class__.__name__) from e

        if not completion.choices:
            return None
        return completion.choices[0].message.content
