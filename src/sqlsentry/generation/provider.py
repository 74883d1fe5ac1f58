"""Generation capability interface."""

from abc import ABC, abstractmethod

from pydantic import ValidationError

from sqlsentry.core.types import Answer, CandidateQuery, ChatMessage, SQLGeneration
from sqlsentry.exceptions import GenerationError


class GenerationProvider(ABC):
    """Interface for text-generation backends.

    Implementations turn a structured conversation into a schema-validated response and
    raise GenerationError for every failure (transport, timeout, empty or malformed
    content). Time limits are enforced by the caller.
    """

    @abstractmethod
    async def generate_sql(self, messages: list[ChatMessage]) -> CandidateQuery:
        """Produce one candidate query.

        Args:
            messages: System instructions, optional worked examples, question, repair context.

        Returns:
            CandidateQuery with the query text and the generator's stated assumptions.
        """
        ...

    @abstractmethod
    async def generate_answer(self, messages: list[ChatMessage]) -> Answer:
        """Produce a prose answer with caveats for a successful result."""
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier for logs."""
        ...


def parse_sql_generation(content: str | None) -> CandidateQuery:
    """Validate raw response content against the SQL generation schema.

    Raises:
        GenerationError: If the content is empty or does not match the schema
    """
    if not content:
        raise GenerationError("Empty model response.")
    try:
        parsed = SQLGeneration.model_validate_json(content)
    except ValidationError as e:
        raise GenerationError(f"Malformed model response: {e.errors()[0]['msg']}") from e
    return CandidateQuery(text=parsed.sql.strip(), assumptions=tuple(parsed.assumptions))


def parse_answer(content: str | None) -> Answer:
    """Validate raw response content against the answer schema.

    Raises:
        GenerationError: If the content is empty or does not match the schema
    """
    if not content:
        raise GenerationError("Empty answer response.")
    try:
        return Answer.model_validate_json(content)
    except ValidationError as e:
        raise GenerationError(f"Malformed answer response: {e.errors()[0]['msg']}") from e
