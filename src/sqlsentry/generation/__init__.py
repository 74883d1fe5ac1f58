"""Generation providers for SQL candidates and answers.

Example:
    >>> from sqlsentry.generation import get_provider
    >>> provider = get_provider("openai", api_key="sk-...")
"""

from sqlsentry.generation.provider import GenerationProvider, parse_answer, parse_sql_generation

__all__ = [
    "GenerationProvider",
    "get_provider",
    "parse_answer",
    "parse_sql_generation",
]


def get_provider(
    provider: str | GenerationProvider = "openai",
    **kwargs: object,
) -> GenerationProvider:
    """Get a generation provider by name or return the provider if already instantiated.

    Args:
        provider: Provider name ("openai") or GenerationProvider instance.
        **kwargs: Additional arguments passed to the provider constructor.

    Raises:
        ValueError: If provider name is unknown.
    """
    if isinstance(provider, GenerationProvider):
        return provider

    if provider == "openai":
        from sqlsentry.generation.openai import OpenAIProvider

        return OpenAIProvider(**kwargs)  # type: ignore[arg-type]
    raise ValueError(f"Unknown generation provider: {provider}. Available: 'openai'")
