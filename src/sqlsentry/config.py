"""Settings for SQLSentry.

`SentrySettings` reads environment variables and a `.env` file in the working directory
(environment wins over the file, explicit arguments win over both). Callers (CLI, MCP
server, HTTP app, tests) may also build one directly with field names.
"""

from __future__ import annotations

import logging
import sys

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqlsentry.exceptions import ConfigurationError

# Hard ceiling of the repair loop; settings may lower it, never raise it.
MAX_ATTEMPTS = 3

DEFAULT_DATABASE = "./db/aidb.sqlite"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_GENERATION_TIMEOUT_S = 45.0


class SentrySettings(BaseSettings):
    """Runtime configuration."""

    database: str = Field(
        default=DEFAULT_DATABASE,
        validation_alias="SQLSENTRY_DATABASE",
        description="SQLite file path or sqlite URL",
    )
    schema_path: str | None = Field(
        default=None, validation_alias="SQLSENTRY_SCHEMA_PATH", description="DDL file for prompts"
    )
    echo: bool = Field(default=False, validation_alias="SQLSENTRY_ECHO")

    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    model: str = Field(default=DEFAULT_MODEL, validation_alias="OPENAI_MODEL")
    openai_timeout_ms: float | None = Field(
        default=None, gt=0, validation_alias="OPENAI_TIMEOUT_MS"
    )
    generation_timeout_s: float = Field(
        default=DEFAULT_GENERATION_TIMEOUT_S,
        gt=0,
        validation_alias="SQLSENTRY_GENERATION_TIMEOUT_S",
    )
    openai_max_retries: int = Field(default=1, ge=0, validation_alias="OPENAI_MAX_RETRIES")

    max_attempts: int = Field(
        default=MAX_ATTEMPTS, ge=1, le=MAX_ATTEMPTS, validation_alias="SQLSENTRY_MAX_ATTEMPTS"
    )
    request_deadline_s: float | None = Field(
        default=None, gt=0, validation_alias="SQLSENTRY_REQUEST_DEADLINE_S"
    )
    statement_timeout_s: float | None = Field(
        default=10.0, gt=0, validation_alias="SQLSENTRY_STATEMENT_TIMEOUT_S"
    )

    preview_rows: int = Field(default=50, ge=0, validation_alias="SQLSENTRY_PREVIEW_ROWS")
    prompt_rows: int = Field(default=20, ge=0, validation_alias="SQLSENTRY_PROMPT_ROWS")
    prompt_chars: int = Field(default=8000, ge=100, validation_alias="SQLSENTRY_PROMPT_CHARS")

    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=3000, ge=1, le=65535, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _resolve_timeouts(self) -> SentrySettings:
        # OPENAI_TIMEOUT_MS applies unless the timeout in seconds was given explicitly.
        explicit = "generation_timeout_s" in self.model_fields_set
        if self.openai_timeout_ms is not None and not explicit:
            self.generation_timeout_s = self.openai_timeout_ms / 1000.0
        # The transport deadline sits above one generation call.
        if self.request_deadline_s is None:
            self.request_deadline_s = self.generation_timeout_s + 15.0
        return self

    @classmethod
    def from_env(cls, env_file: str | None = ".env", **overrides: object) -> SentrySettings:
        """Build settings from the environment and an optional dotenv file.

        Args:
            env_file: Dotenv file to read (None = environment only)
            **overrides: Explicit values by field name; None values are ignored

        Raises:
            ConfigurationError: If a value cannot be parsed or is out of range
        """
        values = {k: v for k, v in overrides.items() if v is not None}
        try:
            return cls(_env_file=env_file, **values)  # type: ignore[call-arg]
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ConfigurationError(
                f"Invalid settings: {', '.join(fields)}",
                {"errors": [err["msg"] for err in e.errors()]},
            ) from e

    def require_api_key(self) -> str:
        """Return the OpenAI API key or raise a ConfigurationError."""
        if not self.openai_api_key:
            raise ConfigurationError(
                "Missing OPENAI_API_KEY. Set it in your environment or .env and restart.",
                {"variable": "OPENAI_API_KEY"},
            )
        return self.openai_api_key


def configure_logging(level: str = "INFO") -> None:
    """Send log records to stderr (stdout is reserved for command and stdio-transport output)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
