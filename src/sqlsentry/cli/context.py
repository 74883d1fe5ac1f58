"""CLI context management for the database handle and shared state."""

import os
from dataclasses import dataclass, field

from sqlsentry import SentrySettings, SQLSentry
from sqlsentry.config import DEFAULT_DATABASE


def get_database(database: str | None) -> str:
    """Resolve the database path from CLI arg, environment variable, or default.

    Priority:
    1. Explicit argument
    2. SQLSENTRY_DATABASE environment variable
    3. Default: ./db/aidb.sqlite
    """
    if database:
        return database
    if env_database := os.getenv("SQLSENTRY_DATABASE"):
        return env_database
    return DEFAULT_DATABASE


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages the SQLSentry lifecycle and output preferences.
    """

    database: str
    echo: bool
    json_output: bool
    _sentry: SQLSentry | None = field(default=None, init=False, repr=False)

    def settings(self) -> SentrySettings:
        return SentrySettings.from_env(database=self.database, echo=self.echo)

    def get_sentry(self) -> SQLSentry:
        """Get or create the SQLSentry instance (lazy initialization)."""
        if self._sentry is None:
            self._sentry = SQLSentry(self.settings())
        return self._sentry

    def close(self) -> None:
        """Close the database handle if open."""
        if self._sentry is not None:
            self._sentry.close()
            self._sentry = None
