"""Embedded database handle for SQLSentry."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.pool import StaticPool

from sqlsentry.exceptions import ConnectionError

logger = logging.getLogger(__name__)


def _database_path(database: str) -> str:
    """Extract the file path from a plain path or a sqlite URL.

    Supports:
    - ./db/aidb.sqlite
    - sqlite:///relative/path.sqlite
    - sqlite:////absolute/path.sqlite
    """
    if database.startswith("sqlite"):
        _, _, path = database.partition(":///")
        if not path:
            raise ConnectionError(f"Unsupported database URL: {database}", {"database": database})
        return path
    return database


def _read_only_url(path: str) -> str:
    """Build a SQLAlchemy URL that opens the file through SQLite's read-only URI mode."""
    resolved = Path(path).resolve().as_posix()
    return f"sqlite+pysqlite:///file:{resolved}?mode=ro&uri=true"


class DatabaseConnection:
    """Owns the single SQLite handle shared by every request.

    The file is opened once, read-only, with `PRAGMA query_only` set on the connection.
    A StaticPool keeps exactly one DBAPI connection; callers serialize access to it
    (see QueryExecutor).
    """

    def __init__(self, database: str, echo: bool = False) -> None:
        """Initialize the handle (the engine is created lazily).

        Args:
            database: SQLite file path or sqlite:/// URL
            echo: Whether to echo SQL statements (for debugging)
        """
        self._path = _database_path(database)
        self._echo = echo
        self._engine: Engine | None = None

    @property
    def path(self) -> str:
        return self._path

    @property
    def engine(self) -> Engine:
        """Get or create the SQLAlchemy engine.

        Raises:
            ConnectionError: If the database file is missing or cannot be opened
        """
        if self._engine is None:
            if not Path(self._path).is_file():
                raise ConnectionError(
                    f'Missing database "{self._path}". Run the seeding step first.',
                    {"database": self._path},
                )
            try:
                engine = create_engine(
                    _read_only_url(self._path),
                    echo=self._echo,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                )

                @event.listens_for(engine, "connect")
                def _set_query_only(dbapi_conn: Any, _record: Any) -> None:
                    cursor = dbapi_conn.cursor()
                    cursor.execute("PRAGMA query_only = ON")
                    cursor.close()

                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
                self._engine = engine
                logger.info(f"Opened {self._path} read-only")
            except Exception as e:
                raise ConnectionError(
                    f"Failed to open database {self._path}: {e}", {"database": self._path}
                ) from e
        return self._engine

    def schema_ddl(self) -> str:
        """Return the CREATE statements of every user table and index, in creation order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                text(
                    "SELECT sql FROM sqlite_master "
                    "WHERE sql IS NOT NULL AND name NOT LIKE 'sqlite_%' "
                    "ORDER BY rowid"
                )
            ).fetchall()
        return ";\n\n".join(row[0] for row in rows) + (";" if rows else "")

    def test_connection(self) -> bool:
        """Test that the database answers a trivial query.

        Raises:
            ConnectionError: If the test fails
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except ConnectionError:
            raise
        except Exception as e:
            raise ConnectionError(f"Database connection test failed: {e}") from e

    def close(self) -> None:
        """Dispose of the engine and its connection."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def __enter__(self) -> DatabaseConnection:
        self.test_connection()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
