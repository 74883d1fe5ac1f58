"""MCP server for SQLSentry.

Exposes guarded natural-language queries and the safety guard as MCP tools for AI agents.
"""

from __future__ import annotations

import argparse
import json
import logging

from mcp.server.fastmcp import FastMCP  # type: ignore[import-not-found]

from sqlsentry import SentrySettings, SQLSentry
from sqlsentry.config import configure_logging
from sqlsentry.exceptions import SQLSentryError
from sqlsentry.query.shaper import preview

logger = logging.getLogger(__name__)

# Create MCP server
mcp = FastMCP("sqlsentry")

# Global SQLSentry instance (set during server startup)
_sentry: SQLSentry | None = None


def get_sentry() -> SQLSentry:
    """Get the SQLSentry instance."""
    if _sentry is None:
        raise RuntimeError("SQLSentry not initialized. Call create_server() first.")
    return _sentry


# === Schema Discovery ===


@mcp.tool()
def sqlsentry_describe_schema() -> str:
    """Get the SQLite schema (CREATE statements) of the database.

    Use this first to understand which tables and columns exist.
    """
    try:
        return json.dumps({"ddl": get_sentry().schema_ddl()})
    except SQLSentryError as e:
        return json.dumps(e.to_dict(), default=str)


# === Guarded SQL ===


@mcp.tool()
def sqlsentry_validate_sql(sql: str, normalize: bool = True) -> str:
    """Check SQL against the safety guard without running it.

    Only a single SELECT (or WITH ... SELECT) statement without comments and without
    mutation, PRAGMA, ATTACH or transaction keywords is accepted. A LIMIT is appended
    when the query has none.

    Args:
        sql: SQL text to check
        normalize: Apply the text normalizer first, as the ask pipeline does (default: true)

    Returns:
        JSON with accepted, normalized_text (the executable SQL) or rejection_reason.
    """
    verdict = get_sentry().validate(sql, normalize=normalize)
    return json.dumps(verdict.model_dump())


@mcp.tool()
def sqlsentry_run_sql(sql: str, max_rows: int = 50) -> str:
    """Run SQL through the safety guard and execute it on the read-only database.

    Args:
        sql: SQL text (SELECT or WITH only)
        max_rows: Maximum rows to return; row_count is always the full count

    Returns:
        JSON with sql, columns, row_count, rows; or error with guard_reason / exec_error.
    """
    try:
        verdict, outcome = get_sentry().run_sql(sql)
    except SQLSentryError as e:
        return json.dumps(e.to_dict(), default=str)

    if outcome is None:
        return json.dumps(
            {"error": "SQL rejected by guard.", "guard_reason": verdict.rejection_reason}
        )
    if not outcome.succeeded:
        return json.dumps(
            {
                "error": "Query execution failed.",
                "sql": verdict.normalized_text,
                "exec_error": outcome.error_message,
            }
        )
    shaped = preview(outcome, max_rows)
    return json.dumps({"sql": verdict.normalized_text, **shaped.model_dump()}, default=str)


# === Natural-language Questions ===


@mcp.tool()
async def sqlsentry_ask(question: str, strategy: str = "few", include_trail: bool = False) -> str:
    """Answer a question about the data with guarded, self-repairing SQL.

    The question is turned into SQL, normalized, checked by the safety guard and executed.
    Engine errors are fed back for up to three attempts; a guard rejection stops at once.

    Args:
        question: Natural-language question
        strategy: "few" (worked examples, default) or "zero"
        include_trail: Include every attempt (generated SQL, guard verdict, engine error)

    Returns:
        JSON with sql, assumptions, columns, row_count, rows, answer, caveats;
        or error with guard_reason / exec_error.
    """
    try:
        result = await get_sentry().ask(question, strategy)
    except SQLSentryError as e:
        return json.dumps(e.to_dict(), default=str)
    return json.dumps(result.to_response(include_trail=include_trail), default=str)


def create_server(database: str, echo: bool = False) -> FastMCP:
    """Create and configure the MCP server with a database.

    Args:
        database: SQLite file path or sqlite:/// URL (opened read-only)
        echo: Whether to echo SQL statements

    Returns:
        Configured FastMCP server instance
    """
    global _sentry
    _sentry = SQLSentry(SentrySettings.from_env(database=database, echo=echo))
    logger.info(f"SQLSentry initialized with {database}")
    return mcp


def main() -> None:
    """Entry point for running the MCP server."""
    parser = argparse.ArgumentParser(description="SQLSentry MCP Server")
    parser.add_argument(
        "--database",
        "-d",
        default=None,
        help="SQLite database path (default: SQLSENTRY_DATABASE or ./db/aidb.sqlite)",
    )
    parser.add_argument(
        "--echo",
        action="store_true",
        help="Echo SQL statements",
    )
    args = parser.parse_args()

    # stdout carries the stdio transport; logs go to stderr.
    configure_logging()
    database = args.database or SentrySettings.from_env().database
    create_server(database, echo=args.echo)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
