"""MCP (Model Context Protocol) integration for SQLSentry.

This module provides an MCP server that exposes guarded natural-language
queries and the safety guard as tools for AI agents.

Example:
    # Run the MCP server
    python -m sqlsentry.integrations.mcp.server --database ./db/aidb.sqlite

    # Or via entry point (after pip install sqlsentry[mcp])
    sqlsentry-mcp --database ./db/aidb.sqlite
"""

from sqlsentry.integrations.mcp.server import create_server, mcp

__all__ = ["mcp", "create_server"]
