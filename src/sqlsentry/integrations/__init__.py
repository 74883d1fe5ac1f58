"""Transport integrations.

Available integrations:
- sqlsentry.integrations.mcp - MCP (Model Context Protocol) server
- sqlsentry.integrations.http - FastAPI app serving /api/ask and /api/health
"""
