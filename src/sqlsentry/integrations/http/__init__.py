"""HTTP integration for SQLSentry.

Example:
    # Run the HTTP server
    python -m sqlsentry.integrations.http.app

    # Or via the CLI (after pip install sqlsentry[http])
    sqlsentry -d ./db/aidb.sqlite serve --port 3000
"""

from sqlsentry.integrations.http.app import create_app, run

__all__ = ["create_app", "run"]
