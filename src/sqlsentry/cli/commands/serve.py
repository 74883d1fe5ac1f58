"""HTTP server command."""

from typing import Annotated

import typer

from sqlsentry.cli.context import CLIContext
from sqlsentry.cli.output import OutputFormatter
from sqlsentry.exceptions import ConfigurationError, SQLSentryError


def serve_command(
    ctx: typer.Context,
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (default: HOST or 127.0.0.1)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port (default: PORT or 3000)"),
    ] = None,
) -> None:
    """Serve POST /api/ask and GET /api/health over HTTP.

    Needs the http extra: pip install sqlsentry[http]

    Examples:

        sqlsentry serve
        sqlsentry -d ./db/aidb.sqlite serve --port 8080
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        try:
            from sqlsentry.integrations.http import run
        except ImportError as e:
            raise ConfigurationError(
                "The HTTP server needs FastAPI and uvicorn. "
                "Install with: pip install sqlsentry[http]",
                {"missing": e.name},
            ) from e

        settings = cli_ctx.settings()
        overrides = {k: v for k, v in {"host": host, "port": port}.items() if v is not None}
        run(settings.model_copy(update=overrides))
    except SQLSentryError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
