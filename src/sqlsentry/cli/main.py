"""SQLSentry CLI - Main entry point."""

from typing import Annotated

import typer

import sqlsentry
from sqlsentry.cli.context import CLIContext, get_database
from sqlsentry.config import configure_logging

# Create main Typer app
app = typer.Typer(
    name="sqlsentry",
    help="SQLSentry CLI - Guarded natural-language queries over SQLite",
    no_args_is_help=True,
)

# Store CLI context globally (will be set in callback)
state: dict[str, CLIContext] = {}


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar="SQLSENTRY_DATABASE",
            help="SQLite file path or sqlite:/// URL (opened read-only)",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option(
            "--echo",
            "-e",
            help="Echo SQL statements to console",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Log pipeline progress to stderr",
        ),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    if verbose:
        configure_logging("INFO")

    cli_ctx = CLIContext(
        database=get_database(database),
        echo=echo,
        json_output=json_output,
    )

    # Store in Typer context for command access
    ctx.obj = cli_ctx
    state["cli_ctx"] = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"SQLSentry v{sqlsentry.__version__}")


# Register command groups
from sqlsentry.cli.commands import ask, query, schema, serve  # noqa: E402

app.add_typer(query.app, name="query")

# Register standalone commands (not groups)
app.command(name="ask")(ask.ask_command)
app.command(name="schema")(schema.schema_command)
app.command(name="serve")(serve.serve_command)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
