"""Schema discovery command."""

import typer

from sqlsentry.cli.context import CLIContext
from sqlsentry.cli.output import OutputFormatter
from sqlsentry.exceptions import SQLSentryError


def schema_command(ctx: typer.Context) -> None:
    """Show the schema DDL the generator is given."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        ddl = cli_ctx.get_sentry().schema_ddl()
    except SQLSentryError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()

    if cli_ctx.json_output:
        formatter.print_data({"ddl": ddl})
    else:
        formatter.print_sql(ddl, title="Schema")
