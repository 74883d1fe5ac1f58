"""Guarded SQL commands."""

from pathlib import Path
from typing import Annotated

import typer

from sqlsentry.cli.context import CLIContext
from sqlsentry.cli.output import OutputFormatter
from sqlsentry.exceptions import SQLSentryError
from sqlsentry.query.shaper import preview

# Create query subcommand group
app = typer.Typer(help="Normalize, validate and run SQL through the safety guard")


def _read_sql(sql: str | None, from_file: str | None) -> str:
    if from_file:
        return Path(from_file).read_text()
    if sql:
        return sql
    raise typer.BadParameter("Either provide SQL or use --file")


@app.command("validate")
def query_validate(
    ctx: typer.Context,
    sql: Annotated[
        str | None,
        typer.Argument(help="SQL query to validate"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Load SQL from file"),
    ] = None,
    raw: Annotated[
        bool,
        typer.Option("--raw", help="Skip normalization and guard the text as given"),
    ] = False,
) -> None:
    """Run the safety guard without executing.

    Exits with code 1 when the guard rejects the query.

    Examples:

        sqlsentry query validate "SELECT name FROM items"
        sqlsentry query validate --raw "SELECT 1; DROP TABLE items"
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    sql_content = _read_sql(sql, from_file)
    verdict = cli_ctx.get_sentry().validate(sql_content, normalize=not raw)
    formatter.print_verdict(verdict)
    if not verdict.accepted:
        raise typer.Exit(code=1)


@app.command("normalize")
def query_normalize(
    ctx: typer.Context,
    sql: Annotated[
        str | None,
        typer.Argument(help="SQL text to normalize"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Load SQL from file"),
    ] = None,
) -> None:
    """Show the text normalizer's rewrite of a query.

    Examples:

        sqlsentry query normalize "SELECT in.amount_per_100g FROM item_nutrients in"
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    sql_content = _read_sql(sql, from_file)
    normalized, edits = cli_ctx.get_sentry().normalizer.normalize_with_edits(sql_content)
    if cli_ctx.json_output:
        formatter.print_data({"sql": normalized, "edits": list(edits)})
    else:
        formatter.print_sql(normalized, title="Normalized SQL")
        typer.echo(f"Rules applied: {', '.join(edits) if edits else 'none'}")


@app.command("run")
def query_run(
    ctx: typer.Context,
    sql: Annotated[
        str | None,
        typer.Argument(help="SQL query to execute"),
    ] = None,
    from_file: Annotated[
        str | None,
        typer.Option("--file", "-f", help="Load SQL from file"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=0, help="Rows to display"),
    ] = 50,
) -> None:
    """Normalize, guard and execute a query against the read-only database.

    Examples:

        sqlsentry query run "SELECT name, brand FROM items WHERE item_type = 'supplement'"
        sqlsentry query run --file query.sql --limit 10
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        sql_content = _read_sql(sql, from_file)
        verdict, outcome = cli_ctx.get_sentry().run_sql(sql_content, raise_on_error=True)
    except SQLSentryError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()

    if outcome is None:
        formatter.print_verdict(verdict)
        raise typer.Exit(code=1)

    if cli_ctx.json_output:
        formatter.print_data(
            {
                "sql": verdict.normalized_text,
                "columns": outcome.columns,
                "row_count": outcome.row_count,
                "rows": preview(outcome, limit).rows,
                "execution_time_ms": outcome.execution_time_ms,
            }
        )
    else:
        formatter.print_preview(preview(outcome, limit))
        typer.echo(f"\n⏱️  Execution time: {outcome.execution_time_ms or 0:.2f}ms")
