"""Natural-language question command."""

import asyncio
from typing import Annotated

import typer

from sqlsentry.cli.context import CLIContext
from sqlsentry.cli.output import OutputFormatter
from sqlsentry.core.types import Strategy
from sqlsentry.exceptions import SQLSentryError


def ask_command(
    ctx: typer.Context,
    question: Annotated[str, typer.Argument(help="Question about the data")],
    strategy: Annotated[
        Strategy,
        typer.Option("--strategy", "-s", case_sensitive=False, help="Prompting strategy"),
    ] = Strategy.FEW,
    trail: Annotated[
        bool,
        typer.Option("--trail", help="Show every attempt of the repair loop"),
    ] = False,
    no_answer: Annotated[
        bool,
        typer.Option("--no-answer", help="Skip the prose answer, show rows only"),
    ] = False,
) -> None:
    """Answer a question with guarded, self-repairing SQL.

    Requires OPENAI_API_KEY. Exits with code 1 on guard rejection or when no
    executable SQL was produced.

    Examples:

        sqlsentry ask "Top 5 supplements by vitamin C per 100g."
        sqlsentry ask "Calories per day last week" --strategy zero --trail
        sqlsentry --json ask "How many recipes are there?"
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        sentry = cli_ctx.get_sentry()
        result = asyncio.run(sentry.ask(question, strategy, synthesize=not no_answer))
    except SQLSentryError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1) from e
    finally:
        cli_ctx.close()

    formatter.print_ask_result(result, include_trail=trail)
    if not result.ok:
        raise typer.Exit(code=1)
