"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from sqlsentry.core.types import GuardVerdict, ResultPreview
from sqlsentry.exceptions import SQLSentryError
from sqlsentry.pipeline.session import AskResult

console = Console()


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def print_table(
        self,
        title: str,
        data: list[dict[str, Any]],
        columns: list[str],
    ) -> None:
        """Print data as Rich table or JSON array.

        Args:
            title: Table title
            data: List of row dictionaries
            columns: Column names to display
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            table = Table(title=title, show_header=True, header_style="bold magenta")
            for col in columns:
                table.add_column(col)
            for row in data:
                table.add_row(
                    *["NULL" if row.get(col) is None else str(row[col]) for col in columns]
                )
            console.print(table)

    def print_preview(self, preview: ResultPreview) -> None:
        """Print a capped result preview, noting how many rows were left out."""
        if self.json_mode:
            print(json.dumps(preview.model_dump(), default=str, indent=2))
            return
        if not preview.rows:
            console.print("Query returned no rows")
            return
        title = f"{preview.row_count} row(s)"
        if preview.truncated:
            title += f", showing first {len(preview.rows)}"
        self.print_table(title, preview.rows, preview.columns)

    def print_sql(self, sql: str, title: str = "SQL") -> None:
        if self.json_mode:
            print(json.dumps({"sql": sql}, indent=2))
        else:
            console.print(Panel(Syntax(sql, "sql", word_wrap=True), title=title))

    def print_verdict(self, verdict: GuardVerdict) -> None:
        """Print a guard verdict.

        Args:
            verdict: Verdict to display
        """
        if self.json_mode:
            print(json.dumps(verdict.model_dump(), indent=2))
        elif verdict.accepted and verdict.normalized_text is not None:
            console.print("✓ Accepted", style="green")
            self.print_sql(verdict.normalized_text, title="Executable SQL")
        else:
            console.print(f"✗ Rejected: {verdict.rejection_reason}", style="red")

    def print_ask_result(self, result: AskResult, include_trail: bool = False) -> None:
        """Print the outcome of a question.

        Args:
            result: Finished ask result
            include_trail: Also show every attempt
        """
        response = result.to_response(include_trail=include_trail)
        if self.json_mode:
            print(json.dumps(response, default=str, indent=2))
            return

        if response.get("sql"):
            self.print_sql(response["sql"])
        if response.get("assumptions"):
            console.print("[bold]Assumptions:[/bold]")
            for assumption in response["assumptions"]:
                console.print(f"  • {assumption}", style="dim")

        if "error" in response:
            detail = response.get("guard_reason") or response.get("exec_error") or response.get(
                "answer_error"
            )
            text = response["error"] if not detail else f"{response['error']}\n\n{detail}"
            console.print(Panel(text, title="[red]Error[/red]", border_style="red"))

        if result.preview is not None:
            self.print_preview(result.preview)
        if result.answer is not None:
            console.print(Panel(result.answer.answer, title="Answer", border_style="green"))
            for caveat in result.answer.caveats:
                console.print(f"  ⚠ {caveat}", style="yellow")

        console.print(
            f"strategy={response['strategy']} attempts={response['attempts']}", style="dim"
        )

        if include_trail:
            for entry in response["trail"]:
                console.print(f"\n[bold]Attempt {entry['attempt']}[/bold]")
                for key, value in entry.items():
                    if key != "attempt":
                        console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print error message.

        Args:
            error: Exception to display
        """
        if self.json_mode:
            if isinstance(error, SQLSentryError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
        else:
            error_text = str(error)
            # For SQLSentryError, include context if available
            if isinstance(error, SQLSentryError) and error.context:
                context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
                error_text = f"{error_text}\n\n{context_str}"

            panel = Panel(
                error_text,
                title="[red]Error[/red]",
                border_style="red",
            )
            console.print(panel)

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.).

        Args:
            data: Data to print
        """
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            console.print(data)
