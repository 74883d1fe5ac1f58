"""Preview shaping for query results.

The authoritative ExecutionOutcome is never modified; previews are copies capped for
transport (caller responses) or for prompts (answer synthesis).
"""

from __future__ import annotations

import json
from typing import Any

from sqlsentry.core.types import ExecutionOutcome, ResultPreview

TRUNCATION_MARKER = "...(truncated)"


def preview(outcome: ExecutionOutcome, max_rows: int) -> ResultPreview:
    """Cap the rows of a successful outcome, keeping the full row count.

    Args:
        outcome: Successful execution outcome
        max_rows: Maximum number of rows in the preview

    Returns:
        ResultPreview whose row_count is the full count even when rows are truncated
    """
    if not outcome.succeeded:
        raise ValueError("Cannot preview a failed execution outcome")
    return ResultPreview(
        columns=list(outcome.columns),
        row_count=outcome.row_count,
        rows=[dict(row) for row in outcome.rows[: max(max_rows, 0)]],
    )


def truncate_json_for_prompt(obj: Any, max_chars: int = 8000) -> str:
    """Serialize to JSON and cut at `max_chars`, marking the cut."""
    serialized = json.dumps(obj, default=str, ensure_ascii=False)
    if len(serialized) <= max_chars:
        return serialized
    return serialized[:max_chars] + TRUNCATION_MARKER


class ResultShaper:
    """Holds the two preview caps: caller-facing rows and the smaller prompt preview."""

    def __init__(
        self, preview_rows: int = 50, prompt_rows: int = 20, prompt_chars: int = 8000
    ) -> None:
        self.preview_rows = preview_rows
        self.prompt_rows = prompt_rows
        self.prompt_chars = prompt_chars

    def for_response(self, outcome: ExecutionOutcome) -> ResultPreview:
        return preview(outcome, self.preview_rows)

    def for_prompt(self, outcome: ExecutionOutcome) -> str:
        rows = preview(outcome, self.prompt_rows).rows
        return truncate_json_for_prompt(rows, self.prompt_chars)
