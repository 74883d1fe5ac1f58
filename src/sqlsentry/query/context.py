"""Prompt context for SQL generation and answer synthesis.

Builds the structured conversation sent to the generation capability:
- System instructions for read-only SQLite SQL
- Domain notes about how the nutrition schema stores amounts
- The schema DDL
- Worked examples (few-shot strategy only)
- The question, and on repair attempts the failed SQL with the engine error
"""

from __future__ import annotations

import json

from sqlsentry.core.types import ChatMessage, Strategy

SQL_INSTRUCTIONS = [
    "You are an expert data analyst that writes SQLite SELECT queries.",
    "",
    "Task: Convert the user's question into ONE safe SQLite query.",
    "",
    "Rules:",
    "- Output ONLY the JSON required by the response schema.",
    "- Use SQLite syntax.",
    "- Only SELECT (WITH allowed). No mutations, no PRAGMA, no ATTACH, no multiple statements.",
    "- The `sql` field must contain ONLY SQL (no comments like `-- ...` or `/* ... */`, "
    "no explanations).",
    "- If the question is ambiguous, make a reasonable assumption and proceed.",
    "- Prefer joining by IDs and using explicit table aliases.",
    "- Do NOT use SQL keywords as aliases (e.g., do not alias a table as `in`, `on`, `from`, "
    "`where`, `select`).",
    "- Use LIMIT when returning many rows (if unsure, LIMIT 50).",
]

NUTRITION_NOTES = [
    "Nutrition notes:",
    "- All item nutrient amounts are stored per 100g in item_nutrients.amount_per_100g.",
    "- Recipe nutrient totals can be computed by summing "
    "(recipe_items.amount_g * item_nutrients.amount_per_100g / 100.0).",
    "- Meal log nutrient totals can be computed by multiplying recipe totals by "
    "meal_logs.servings_eaten.",
    "- Use nutrient names exactly as stored in nutrients.name "
    "(snake_case like 'vitamin_c_mg', not 'Vitamin C').",
]

EXAMPLE_QUERIES = [
    {
        "question": "Top 5 supplements by vitamin C per 100g.",
        "sql": """SELECT i.name, i.brand, inut.amount_per_100g AS vitamin_c_mg_per_100g
FROM items i
JOIN nutrients n ON n.name = 'vitamin_c_mg'
JOIN item_nutrients inut ON inut.item_id = i.item_id AND inut.nutrient_id = n.nutrient_id
WHERE i.item_type = 'supplement'
ORDER BY vitamin_c_mg_per_100g DESC
LIMIT 5""",
    },
    {
        "question": "How many calories did I consume each day in the last 7 days?",
        "sql": """WITH recipe_kcal AS (
  SELECT r.recipe_id,
         SUM(ri.amount_g * inut.amount_per_100g / 100.0) AS kcal_per_recipe
  FROM recipes r
  JOIN recipe_items ri ON ri.recipe_id = r.recipe_id
  JOIN nutrients n ON n.name = 'calories_kcal'
  JOIN item_nutrients inut ON inut.item_id = ri.item_id AND inut.nutrient_id = n.nutrient_id
  GROUP BY r.recipe_id
)
SELECT date(ml.eaten_at) AS day,
       SUM(ml.servings_eaten * rk.kcal_per_recipe) AS calories_kcal
FROM meal_logs ml
JOIN recipe_kcal rk ON rk.recipe_id = ml.recipe_id
WHERE ml.eaten_at >= datetime('now', '-7 days')
GROUP BY date(ml.eaten_at)
ORDER BY day ASC
LIMIT 200""",
    },
]

REPAIR_REMINDER = (
    "Remember: avoid SQL keyword aliases (do not use alias 'in') and use nutrient names "
    "exactly as stored (e.g., 'vitamin_c_mg')."
)

ANSWER_INSTRUCTIONS = [
    "You are a helpful assistant that answers questions using database query results.",
    "Answer in English.",
    "",
    "If the result rows are empty, say that there was no data matching the query.",
    "Do not mention that you are an AI model. Do not fabricate data not present in the rows.",
]


class SchemaContextBuilder:
    """Builds generator conversations around one schema DDL."""

    def __init__(
        self,
        schema_ddl: str,
        notes: list[str] | None = None,
        examples: list[dict[str, str]] | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            schema_ddl: CREATE statements shown to the generator
            notes: Domain notes (defaults to the nutrition notes)
            examples: Worked question/sql pairs used by the few-shot strategy
        """
        self._schema_ddl = schema_ddl
        self._notes = NUTRITION_NOTES if notes is None else notes
        self._examples = EXAMPLE_QUERIES if examples is None else examples

    @property
    def schema_ddl(self) -> str:
        return self._schema_ddl

    def system_prompt(self) -> str:
        parts = [*SQL_INSTRUCTIONS, ""]
        if self._notes:
            parts.extend([*self._notes, ""])
        parts.extend(["SQLite schema (DDL):", self._schema_ddl])
        return "\n".join(parts)

    def example_messages(self) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        for example in self._examples:
            messages.append(ChatMessage(role="user", content=example["question"]))
            messages.append(
                ChatMessage(role="assistant", content=json.dumps({"sql": example["sql"]}))
            )
        return messages

    def sql_messages(
        self,
        question: str,
        strategy: Strategy,
        previous_sql: str | None = None,
        previous_error: str | None = None,
    ) -> list[ChatMessage]:
        """Conversation for one generation attempt.

        Args:
            question: The user's question (unchanged across attempts)
            strategy: ZERO omits the worked examples
            previous_sql: Query text of the failed attempt (repair attempts)
            previous_error: Engine or generation error of the failed attempt (repair attempts)
        """
        messages = [ChatMessage(role="system", content=self.system_prompt())]
        if strategy == Strategy.FEW:
            messages.extend(self.example_messages())
        messages.append(ChatMessage(role="user", content=question))
        if previous_error is not None:
            messages.append(
                ChatMessage(role="user", content=repair_message(previous_sql, previous_error))
            )
        return messages


def repair_message(previous_sql: str | None, previous_error: str) -> str:
    """Correction request quoting the failed SQL and the error verbatim."""
    if previous_sql:
        return (
            "The previous SQL failed to execute in SQLite.\n\n"
            f"Previous SQL:\n{previous_sql}\n\n"
            f"SQLite error:\n{previous_error}\n\n"
            "Please return a corrected SQL query for the same question. "
            f"{REPAIR_REMINDER}"
        )
    return (
        "The previous attempt did not produce a usable SQL query.\n\n"
        f"Error:\n{previous_error}\n\n"
        "Please return a SQL query for the same question. "
        f"{REPAIR_REMINDER}"
    )


def answer_messages(question: str, sql: str, row_count: int, rows_json: str) -> list[ChatMessage]:
    """Single system message asking for a prose answer grounded in the result rows."""
    prompt = "\n".join(
        [
            *ANSWER_INSTRUCTIONS,
            "",
            f"User question: {question}",
            "",
            "SQL used:",
            sql,
            "",
            f"Row count: {row_count}",
            "Rows (JSON preview):",
            rows_json,
        ]
    )
    return [ChatMessage(role="system", content=prompt)]
