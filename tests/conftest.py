"""Shared test fixtures for SQLSentry."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest

from sqlsentry import SentrySettings, SQLSentry
from sqlsentry.core.connection import DatabaseConnection
from sqlsentry.core.types import Answer, CandidateQuery, ChatMessage
from sqlsentry.exceptions import GenerationError
from sqlsentry.generation.provider import GenerationProvider
from sqlsentry.query.executor import QueryExecutor

NUTRITION_SCHEMA = """
CREATE TABLE items (
  item_id INTEGER PRIMARY KEY,
  name TEXT NOT NULL,
  item_type TEXT NOT NULL CHECK (item_type IN ('ingredient', 'supplement')),
  brand TEXT,
  serving_size_g REAL
);
CREATE TABLE nutrients (
  nutrient_id INTEGER PRIMARY KEY,
  name TEXT NOT NULL UNIQUE,
  unit TEXT NOT NULL
);
CREATE TABLE item_nutrients (
  item_id INTEGER NOT NULL,
  nutrient_id INTEGER NOT NULL,
  amount_per_100g REAL NOT NULL,
  PRIMARY KEY (item_id, nutrient_id)
);
CREATE TABLE recipes (
  recipe_id INTEGER PRIMARY KEY,
  name TEXT NOT NULL UNIQUE,
  servings REAL NOT NULL DEFAULT 1,
  instructions TEXT
);
CREATE TABLE recipe_items (
  recipe_id INTEGER NOT NULL,
  item_id INTEGER NOT NULL,
  amount_g REAL NOT NULL,
  PRIMARY KEY (recipe_id, item_id)
);
CREATE TABLE meal_logs (
  log_id INTEGER PRIMARY KEY,
  eaten_at TEXT NOT NULL,
  recipe_id INTEGER NOT NULL,
  servings_eaten REAL NOT NULL
);
"""

NUTRITION_SEED = """
INSERT INTO nutrients (nutrient_id, name, unit) VALUES
  (1, 'calories_kcal', 'kcal'),
  (2, 'protein_g', 'g'),
  (3, 'vitamin_c_mg', 'mg');

INSERT INTO items (item_id, name, item_type, brand, serving_size_g) VALUES
  (1, 'Oats', 'ingredient', NULL, 40),
  (2, 'Orange', 'ingredient', NULL, 130),
  (3, 'Greek Yogurt', 'ingredient', 'Fage', 170),
  (4, 'Vitamin C 500', 'supplement', 'NutriCo', 1),
  (5, 'Vitamin C 1000', 'supplement', 'NutriCo', 1.5),
  (6, 'Ester-C', 'supplement', 'American Health', 1.2),
  (7, 'Immune Gummies', 'supplement', 'Vitafusion', 5),
  (8, 'Multivitamin', 'supplement', 'Centrum', 1.3),
  (9, 'Acerola Powder', 'supplement', 'NOW', 2);

INSERT INTO item_nutrients (item_id, nutrient_id, amount_per_100g) VALUES
  (1, 1, 389), (1, 2, 16.9),
  (2, 1, 47), (2, 3, 53.2),
  (3, 1, 97), (3, 2, 9),
  (4, 3, 50000), (5, 3, 66000), (6, 3, 41000),
  (7, 3, 4000), (8, 3, 6900), (9, 3, 17000);

INSERT INTO recipes (recipe_id, name, servings, instructions) VALUES
  (1, 'Overnight Oats', 1, 'Mix and chill.'),
  (2, 'Yogurt Bowl', 1, NULL);

INSERT INTO recipe_items (recipe_id, item_id, amount_g) VALUES
  (1, 1, 50), (1, 3, 100), (2, 3, 170), (2, 2, 65);

INSERT INTO meal_logs (log_id, eaten_at, recipe_id, servings_eaten) VALUES
  (1, datetime('now', '-1 days'), 1, 1),
  (2, datetime('now', '-2 days'), 2, 1.5),
  (3, datetime('now', '-30 days'), 1, 2);
"""

VITAMIN_C_SQL = """SELECT i.name, i.brand, inut.amount_per_100g AS vitamin_c_mg_per_100g
FROM items i
JOIN nutrients n ON n.name = 'vitamin_c_mg'
JOIN item_nutrients inut ON inut.item_id = i.item_id AND inut.nutrient_id = n.nutrient_id
WHERE i.item_type = 'supplement'
ORDER BY vitamin_c_mg_per_100g DESC
LIMIT 5"""


class ScriptedProvider(GenerationProvider):
    """Generation provider that replays queued candidates.

    Queue entries are SQL strings, CandidateQuery instances, or exceptions to raise.
    Every conversation received is kept in `sql_calls` / `answer_calls`.
    """

    def __init__(self) -> None:
        self.sql_script: list[str | CandidateQuery | Exception] = []
        self.answers: list[Answer | Exception] = []
        self.sql_calls: list[list[ChatMessage]] = []
        self.answer_calls: list[list[ChatMessage]] = []
        self.delay_s = 0.0

    def script(self, *items: str | CandidateQuery | Exception) -> ScriptedProvider:
        self.sql_script.extend(items)
        return self

    def answer_with(self, *items: Answer | Exception) -> ScriptedProvider:
        self.answers.extend(items)
        return self

    @property
    def model_name(self) -> str:
        return "scripted"

    async def generate_sql(self, messages: list[ChatMessage]) -> CandidateQuery:
        self.sql_calls.append(messages)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if not self.sql_script:
            raise GenerationError("Script exhausted.")
        item = self.sql_script.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, CandidateQuery):
            return item
        return CandidateQuery(text=item, assumptions=("scripted",))

    async def generate_answer(self, messages: list[ChatMessage]) -> Answer:
        self.answer_calls.append(messages)
        if not self.answers:
            return Answer(answer="Here is what the data shows.", caveats=[])
        item = self.answers.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def seed_nutrition_db(path: Path) -> None:
    """Create and populate a small nutrition database file."""
    conn = sqlite3.connect(path)
    try:
        conn.executescript(NUTRITION_SCHEMA)
        conn.executescript(NUTRITION_SEED)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the developer's environment and .env file out of every test."""
    for field in SentrySettings.model_fields.values():
        if isinstance(field.validation_alias, str):
            monkeypatch.delenv(field.validation_alias, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def nutrition_db(tmp_path: Path) -> str:
    """Path of a seeded nutrition SQLite file."""
    path = tmp_path / "aidb.sqlite"
    seed_nutrition_db(path)
    return str(path)


@pytest.fixture
def connection(nutrition_db: str) -> Generator[DatabaseConnection, None, None]:
    """Read-only handle on the seeded database."""
    conn = DatabaseConnection(nutrition_db)
    yield conn
    conn.close()


@pytest.fixture
def executor(connection: DatabaseConnection) -> QueryExecutor:
    return QueryExecutor(connection, statement_timeout_s=5.0)


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def settings(nutrition_db: str) -> SentrySettings:
    return SentrySettings(
        database=nutrition_db,
        generation_timeout_s=5.0,
        request_deadline_s=10.0,
        statement_timeout_s=5.0,
    )


@pytest.fixture
def sentry(
    settings: SentrySettings, provider: ScriptedProvider
) -> Generator[SQLSentry, None, None]:
    """SQLSentry on the seeded database with the scripted provider."""
    instance = SQLSentry(settings, provider=provider)
    yield instance
    instance.close()


@pytest.fixture
def vitamin_c_sql() -> str:
    return VITAMIN_C_SQL
