"""Guarded SQL handling for SQLSentry.

Architecture:
    1. Text Normalizer - Rewrites known-bad generator habits before guarding
    2. Safety Guard - Accepts only single, comment-free, read-only statements with a row cap
    3. Query Executor - Runs accepted text on the shared read-only handle
    4. Result Shaper - Caps result previews for responses and prompts

Example:
    verdict = SafetyGuard().validate(TextNormalizer().normalize(sql))
    if verdict.accepted:
        outcome = executor.execute(verdict.normalized_text)
"""

from sqlsentry.query.context import SchemaContextBuilder
from sqlsentry.query.executor import QueryExecutor
from sqlsentry.query.guard import SafetyGuard, validate_sql
from sqlsentry.query.normalizer import TextNormalizer
from sqlsentry.query.shaper import ResultShaper

__all__ = [
    "SafetyGuard",
    "validate_sql",
    "TextNormalizer",
    "QueryExecutor",
    "ResultShaper",
    "SchemaContextBuilder",
]
