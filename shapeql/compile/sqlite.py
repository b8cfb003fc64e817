"""SQLite dialect compiler."""
from __future__ import annotations

from shapeql.compile.base import SQLCompiler


class SQLiteCompiler(SQLCompiler):
    """Compiles to SQLite-flavoured SQL.

    Note: SQLite has no ``FIELD()``; custom ordering is rendered as a
    ``CASE`` expression.  ``REGEXP`` requires a user function named
    ``regexp`` to be registered on the connection.
    """

    @property
    def dialect_name(self) -> str:
        return "sqlite"

    def like_operator(self) -> str:
        return "LIKE"  # case-insensitive for ASCII by default

    def regexp_operator(self) -> str:
        return "REGEXP"

    def random_function(self) -> str:
        return "RANDOM()"

    def custom_order(self, column_sql: str, literals: list[str]) -> str:
        return case_order(column_sql, literals)


def case_order(column_sql: str, literals: list[str]) -> str:
    """Portable equivalent of MySQL's ``FIELD()`` ranking.

    Values not listed rank first, matching ``FIELD()`` returning ``0``.
    """
    whens = " ".join(
        f"WHEN {literal} THEN {position}" for position, literal in enumerate(literals, start=1)
    )
    return f"CASE {column_sql} {whens} ELSE 0 END"
