"""PostgreSQL dialect compiler."""

from __future__ import annotations

from shapeql.compile.base import SQLCompiler
from shapeql.compile.sqlite import case_order


class PostgresCompiler(SQLCompiler):
    """Compiles to PostgreSQL-flavoured SQL.

    ``[~]`` maps to ``ILIKE`` so pattern matches stay case-insensitive as
    they are on MySQL and SQLite.  ``[REGEXP]`` maps to the POSIX ``~``
    operator.
    """

    @property
    def dialect_name(self) -> str:
        return "postgres"

    def like_operator(self) -> str:
        return "ILIKE"

    def regexp_operator(self) -> str:
        return "~"

    def random_function(self) -> str:
        return "RANDOM()"

    def custom_order(self, column_sql: str, literals: list[str]) -> str:
        return case_order(column_sql, literals)
