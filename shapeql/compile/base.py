"""Compiler abstractions: CompiledSQL and the SQLCompiler ABC.

The Template Method pattern (GoF) is used:
- ``SQLCompiler`` supplies the ANSI defaults (double-quoted identifiers,
  ``:name`` placeholder tokens, ``FIELD(...)`` custom ordering, standard
  literal escaping).
- ``SQLiteCompiler``, ``PostgresCompiler`` and ``MySQLCompiler`` override
  the dialect-specific steps (LIKE / regex operators, random ordering,
  custom-order rendering, literal escaping).
"""
from __future__ import annotations

import datetime
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from shapeql.schema.columns import ColumnTree


@dataclass
class CompiledSQL:
    """The output of a successful compilation.

    Attributes:
        sql: The compiled SQL string with ``:name`` placeholder tokens.
        params: Values for every placeholder token, in generation order.
        dialect: The target dialect (``'mysql'``, ``'postgres'``, ``'sqlite'``).
        columns: The parsed column specification for read statements whose
            rows are reshaped by the result mapper; ``None`` otherwise.
    """

    sql: str
    params: dict[str, Any]
    dialect: str
    columns: ColumnTree | None = field(default=None, repr=False)


class SQLCompiler(ABC):
    """Abstract base for dialect-specific SQL compilers.

    Subclasses implement the dialect-specific methods; the ``QueryBuilder``
    and its clause builders use this interface via the Strategy / Template
    Method patterns.
    """

    #: Whether a backslash escapes the next character inside string literals.
    backslash_escapes: bool = False

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the canonical dialect name."""

    @abstractmethod
    def like_operator(self) -> str:
        """Return the SQL keyword used by the ``[~]`` / ``[!~]`` operators."""

    @abstractmethod
    def regexp_operator(self) -> str:
        """Return the SQL operator used by the ``[REGEXP]`` operator."""

    @abstractmethod
    def random_function(self) -> str:
        """Return the expression that orders rows randomly."""

    def param_placeholder(self, name: str) -> str:
        """Return the placeholder token for a named parameter.

        Tokens are rewritten to the driver's own style by
        :func:`~shapeql.execute.binding.bind_parameters` at execution time.
        """
        return f":{name}"

    def quote_identifier(self, name: str) -> str:
        """Return an ANSI double-quoted identifier."""
        escaped = name.replace('"', '""')
        return f'"{escaped}"'

    def custom_order(self, column_sql: str, literals: list[str]) -> str:
        """Return an ORDER BY expression ranking ``column_sql`` by ``literals``.

        Args:
            column_sql: Quoted column.
            literals: Already-escaped SQL literals, in the desired order.
        """
        return f"FIELD({column_sql}, {', '.join(literals)})"

    def escape_literal(self, value: Any) -> str:
        """Render ``value`` as an SQL literal.

        Used for ORDER BY custom lists, where placeholders are not valid on
        every driver, and for dry-run output.
        """
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, (datetime.date, datetime.time)):
            value = value.isoformat(sep=" ") if isinstance(value, datetime.datetime) else value.isoformat()
        if isinstance(value, (bytes, bytearray)):
            return f"X'{bytes(value).hex()}'"
        return "'" + self._escape_string(str(value)) + "'"

    def _escape_string(self, text: str) -> str:
        return text.replace("'", "''")
