"""Identifier validation and quoting with the configured table prefix."""
from __future__ import annotations

import re

from shapeql.compile.base import SQLCompiler
from shapeql.errors import InvalidIdentifierError
from shapeql.schema.grammar import TableReference

_IDENTIFIER_PATTERN = re.compile(r"[A-Za-z0-9_]+")


class IdentifierQuoter:
    """Quotes table and column names for one dialect and table prefix.

    Every name is validated against ``[A-Za-z0-9_]+`` before quoting, so a
    quoted identifier can never carry SQL.  Table names (and the table
    segment of a qualified column) receive the prefix; column names do not.

    Args:
        compiler: Supplies the dialect's identifier quoting.
        prefix: Table prefix from the configuration (may be empty).
    """

    def __init__(self, compiler: SQLCompiler, prefix: str = "") -> None:
        self._compiler = compiler
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def quote_name(self, name: str, kind: str = "column") -> str:
        """Quote a bare identifier without applying the prefix."""
        if not isinstance(name, str) or not _IDENTIFIER_PATTERN.fullmatch(name):
            raise InvalidIdentifierError(str(name), kind=kind)
        return self._compiler.quote_identifier(name)

    def quote_table(self, name: str) -> str:
        """``users`` -> ``"prefix_users"``."""
        if not isinstance(name, str) or not _IDENTIFIER_PATTERN.fullmatch(name):
            raise InvalidIdentifierError(str(name), kind="table")
        return self._compiler.quote_identifier(self._prefix + name)

    def quote_column(self, name: str) -> str:
        """``id`` -> ``"id"``; ``users.id`` -> ``"prefix_users"."id"``."""
        if isinstance(name, str) and "." in name:
            table, _, column = name.partition(".")
            if "." in column:
                raise InvalidIdentifierError(name)
            return f"{self.quote_table(table)}.{self.quote_name(column)}"
        return self.quote_name(name)

    def quote_table_reference(self, ref: TableReference) -> str:
        """``users(u)`` -> ``"prefix_users" AS "prefix_u"``."""
        sql = self.quote_table(ref.table)
        if ref.alias:
            sql = f"{sql} AS {self.quote_table(ref.alias)}"
        return sql
