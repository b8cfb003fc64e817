"""Typed column-reference class.

Replaces ad hoc pattern matching on ``"table.column(alias)[Type]"`` strings
with a single parsed object shared by the projection compiler, the column
map builder and the result mapper.
"""

from __future__ import annotations

from dataclasses import dataclass

from shapeql.schema.expressions import ValueType


@dataclass(frozen=True)
class ColumnReference:
    """A parsed ``[table.]column[(alias)][[Type]]`` reference.

    Attributes:
        table: Table qualifier, or ``None`` for unqualified references.
        column: Column name (``"*"`` for a wildcard).
        alias: Output alias, or ``None``.
        type: Declared result type, or ``None`` when no suffix was given.
    """

    table: str | None
    column: str
    alias: str | None = None
    type: ValueType | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, ref: str) -> ColumnReference:
        """Parse a column reference string from a column specification.

        Raises:
            MalformedColumnError: If ``ref`` does not follow the grammar.
        """
        from shapeql.schema.grammar import parse_column_reference  # avoid circular import

        return parse_column_reference(ref)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def qualified(self) -> bool:
        """True when the reference includes a table qualifier."""
        return self.table is not None

    @property
    def is_wildcard(self) -> bool:
        return self.column == "*"

    @property
    def path(self) -> str:
        """``table.column`` or bare ``column``, without alias or type."""
        if self.table:
            return f"{self.table}.{self.column}"
        return self.column

    @property
    def output_name(self) -> str:
        """The column name the database reports for this selection."""
        return self.alias or self.column

    @property
    def result_type(self) -> ValueType:
        return self.type or ValueType.STRING

    def __str__(self) -> str:
        text = self.path
        if self.alias:
            text += f"({self.alias})"
        if self.type:
            text += f" [{self.type.value}]"
        return text
