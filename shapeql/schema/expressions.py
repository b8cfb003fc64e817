"""Enums and constants for the condition, column and join grammars.

The string forms are exactly what appears inside the square brackets of a
key (``age[>=]``, ``id[Int]``, ``[><]orders``), so parsing is a lookup.
"""
from __future__ import annotations

from enum import Enum

# ---------------------------------------------------------------------------
# Condition operators
# ---------------------------------------------------------------------------


class ConditionOperator(str, Enum):
    """Bracketed operator suffix of a condition key."""

    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    NOT = "!"
    BETWEEN = "<>"
    NOT_BETWEEN = "><"
    LIKE = "~"
    NOT_LIKE = "!~"
    REGEXP = "REGEXP"


class ColumnComparisonOp(str, Enum):
    """Operators allowed in a positional ``col1[op]col2`` comparison."""

    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "="
    NE = "!="


class LogicalOp(str, Enum):
    """Logical grouping keywords (``AND`` / ``OR``, case-sensitive)."""

    AND = "AND"
    OR = "OR"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class ValueType(str, Enum):
    """Declared result type of a selected column (``column[Type]``)."""

    STRING = "String"
    BOOL = "Bool"
    INT = "Int"
    NUMBER = "Number"
    OBJECT = "Object"
    JSON = "JSON"

    @classmethod
    def lookup(cls, name: str) -> ValueType | None:
        """Case-insensitive lookup by bracket name; ``None`` if unknown."""
        return _VALUE_TYPES_BY_NAME.get(name.lower())


_VALUE_TYPES_BY_NAME: dict[str, ValueType] = {t.value.lower(): t for t in ValueType}

# ---------------------------------------------------------------------------
# Joins
# ---------------------------------------------------------------------------


class JoinDirection(str, Enum):
    """Direction tag of a join key (``[>]table``)."""

    LEFT = ">"
    RIGHT = "<"
    FULL = "<>"
    INNER = "><"

    @property
    def sql(self) -> str:
        return _JOIN_SQL[self]


_JOIN_SQL: dict[JoinDirection, str] = {
    JoinDirection.LEFT: "LEFT",
    JoinDirection.RIGHT: "RIGHT",
    JoinDirection.FULL: "FULL",
    JoinDirection.INNER: "INNER",
}

# ---------------------------------------------------------------------------
# Write-path key suffixes
# ---------------------------------------------------------------------------


class UpdateOperator(str, Enum):
    """Arithmetic suffix of an UPDATE key (``score[+]``)."""

    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"


#: Suffix that marks a value as JSON-encoded on write.
JSON_SUFFIX = "JSON"

# ---------------------------------------------------------------------------
# Reserved structural keys of a WhereSpec
# ---------------------------------------------------------------------------

GROUP_KEY = "GROUP"
HAVING_KEY = "HAVING"
ORDER_KEY = "ORDER"
LIMIT_KEY = "LIMIT"

#: Keys that are never compiled as conditions.
RESERVED_WHERE_KEYS: frozenset[str] = frozenset(
    {GROUP_KEY, HAVING_KEY, ORDER_KEY, LIMIT_KEY, "LIKE", "MATCH"}
)

#: Keywords that, directly before a ``<placeholder>``, mark it as a table.
TABLE_KEYWORDS: frozenset[str] = frozenset({"FROM", "TABLE", "INTO", "UPDATE", "JOIN"})

# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


class AggregateFunction(str, Enum):
    """Aggregate functions exposed by ``Database.aggregate``."""

    COUNT = "COUNT"
    AVG = "AVG"
    MAX = "MAX"
    MIN = "MIN"
    SUM = "SUM"
