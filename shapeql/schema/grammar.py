"""Recursive-descent parsers for the key grammars of shapeQL.

Condition keys, column references, join keys, table references and
write-path keys all share one small character-level :class:`_Scanner`.
Each ``parse_*`` function consumes its whole input or raises a typed
compilation error; nothing is matched partially.

Grammar summary
---------------
::

    ident          := [A-Za-z0-9_]+
    dotted         := ident ("." ident)?
    column_ref     := (dotted | ident ".*" | "*") ws* ("(" ident ")")? ws* ("[" TYPE "]")?
    raw_key        := dotted ws* ("[" TYPE "]")?
    condition_key  := token ("[" OPERATOR "]")?
    logical_key    := ("AND" | "OR") (ws+ "#" .*)?
    column_compare := dotted "[" (">" | ">=" | "<" | "<=" | "=" | "!=") "]" dotted
    join_key       := "[" (">" | "<" | "<>" | "><") "]" ident ws? ("(" ident ")")?
    table_ref      := ident ws* ("(" ident ")")?
    data_key       := dotted ws* ("[" ("JSON" | "+" | "-" | "*" | "/") "]")?
"""
from __future__ import annotations

import string
from collections.abc import Callable
from dataclasses import dataclass

from shapeql.errors import (
    InvalidIdentifierError,
    MalformedColumnError,
    MalformedConditionError,
    MalformedJoinKeyError,
)
from shapeql.schema.column_reference import ColumnReference
from shapeql.schema.expressions import (
    JSON_SUFFIX,
    ColumnComparisonOp,
    ConditionOperator,
    JoinDirection,
    LogicalOp,
    UpdateOperator,
    ValueType,
)

_IDENT_CHARS: frozenset[str] = frozenset(string.ascii_letters + string.digits + "_")

#: Characters allowed in the column token of a condition key; parentheses
#: and ``*`` admit aggregate calls such as ``COUNT(*)``.
_CONDITION_TOKEN_CHARS: frozenset[str] = _IDENT_CHARS | frozenset(".()*")

_CONDITION_OPERATORS: dict[str, ConditionOperator] = {
    op.value.upper(): op for op in ConditionOperator
}


# ---------------------------------------------------------------------------
# Parsed shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConditionKey:
    """A parsed ``column[op]`` condition key.

    Attributes:
        column: The column token (``"age"``, ``"users.age"``, ``"COUNT(*)"``).
        operator: The bracketed operator, or ``None`` for plain equality.
        is_function: ``True`` when ``column`` is an SQL function call that
            must be emitted unquoted.
    """

    column: str
    operator: ConditionOperator | None = None
    is_function: bool = False


@dataclass(frozen=True)
class ColumnComparison:
    """A parsed positional ``left[op]right`` column-to-column comparison."""

    left: str
    operator: ColumnComparisonOp
    right: str


@dataclass(frozen=True)
class JoinKey:
    """A parsed ``[direction]table(alias)`` join key."""

    direction: JoinDirection
    table: str
    alias: str | None = None

    @property
    def qualifier(self) -> str:
        """Name that qualifies the joined table's columns."""
        return self.alias or self.table


@dataclass(frozen=True)
class TableReference:
    """A parsed ``table(alias)`` reference."""

    table: str
    alias: str | None = None

    @property
    def qualifier(self) -> str:
        return self.alias or self.table


@dataclass(frozen=True)
class DataKey:
    """A parsed INSERT / UPDATE key: ``column``, ``column[JSON]`` or ``column[+]``."""

    column: str
    json: bool = False
    operator: UpdateOperator | None = None


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class _Scanner:
    """Character cursor over a single key string."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def rest(self) -> str:
        return self.text[self.pos:]

    def accept(self, literal: str) -> bool:
        if self.text.startswith(literal, self.pos):
            self.pos += len(literal)
            return True
        return False

    def take_while(self, predicate: Callable[[str], bool]) -> str:
        start = self.pos
        while self.pos < len(self.text) and predicate(self.text[self.pos]):
            self.pos += 1
        return self.text[start:self.pos]

    def skip_spaces(self) -> int:
        return len(self.take_while(str.isspace))

    def identifier(self) -> str:
        return self.take_while(lambda c: c in _IDENT_CHARS)

    def dotted(self) -> tuple[str | None, str] | None:
        """Read ``ident`` or ``ident.ident``; ``None`` if no identifier starts here."""
        first = self.identifier()
        if not first:
            return None
        mark = self.pos
        if self.accept("."):
            second = self.identifier()
            if second:
                return first, second
            self.pos = mark
        return None, first

    def bracketed(self) -> str | None:
        """Read ``[...]`` and return its contents, or ``None`` if absent.

        Raises:
            ValueError: If the bracket is not terminated.
        """
        if not self.accept("["):
            return None
        end = self.text.find("]", self.pos)
        if end < 0:
            raise ValueError("unterminated '['")
        content = self.text[self.pos:end]
        self.pos = end + 1
        return content

    def parenthesized_identifier(self) -> str | None:
        """Read ``(ident)``; ``None`` if no ``(`` follows.

        Raises:
            ValueError: If the parentheses do not hold a single identifier.
        """
        if not self.accept("("):
            return None
        name = self.identifier()
        if not name or not self.accept(")"):
            raise ValueError("alias must be written as '(name)'")
        return name


# ---------------------------------------------------------------------------
# Column references
# ---------------------------------------------------------------------------


def parse_column_reference(text: str) -> ColumnReference:
    """Parse ``[table.]column[(alias)][[Type]]``.

    Raises:
        MalformedColumnError: If ``text`` does not follow the grammar.
    """
    if not isinstance(text, str):
        raise MalformedColumnError(text, "column references must be strings")
    s = _Scanner(text.strip())
    try:
        table, column = _column_path(s)
        s.skip_spaces()
        alias = s.parenthesized_identifier()
        s.skip_spaces()
        type_ = _value_type(s.bracketed())
        s.skip_spaces()
    except ValueError as exc:
        raise MalformedColumnError(text, str(exc)) from exc
    if not s.at_end:
        raise MalformedColumnError(text, f"unexpected {s.rest()!r}")
    if column == "*" and (alias or type_):
        raise MalformedColumnError(text, "a wildcard cannot take an alias or a type")
    return ColumnReference(table=table, column=column, alias=alias, type=type_)


def parse_raw_column_key(key: str) -> ColumnReference:
    """Parse the alias key of a Raw column: ``alias[ [Type]]``.

    A ``table.`` qualifier is accepted and dropped; the last segment is the
    output alias.

    Raises:
        MalformedColumnError: If ``key`` does not follow the grammar.
    """
    s = _Scanner(key.strip())
    path = s.dotted()
    if path is None:
        raise MalformedColumnError(key, "a Raw column needs an alias key")
    s.skip_spaces()
    try:
        type_ = _value_type(s.bracketed())
    except ValueError as exc:
        raise MalformedColumnError(key, str(exc)) from exc
    s.skip_spaces()
    if not s.at_end:
        raise MalformedColumnError(key, f"unexpected {s.rest()!r}")
    _, column = path
    return ColumnReference(table=None, column=column, alias=column, type=type_)


def _column_path(s: _Scanner) -> tuple[str | None, str]:
    if s.accept("*"):
        return None, "*"
    first = s.identifier()
    if not first:
        raise ValueError("expected a column name")
    if s.accept("."):
        if s.accept("*"):
            return first, "*"
        second = s.identifier()
        if not second:
            raise ValueError("expected a column name after '.'")
        return first, second
    return None, first


def _value_type(name: str | None) -> ValueType | None:
    if name is None:
        return None
    type_ = ValueType.lookup(name.strip())
    if type_ is None:
        allowed = ", ".join(t.value for t in ValueType)
        raise ValueError(f"unknown type '{name}' (expected one of {allowed})")
    return type_


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


def parse_condition_key(key: str) -> ConditionKey:
    """Parse ``column[op]`` where ``op`` is a :class:`ConditionOperator`.

    Raises:
        MalformedConditionError: On an unknown operator, an unterminated
            bracket, or trailing text.
    """
    s = _Scanner(key)
    token = s.take_while(lambda c: c in _CONDITION_TOKEN_CHARS)
    if not token:
        raise MalformedConditionError(key, "expected a column name")
    operator = None
    try:
        op_text = s.bracketed()
    except ValueError as exc:
        raise MalformedConditionError(key, "unterminated operator bracket") from exc
    if op_text is not None:
        operator = _CONDITION_OPERATORS.get(op_text.upper())
        if operator is None:
            raise MalformedConditionError(key, f"unknown operator '[{op_text}]'")
    if not s.at_end:
        raise MalformedConditionError(key, f"unexpected {s.rest()!r}")
    is_function = "(" in token or ")" in token
    if is_function:
        _check_function_call(token, key)
    return ConditionKey(column=token, operator=operator, is_function=is_function)


def _check_function_call(token: str, key: str) -> None:
    name, _, _ = token.partition("(")
    if not name or any(c not in _IDENT_CHARS for c in name) or not token.endswith(")"):
        raise MalformedConditionError(key, "function keys must look like NAME(args)")
    depth = 0
    for char in token:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                break
    if depth != 0:
        raise MalformedConditionError(key, "unbalanced parentheses")


def parse_logical_key(key: object) -> LogicalOp | None:
    """Return the logical keyword of ``AND`` / ``OR`` / ``OR #comment`` keys."""
    if not isinstance(key, str):
        return None
    for op in LogicalOp:
        s = _Scanner(key)
        if not s.accept(op.value):
            continue
        if s.at_end:
            return op
        if s.skip_spaces() and s.accept("#"):
            return op
    return None


def parse_column_comparison(text: object) -> ColumnComparison | None:
    """Parse ``left[op]right``; ``None`` when ``text`` is not of that shape."""
    if not isinstance(text, str):
        return None
    s = _Scanner(text.strip())
    left = s.dotted()
    if left is None:
        return None
    try:
        op_text = s.bracketed()
    except ValueError:
        return None
    right = s.dotted()
    if op_text is None or right is None or not s.at_end:
        return None
    try:
        operator = ColumnComparisonOp(op_text)
    except ValueError:
        return None
    return ColumnComparison(left=_join_path(left), operator=operator, right=_join_path(right))


def _join_path(path: tuple[str | None, str]) -> str:
    table, column = path
    return f"{table}.{column}" if table else column


# ---------------------------------------------------------------------------
# Tables and joins
# ---------------------------------------------------------------------------


def parse_join_key(key: str) -> JoinKey:
    """Parse ``[direction]table(alias)``.

    Raises:
        MalformedJoinKeyError: If the direction tag is missing or unknown, or
            the remainder is not a table reference.
    """
    s = _Scanner(key.strip())
    try:
        tag = s.bracketed()
    except ValueError as exc:
        raise MalformedJoinKeyError(key, "unterminated direction tag") from exc
    if tag is None:
        raise MalformedJoinKeyError(key)
    try:
        direction = JoinDirection(tag)
    except ValueError as exc:
        raise MalformedJoinKeyError(key, f"unknown join direction '[{tag}]'") from exc
    table = s.identifier()
    if not table:
        raise MalformedJoinKeyError(key, "expected a table name after the direction tag")
    s.skip_spaces()
    try:
        alias = s.parenthesized_identifier()
    except ValueError as exc:
        raise MalformedJoinKeyError(key, str(exc)) from exc
    if not s.at_end:
        raise MalformedJoinKeyError(key, f"unexpected {s.rest()!r}")
    return JoinKey(direction=direction, table=table, alias=alias)


def parse_table_reference(text: str) -> TableReference:
    """Parse ``table`` or ``table(alias)``.

    Raises:
        InvalidIdentifierError: If ``text`` is not a valid table reference.
    """
    if not isinstance(text, str):
        raise InvalidIdentifierError(str(text), kind="table")
    s = _Scanner(text.strip())
    table = s.identifier()
    s.skip_spaces()
    try:
        alias = s.parenthesized_identifier()
    except ValueError as exc:
        raise InvalidIdentifierError(text, kind="table") from exc
    s.skip_spaces()
    if not table or not s.at_end:
        raise InvalidIdentifierError(text, kind="table")
    return TableReference(table=table, alias=alias)


# ---------------------------------------------------------------------------
# Write paths
# ---------------------------------------------------------------------------


def parse_data_key(key: str) -> DataKey:
    """Parse an INSERT / UPDATE key with its optional ``[JSON]`` or ``[op]`` suffix.

    Raises:
        MalformedColumnError: If ``key`` does not follow the grammar.
    """
    if not isinstance(key, str):
        raise MalformedColumnError(key, "column names must be strings", clause="SET")
    s = _Scanner(key.strip())
    path = s.dotted()
    if path is None:
        raise MalformedColumnError(key, "expected a column name", clause="SET")
    s.skip_spaces()
    try:
        suffix = s.bracketed()
    except ValueError as exc:
        raise MalformedColumnError(key, str(exc), clause="SET") from exc
    if not s.at_end:
        raise MalformedColumnError(key, f"unexpected {s.rest()!r}", clause="SET")
    column = _join_path(path)
    if suffix is None:
        return DataKey(column=column)
    if suffix.upper() == JSON_SUFFIX:
        return DataKey(column=column, json=True)
    try:
        return DataKey(column=column, operator=UpdateOperator(suffix))
    except ValueError as exc:
        raise MalformedColumnError(key, f"unknown suffix '[{suffix}]'", clause="SET") from exc
