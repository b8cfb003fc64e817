"""Compiles condition trees (WHERE / HAVING bodies) to parameterized SQL.

A condition tree is a mapping (or list of positional entries) whose keys
carry the column and an optional bracketed operator::

    {"age[>=]": 18, "OR": {"role": "admin", "email[~]": "example.com"}}

Every value is bound through :class:`~shapeql.compile.context.RuntimeContext`
and appears in the SQL only as a placeholder token; Raw values are spliced.
"""
from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any, Iterable

from shapeql.compile.context import CompilationContext, RuntimeContext
from shapeql.compile.raw_splicer import RawSplicer
from shapeql.errors import CompilationError, MalformedConditionError
from shapeql.schema.expressions import ConditionOperator, LogicalOp
from shapeql.schema.grammar import (
    parse_column_comparison,
    parse_condition_key,
    parse_logical_key,
)
from shapeql.schema.raw import Raw

#: A LIKE item matching this is used as-is; anything else is wrapped in ``%``.
_WILDCARD_PATTERN = re.compile(r"\[.+\]|[*?!%#^_]")

_COMPARISON_OPERATORS = frozenset(
    {
        ConditionOperator.GT,
        ConditionOperator.GTE,
        ConditionOperator.LT,
        ConditionOperator.LTE,
    }
)


def bind_scalar(value: Any) -> Any:
    """Booleans are bound as ``'1'`` / ``'0'``; everything else unchanged."""
    if isinstance(value, bool):
        return "1" if value else "0"
    return value


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


class ConditionBuilder:
    """Compiles a condition tree to an SQL predicate string.

    Args:
        ctx: Static compilation context (compiler + quoter).
        runtime: Shared parameter accumulator for this statement.
        splicer: Raw fragment splicer.
    """

    def __init__(
        self,
        ctx: CompilationContext,
        runtime: RuntimeContext,
        splicer: RawSplicer,
    ) -> None:
        self._ctx = ctx
        self._runtime = runtime
        self._splicer = splicer

    def build(
        self,
        conditions: Mapping[Any, Any] | Sequence[Any],
        joiner: LogicalOp = LogicalOp.AND,
        clause: str = "WHERE",
    ) -> str:
        """Compile ``conditions``, joining sibling predicates with ``joiner``.

        Raises:
            MalformedConditionError: On an unknown operator, an unsupported
                value shape, or an invalid positional entry.
            InvalidIdentifierError: On an invalid column name.
        """
        fragments: list[str] = []
        for key, value in self._entries(conditions, clause):
            logical = parse_logical_key(key)
            if logical is not None:
                fragments.append(self._build_logical(key, logical, value, joiner, clause))
            elif isinstance(key, int):
                fragments.append(self._build_column_comparison(value, clause))
            else:
                fragments.append(self._build_predicate(key, value, clause))
        if not fragments:
            raise MalformedConditionError(conditions, "condition group is empty", clause=clause)
        return f" {joiner.value} ".join(fragments)

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @staticmethod
    def _entries(conditions: Any, clause: str) -> Iterable[tuple[Any, Any]]:
        if isinstance(conditions, Mapping):
            return conditions.items()
        if _is_sequence(conditions):
            return enumerate(conditions)
        raise MalformedConditionError(
            conditions, "conditions must be a mapping or a list", clause=clause
        )

    def _build_logical(
        self,
        key: str,
        relation: LogicalOp,
        value: Any,
        outer: LogicalOp,
        clause: str,
    ) -> str:
        if isinstance(value, Mapping):
            return f"({self.build(value, relation, clause)})"
        if _is_sequence(value):
            if value and all(isinstance(item, Mapping) for item in value):
                # Each mapping is its own group joined by ``relation``; the
                # groups are combined with the enclosing joiner.
                groups = [f"({self.build(item, relation, clause)})" for item in value]
                return f"({f' {outer.value} '.join(groups)})"
            return f"({self.build(value, relation, clause)})"
        raise MalformedConditionError(
            key, "logical groups need a mapping or a list", clause=clause
        )

    def _build_column_comparison(self, entry: Any, clause: str) -> str:
        comparison = parse_column_comparison(entry)
        if comparison is None:
            raise MalformedConditionError(
                entry,
                "positional entries must compare two columns, e.g. 'a.x[>]b.y'",
                clause=clause,
            )
        quoter = self._ctx.quoter
        return (
            f"{quoter.quote_column(comparison.left)} {comparison.operator.value} "
            f"{quoter.quote_column(comparison.right)}"
        )

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def _build_predicate(self, key: Any, value: Any, clause: str) -> str:
        if not isinstance(key, str):
            raise MalformedConditionError(key, "condition keys must be strings", clause=clause)
        parsed = parse_condition_key(key)
        column = parsed.column if parsed.is_function else self._ctx.quoter.quote_column(parsed.column)
        op = parsed.operator

        if op is None:
            return self._build_equality(key, column, value, clause)
        if op in _COMPARISON_OPERATORS:
            return self._build_comparison(key, column, op, value, clause)
        if op is ConditionOperator.NOT:
            return self._build_not(key, column, value, clause)
        if op in (ConditionOperator.LIKE, ConditionOperator.NOT_LIKE):
            return self._build_like(key, column, value, op is ConditionOperator.NOT_LIKE, clause)
        if op in (ConditionOperator.BETWEEN, ConditionOperator.NOT_BETWEEN):
            return self._build_between(
                key, column, value, op is ConditionOperator.NOT_BETWEEN, clause
            )
        if op is ConditionOperator.REGEXP:
            return self._build_regexp(key, column, value, clause)
        raise CompilationError(f"Unsupported condition operator: '{op.value}'", clause=clause)

    def _build_equality(self, key: str, column: str, value: Any, clause: str) -> str:
        if value is None:
            return f"{column} IS NULL"
        if isinstance(value, Raw):
            return f"{column} = {self._splice(value)}"
        if _is_sequence(value):
            return f"{column} IN ({self._bind_list(key, value, clause)})"
        self._check_scalar(key, value, clause)
        return f"{column} = {self._bind(bind_scalar(value))}"

    def _build_not(self, key: str, column: str, value: Any, clause: str) -> str:
        if value is None:
            return f"{column} IS NOT NULL"
        if isinstance(value, Raw):
            return f"{column} != {self._splice(value)}"
        if _is_sequence(value):
            return f"{column} NOT IN ({self._bind_list(key, value, clause)})"
        self._check_scalar(key, value, clause)
        return f"{column} != {self._bind(bind_scalar(value))}"

    def _build_comparison(
        self, key: str, column: str, op: ConditionOperator, value: Any, clause: str
    ) -> str:
        if isinstance(value, Raw):
            return f"{column} {op.value} {self._splice(value)}"
        if value is None or _is_sequence(value):
            raise MalformedConditionError(
                key, f"'[{op.value}]' needs a single scalar value", clause=clause
            )
        self._check_scalar(key, value, clause)
        return f"{column} {op.value} {self._bind(value)}"

    def _build_like(
        self, key: str, column: str, value: Any, negated: bool, clause: str
    ) -> str:
        connector = LogicalOp.OR
        items = value
        if isinstance(value, Mapping):
            if len(value) != 1:
                raise MalformedConditionError(
                    key, "LIKE groups take a single 'AND' or 'OR' key", clause=clause
                )
            (group_key, items), = value.items()
            try:
                connector = LogicalOp(group_key)
            except ValueError as exc:
                raise MalformedConditionError(
                    key, "LIKE groups take a single 'AND' or 'OR' key", clause=clause
                ) from exc
        if not _is_sequence(items):
            items = [items]
        if not items:
            raise MalformedConditionError(key, "LIKE needs at least one pattern", clause=clause)

        operator = self._ctx.compiler.like_operator()
        if negated:
            operator = f"NOT {operator}"
        fragments = []
        for item in items:
            if isinstance(item, Raw):
                fragments.append(f"{column} {operator} {self._splice(item)}")
                continue
            if item is None or isinstance(item, (Mapping, list, tuple)):
                raise MalformedConditionError(
                    key, "LIKE patterns must be scalar values", clause=clause
                )
            fragments.append(f"{column} {operator} {self._bind(like_pattern(item))}")
        return f"({f' {connector.value} '.join(fragments)})"

    def _build_between(
        self, key: str, column: str, value: Any, negated: bool, clause: str
    ) -> str:
        if not _is_sequence(value) or len(value) != 2:
            raise MalformedConditionError(
                key, "BETWEEN needs a list of exactly two values", clause=clause
            )
        low, high = (self._operand(key, item, clause) for item in value)
        keyword = "NOT BETWEEN" if negated else "BETWEEN"
        return f"({column} {keyword} {low} AND {high})"

    def _build_regexp(self, key: str, column: str, value: Any, clause: str) -> str:
        if value is None or _is_sequence(value):
            raise MalformedConditionError(key, "REGEXP needs a single pattern", clause=clause)
        operator = self._ctx.compiler.regexp_operator()
        return f"{column} {operator} {self._operand(key, value, clause)}"

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def _operand(self, key: str, value: Any, clause: str) -> str:
        if isinstance(value, Raw):
            return self._splice(value)
        self._check_scalar(key, value, clause)
        return self._bind(value)

    def _bind(self, value: Any) -> str:
        name = self._runtime.add_value(value)
        return self._ctx.compiler.param_placeholder(name)

    def _bind_list(self, key: str, values: Sequence[Any], clause: str) -> str:
        if not values:
            raise MalformedConditionError(key, "IN lists must not be empty", clause=clause)
        placeholders = []
        for item in values:
            self._check_scalar(key, item, clause)
            placeholders.append(self._bind(bind_scalar(item)))
        return ", ".join(placeholders)

    def _splice(self, fragment: Raw) -> str:
        return self._splicer.splice(fragment, self._runtime)

    @staticmethod
    def _check_scalar(key: str, value: Any, clause: str) -> None:
        if isinstance(value, (Mapping, set, frozenset, Raw)) or _is_sequence(value):
            raise MalformedConditionError(
                key, f"unsupported value of type {type(value).__name__}", clause=clause
            )


def like_pattern(item: Any) -> str:
    """Wrap ``item`` in ``%`` unless it already carries a wildcard."""
    text = str(item)
    if _WILDCARD_PATTERN.search(text):
        return text
    return f"%{text}%"
