"""Clause-level SQL builders.

Each class handles one part of a statement.  Value-bearing builders receive
the statement's shared :class:`~shapeql.compile.context.RuntimeContext` so
every placeholder name is unique across the whole statement.

Classes
-------
ColumnClauseBuilder   - the projection list of ``SELECT <columns>``
FromClauseBuilder     - ``"table" AS "alias"``
JoinClauseBuilder     - ``LEFT JOIN ... USING (...) / ON ...``
WhereClauseBuilder    - ``WHERE ... GROUP BY ... HAVING ... ORDER BY ... LIMIT ...``
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from shapeql.compile.condition_builder import ConditionBuilder
from shapeql.compile.context import CompilationContext, RuntimeContext
from shapeql.compile.raw_splicer import RawSplicer
from shapeql.errors import (
    AmbiguousWildcardError,
    MalformedColumnError,
    MalformedConditionError,
    MalformedJoinKeyError,
)
from shapeql.schema.columns import ColumnNode, ColumnTree, FieldNode, GroupNode, RawNode
from shapeql.schema.expressions import (
    GROUP_KEY,
    HAVING_KEY,
    LIMIT_KEY,
    ORDER_KEY,
    RESERVED_WHERE_KEYS,
)
from shapeql.schema.grammar import JoinKey, TableReference, parse_join_key
from shapeql.schema.raw import Raw

_ORDER_DIRECTIONS = frozenset({"ASC", "DESC"})


class ColumnClauseBuilder:
    """Builds the comma-separated projection list from a :class:`ColumnTree`."""

    def __init__(
        self,
        ctx: CompilationContext,
        runtime: RuntimeContext,
        splicer: RawSplicer,
    ) -> None:
        self._ctx = ctx
        self._runtime = runtime
        self._splicer = splicer

    def build(self, tree: ColumnTree, is_join: bool = False) -> str:
        """Compile ``tree`` to a projection list.

        Raises:
            AmbiguousWildcardError: If ``is_join`` and any column is a wildcard.
        """
        if tree.wildcard:
            if is_join:
                raise AmbiguousWildcardError("*")
            return "*"
        parts: list[str] = []
        if tree.index_key is not None:
            parts.append(self._ctx.quoter.quote_column(tree.index_key))
        for node in tree.nodes:
            parts.extend(self._build_node(node, is_join))
        if not parts:
            raise MalformedColumnError(tree, "no columns selected")
        return ", ".join(parts)

    def _build_node(self, node: ColumnNode, is_join: bool) -> list[str]:
        quoter = self._ctx.quoter
        if isinstance(node, GroupNode):
            parts: list[str] = []
            for child in node.children:
                parts.extend(self._build_node(child, is_join))
            return parts
        if isinstance(node, RawNode):
            sql = self._splicer.splice(node.raw, self._runtime)
            return [f"{sql} AS {quoter.quote_name(node.ref.output_name)}"]
        ref = node.ref
        if ref.is_wildcard:
            if is_join:
                raise AmbiguousWildcardError(str(ref))
            return ["*" if ref.table is None else f"{quoter.quote_table(ref.table)}.*"]
        sql = quoter.quote_column(ref.path)
        if ref.alias:
            sql = f"{sql} AS {quoter.quote_name(ref.alias)}"
        return [sql]


class FromClauseBuilder:
    """Builds the ``"table" AS "alias"`` fragment of the statement target."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, table: TableReference) -> str:
        return self._ctx.quoter.quote_table_reference(table)


class JoinClauseBuilder:
    """Builds the join chain for a ``{"[dir]table(alias)": relation}`` mapping.

    A relation is a column name or list of names (``USING``), or a mapping of
    base-table column to joined-table column (``ON``).  A mapping key that
    contains ``.`` names its own table; other keys are qualified with the
    base table (or its alias).
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, base: TableReference, join: Mapping[str, Any]) -> str:
        if not isinstance(join, Mapping) or not join:
            raise MalformedJoinKeyError(str(join), "joins must be a non-empty mapping")
        quoter = self._ctx.quoter
        fragments = []
        for key, relation in join.items():
            if not isinstance(key, str):
                raise MalformedJoinKeyError(str(key), "join keys must be strings")
            join_key = parse_join_key(key)
            table_sql = quoter.quote_table_reference(
                TableReference(table=join_key.table, alias=join_key.alias)
            )
            condition = self._build_relation(key, base, join_key, relation)
            fragments.append(f"{join_key.direction.sql} JOIN {table_sql} {condition}")
        return " ".join(fragments)

    def _build_relation(
        self, key: str, base: TableReference, join_key: JoinKey, relation: Any
    ) -> str:
        quoter = self._ctx.quoter
        if isinstance(relation, str):
            return f"USING ({quoter.quote_name(relation)})"
        if isinstance(relation, Mapping):
            if not relation:
                raise MalformedJoinKeyError(key, "the ON mapping is empty")
            predicates = []
            for left, right in relation.items():
                if "." in str(left):
                    left_sql = quoter.quote_column(left)
                else:
                    left_sql = f"{quoter.quote_table(base.qualifier)}.{quoter.quote_name(left)}"
                right_sql = f"{quoter.quote_table(join_key.qualifier)}.{quoter.quote_name(right)}"
                predicates.append(f"{left_sql} = {right_sql}")
            return f"ON {' AND '.join(predicates)}"
        if isinstance(relation, Sequence) and not isinstance(relation, (bytes, bytearray)):
            if not relation:
                raise MalformedJoinKeyError(key, "the USING list is empty")
            return f"USING ({', '.join(quoter.quote_name(c) for c in relation)})"
        raise MalformedJoinKeyError(
            key, "a relation must be a column name, a list of names, or a mapping"
        )


class WhereClauseBuilder:
    """Assembles ``WHERE``, ``GROUP BY``, ``HAVING``, ``ORDER BY`` and ``LIMIT``.

    The reserved keys are read from the where specification; everything
    else is compiled as conditions.  Clause order is fixed regardless of the
    order of keys in the mapping.
    """

    def __init__(
        self,
        ctx: CompilationContext,
        runtime: RuntimeContext,
        splicer: RawSplicer,
        conditions: ConditionBuilder,
    ) -> None:
        self._ctx = ctx
        self._runtime = runtime
        self._splicer = splicer
        self._cond = conditions

    def build(self, where: Mapping[Any, Any] | Raw | None) -> str:
        """Return the clause tail, or ``""`` when ``where`` adds nothing."""
        if where is None:
            return ""
        if isinstance(where, Raw):
            return self._splicer.splice(where, self._runtime)
        if not isinstance(where, Mapping):
            raise MalformedConditionError(where, "where must be a mapping or a Raw fragment")

        parts: list[str] = []
        conditions = {k: v for k, v in where.items() if k not in RESERVED_WHERE_KEYS}
        if conditions:
            parts.append(f"WHERE {self._cond.build(conditions)}")

        group = where.get(GROUP_KEY)
        if group:
            parts.append(f"GROUP BY {self._build_group(group)}")

        having = where.get(HAVING_KEY)
        if having:
            if isinstance(having, Raw):
                parts.append(f"HAVING {self._splicer.splice(having, self._runtime)}")
            else:
                parts.append(f"HAVING {self._cond.build(having, clause='HAVING')}")

        order = where.get(ORDER_KEY)
        if order:
            parts.append(f"ORDER BY {self._build_order(order)}")

        limit = where.get(LIMIT_KEY)
        if limit is not None:
            parts.append(self._build_limit(limit))

        return " ".join(parts)

    # ------------------------------------------------------------------

    def _build_group(self, group: Any) -> str:
        quoter = self._ctx.quoter
        if isinstance(group, Raw):
            return self._splicer.splice(group, self._runtime)
        if isinstance(group, str):
            return quoter.quote_column(group)
        if isinstance(group, Sequence):
            return ", ".join(quoter.quote_column(column) for column in group)
        raise MalformedConditionError(
            GROUP_KEY, "GROUP takes a column, a list of columns or a Raw", clause="GROUP BY"
        )

    def _build_order(self, order: Any) -> str:
        if isinstance(order, Raw):
            return self._splicer.splice(order, self._runtime)
        if isinstance(order, str):
            return self._ctx.quoter.quote_column(order)
        if isinstance(order, Mapping):
            return ", ".join(self._build_order_mapping(order))
        if isinstance(order, Sequence):
            parts: list[str] = []
            for item in order:
                if isinstance(item, str):
                    parts.append(self._ctx.quoter.quote_column(item))
                elif isinstance(item, Mapping):
                    parts.extend(self._build_order_mapping(item))
                elif isinstance(item, Raw):
                    parts.append(self._splicer.splice(item, self._runtime))
                else:
                    raise MalformedConditionError(
                        ORDER_KEY, f"unsupported ORDER entry {item!r}", clause="ORDER BY"
                    )
            return ", ".join(parts)
        raise MalformedConditionError(
            ORDER_KEY, "ORDER takes a column, a list, a mapping or a Raw", clause="ORDER BY"
        )

    def _build_order_mapping(self, order: Mapping[Any, Any]) -> list[str]:
        quoter = self._ctx.quoter
        compiler = self._ctx.compiler
        parts = []
        for column, direction in order.items():
            if isinstance(column, int) and isinstance(direction, str):
                parts.append(quoter.quote_column(direction))
                continue
            column_sql = quoter.quote_column(column)
            if isinstance(direction, str) and direction.upper() in _ORDER_DIRECTIONS:
                parts.append(f"{column_sql} {direction.upper()}")
            elif isinstance(direction, (list, tuple)) and direction:
                literals = [compiler.escape_literal(value) for value in direction]
                parts.append(compiler.custom_order(column_sql, literals))
            else:
                raise MalformedConditionError(
                    f"{ORDER_KEY}.{column}",
                    "direction must be 'ASC', 'DESC' or a list of values",
                    clause="ORDER BY",
                )
        return parts

    @staticmethod
    def _build_limit(limit: Any) -> str:
        if _is_count(limit):
            return f"LIMIT {limit}"
        if isinstance(limit, (list, tuple)) and len(limit) == 2 and all(map(_is_count, limit)):
            offset, count = limit
            return f"LIMIT {count} OFFSET {offset}"
        raise MalformedConditionError(
            LIMIT_KEY, "LIMIT takes a count or an [offset, count] pair", clause="LIMIT"
        )


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
