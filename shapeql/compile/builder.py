"""Statement-level compilation: the ``QueryBuilder`` orchestrator.

``QueryBuilder`` wires together focused clause-level sub-builders and
drives the compilation of every statement kind.  All dialect-specific
behaviour is delegated to the injected ``SQLCompiler``; identifier quoting
and the table prefix live in the ``IdentifierQuoter``.

Sub-builder hierarchy
---------------------
QueryBuilder
  ├── RawSplicer           (raw_splicer.py)
  ├── ConditionBuilder     (condition_builder.py)
  ├── ColumnClauseBuilder  (clause_builders.py)
  ├── FromClauseBuilder    (clause_builders.py)
  ├── JoinClauseBuilder    (clause_builders.py)
  └── WhereClauseBuilder   (clause_builders.py)

Runtime context sharing
-----------------------
A single :class:`~shapeql.compile.context.RuntimeContext` is created per
statement and threaded through every sub-builder.  Its names come from the
builder-wide :class:`~shapeql.compile.context.ParameterCounter`, so two
statements compiled by the same builder (even on different threads) never
share a placeholder name.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from shapeql.compile.base import CompiledSQL, SQLCompiler
from shapeql.compile.clause_builders import (
    ColumnClauseBuilder,
    FromClauseBuilder,
    JoinClauseBuilder,
    WhereClauseBuilder,
)
from shapeql.compile.condition_builder import ConditionBuilder, bind_scalar
from shapeql.compile.context import CompilationContext, ParameterCounter, RuntimeContext
from shapeql.compile.quoting import IdentifierQuoter
from shapeql.compile.raw_splicer import RawSplicer
from shapeql.errors import CompilationError, MalformedColumnError
from shapeql.schema.columns import ColumnSpec, ColumnTree, parse_columns
from shapeql.schema.expressions import LIMIT_KEY, ORDER_KEY, AggregateFunction
from shapeql.schema.grammar import DataKey, parse_data_key, parse_table_reference
from shapeql.schema.raw import Raw

logger = logging.getLogger(__name__)

WhereSpec = Mapping[Any, Any] | Raw | None
JoinSpec = Mapping[str, Any] | None


@dataclass
class _SubBuilders:
    splicer: RawSplicer
    conditions: ConditionBuilder
    columns: ColumnClauseBuilder
    table: FromClauseBuilder
    join: JoinClauseBuilder
    where: WhereClauseBuilder


class QueryBuilder:
    """Compiles table / column / where / join specifications to parameterized SQL.

    Args:
        compiler: Dialect-specific compiler instance.
        prefix: Table prefix applied to every table name and qualifier.
        counter: Placeholder name source; a private one is created when
            omitted.  Share a counter between builders only if their
            statements are ever combined.
    """

    def __init__(
        self,
        compiler: SQLCompiler,
        prefix: str = "",
        counter: ParameterCounter | None = None,
    ) -> None:
        self._ctx = CompilationContext(
            compiler=compiler, quoter=IdentifierQuoter(compiler, prefix)
        )
        self._counter = counter or ParameterCounter()

    @property
    def compiler(self) -> SQLCompiler:
        return self._ctx.compiler

    @property
    def quoter(self) -> IdentifierQuoter:
        return self._ctx.quoter

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        columns: ColumnSpec | None = "*",
        where: WhereSpec = None,
        join: JoinSpec = None,
    ) -> CompiledSQL:
        """Compile ``SELECT <columns> FROM <table> <joins> <where>``.

        The returned ``CompiledSQL.columns`` carries the parsed column tree
        used to reshape result rows.

        Raises:
            CompilationError: If any part of the specification is invalid.
        """
        tree = parse_columns(columns)
        runtime = self._runtime()
        subs = self._make_sub_builders(runtime)
        column_sql = subs.columns.build(tree, is_join=bool(join))
        sql = self._select_core(subs, f"SELECT {column_sql}", table, where, join)
        return self._compiled(sql, runtime, tree)

    def get(
        self,
        table: str,
        columns: ColumnSpec | None = "*",
        where: WhereSpec = None,
        join: JoinSpec = None,
    ) -> CompiledSQL:
        """Like :meth:`select` but limited to one row.

        A ``LIMIT`` in ``where`` is replaced; the caller's mapping is not
        modified.
        """
        if isinstance(where, Mapping):
            where = {k: v for k, v in where.items() if k != LIMIT_KEY}
        compiled = self.select(table, columns, where, join)
        compiled.sql = f"{compiled.sql} LIMIT 1"
        return compiled

    def has(self, table: str, where: WhereSpec = None, join: JoinSpec = None) -> CompiledSQL:
        """Compile ``SELECT EXISTS(SELECT 1 FROM ...)``."""
        runtime = self._runtime()
        subs = self._make_sub_builders(runtime)
        inner = self._select_core(subs, "SELECT 1", table, where, join)
        return self._compiled(f"SELECT EXISTS({inner})", runtime)

    def aggregate(
        self,
        function: AggregateFunction | str,
        table: str,
        column: str | Raw | None = None,
        where: WhereSpec = None,
        join: JoinSpec = None,
    ) -> CompiledSQL:
        """Compile ``SELECT <FN>(<column>) FROM ...``.

        ``column`` defaults to ``*``, which only ``COUNT`` accepts.

        Raises:
            CompilationError: On an unknown function or a missing column.
        """
        try:
            if not isinstance(function, AggregateFunction):
                function = AggregateFunction(str(function).upper())
        except ValueError as exc:
            raise CompilationError(f"Unknown aggregate function '{function}'.") from exc
        runtime = self._runtime()
        subs = self._make_sub_builders(runtime)
        if isinstance(column, Raw):
            argument = subs.splicer.splice(column, runtime)
        elif column is None or column == "*":
            if function is not AggregateFunction.COUNT:
                raise CompilationError(f"{function.value} needs a column.", clause="SELECT")
            argument = "*"
        else:
            argument = self.quoter.quote_column(column)
        head = f"SELECT {function.value}({argument})"
        sql = self._select_core(subs, head, table, where, join)
        return self._compiled(sql, runtime)

    def rand(
        self,
        table: str,
        columns: ColumnSpec | None = "*",
        where: WhereSpec = None,
        join: JoinSpec = None,
    ) -> CompiledSQL:
        """Like :meth:`select` with rows in random order (replaces any ``ORDER``)."""
        order = Raw(self.compiler.random_function())
        if isinstance(where, Raw):
            raise CompilationError("rand() needs a mapping where-specification.")
        where = {**(where or {}), ORDER_KEY: order}
        return self.select(table, columns, where, join)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(
        self, table: str, rows: Mapping[str, Any] | Sequence[Mapping[str, Any]]
    ) -> CompiledSQL:
        """Compile a multi-row ``INSERT``.

        The column list is the union of the rows' keys in first-seen order;
        a row missing a key binds ``NULL`` for it.  Mapping and list values
        are JSON-encoded, ``[JSON]`` keys are encoded the same way, booleans
        bind as ``'1'`` / ``'0'`` and Raw values are spliced.

        Raises:
            CompilationError: If there are no rows or no columns.
            MalformedColumnError: On an arithmetic suffix or a bad key.
        """
        if isinstance(rows, Mapping):
            rows = [rows]
        if not rows:
            raise CompilationError("INSERT needs at least one row.", clause="INSERT")

        keys: dict[str, DataKey] = {}
        for row in rows:
            if not isinstance(row, Mapping):
                raise MalformedColumnError(row, "rows must be mappings", clause="INSERT")
            for key in row:
                if key not in keys:
                    data_key = parse_data_key(key)
                    if data_key.operator is not None:
                        raise MalformedColumnError(
                            key, "arithmetic suffixes are only valid in UPDATE", clause="INSERT"
                        )
                    keys[key] = data_key
        if not keys:
            raise CompilationError("INSERT needs at least one column.", clause="INSERT")

        runtime = self._runtime()
        subs = self._make_sub_builders(runtime)
        fields = ", ".join(self.quoter.quote_column(k.column) for k in keys.values())
        stacks = []
        for row in rows:
            values = []
            for key in keys:
                if key not in row:
                    values.append(self._bind(runtime, None))
                elif isinstance(row[key], Raw):
                    values.append(subs.splicer.splice(row[key], runtime))
                else:
                    values.append(self._bind(runtime, _write_value(row[key], keys[key])))
            stacks.append(f"({', '.join(values)})")
        sql = f"INSERT INTO {self.quoter.quote_table(table)} ({fields}) VALUES {', '.join(stacks)}"
        return self._compiled(sql, runtime)

    def update(self, table: str, data: Mapping[str, Any], where: WhereSpec = None) -> CompiledSQL:
        """Compile ``UPDATE <table> SET ... <where>``.

        ``column[+]`` (and ``-``, ``*``, ``/``) keys compile to
        ``"column" = "column" + :param`` and need a numeric value.

        Raises:
            CompilationError: On an empty ``data`` mapping.
            MalformedColumnError: On an arithmetic suffix with a non-numeric
                value or a bad key.
        """
        if not isinstance(data, Mapping) or not data:
            raise CompilationError("UPDATE needs a non-empty data mapping.", clause="SET")
        runtime = self._runtime()
        subs = self._make_sub_builders(runtime)
        assignments = []
        for key, value in data.items():
            data_key = parse_data_key(key)
            column = self.quoter.quote_column(data_key.column)
            if isinstance(value, Raw):
                assignments.append(f"{column} = {subs.splicer.splice(value, runtime)}")
            elif data_key.operator is not None:
                if not _is_number(value):
                    raise MalformedColumnError(
                        key, "arithmetic updates need a numeric value", clause="SET"
                    )
                placeholder = self._bind(runtime, value)
                assignments.append(f"{column} = {column} {data_key.operator.value} {placeholder}")
            else:
                assignments.append(f"{column} = {self._bind(runtime, _write_value(value, data_key))}")
        sql = f"UPDATE {self.quoter.quote_table(table)} SET {', '.join(assignments)}"
        return self._compiled(_append(sql, subs.where.build(where)), runtime)

    def delete(self, table: str, where: WhereSpec = None) -> CompiledSQL:
        """Compile ``DELETE FROM <table> <where>``."""
        runtime = self._runtime()
        subs = self._make_sub_builders(runtime)
        sql = f"DELETE FROM {self.quoter.quote_table(table)}"
        return self._compiled(_append(sql, subs.where.build(where)), runtime)

    def replace(
        self,
        table: str,
        columns: Mapping[str, Mapping[Any, Any]],
        where: WhereSpec = None,
    ) -> CompiledSQL:
        """Compile an ``UPDATE`` of in-string replacements.

        ``{"bio": {"foo": "bar", "x": "y"}}`` compiles to
        ``"bio" = REPLACE(REPLACE("bio", :p0, :p1), :p2, :p3)``.

        Raises:
            CompilationError: If there is nothing to replace.
        """
        if not isinstance(columns, Mapping):
            raise CompilationError("REPLACE needs a mapping of columns.", clause="SET")
        runtime = self._runtime()
        subs = self._make_sub_builders(runtime)
        assignments = []
        for column, replacements in columns.items():
            if not isinstance(replacements, Mapping):
                raise MalformedColumnError(
                    column, "replacements must map old text to new text", clause="SET"
                )
            column_sql = self.quoter.quote_column(column)
            expression = column_sql
            for old, new in replacements.items():
                expression = (
                    f"REPLACE({expression}, {self._bind(runtime, old)}, {self._bind(runtime, new)})"
                )
            if expression != column_sql:
                assignments.append(f"{column_sql} = {expression}")
        if not assignments:
            raise CompilationError("REPLACE has nothing to replace.", clause="SET")
        sql = f"UPDATE {self.quoter.quote_table(table)} SET {', '.join(assignments)}"
        return self._compiled(_append(sql, subs.where.build(where)), runtime)

    def raw(self, statement: Raw) -> CompiledSQL:
        """Compile a whole statement written as a Raw fragment."""
        runtime = self._runtime()
        subs = self._make_sub_builders(runtime)
        return self._compiled(subs.splicer.splice(statement, runtime), runtime)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select_core(
        self,
        subs: _SubBuilders,
        head: str,
        table: str,
        where: WhereSpec,
        join: JoinSpec,
    ) -> str:
        table_ref = parse_table_reference(table)
        sql = f"{head} FROM {subs.table.build(table_ref)}"
        if join:
            sql = f"{sql} {subs.join.build(table_ref, join)}"
        return _append(sql, subs.where.build(where))

    def _runtime(self) -> RuntimeContext:
        return RuntimeContext(counter=self._counter)

    def _bind(self, runtime: RuntimeContext, value: Any) -> str:
        return self.compiler.param_placeholder(runtime.add_value(value))

    def _compiled(
        self, sql: str, runtime: RuntimeContext, tree: ColumnTree | None = None
    ) -> CompiledSQL:
        logger.debug("Compiled %s", sql)
        return CompiledSQL(
            sql=sql,
            params=runtime.params,
            dialect=self.compiler.dialect_name,
            columns=tree,
        )

    def _make_sub_builders(self, runtime: RuntimeContext) -> _SubBuilders:
        """Construct and wire the sub-builder graph for one statement."""
        splicer = RawSplicer(self._ctx.quoter)
        conditions = ConditionBuilder(self._ctx, runtime, splicer)
        return _SubBuilders(
            splicer=splicer,
            conditions=conditions,
            columns=ColumnClauseBuilder(self._ctx, runtime, splicer),
            table=FromClauseBuilder(self._ctx),
            join=JoinClauseBuilder(self._ctx),
            where=WhereClauseBuilder(self._ctx, runtime, splicer, conditions),
        )


def _append(sql: str, tail: str) -> str:
    return f"{sql} {tail}" if tail else sql


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _write_value(value: Any, key: DataKey) -> Any:
    """Encode a written value: containers and ``[JSON]`` keys as JSON, booleans as ``'1'``/``'0'``."""
    if key.json or isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value)
    return bind_scalar(value)
