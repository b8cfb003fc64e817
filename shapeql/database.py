"""The ``Database`` facade: compile, execute and reshape in one call.

``Database`` owns one :class:`~shapeql.compile.builder.QueryBuilder` (and so
one placeholder counter), one :class:`~shapeql.execute.base.Executor`, and the
statement history.  Every verb follows the same path::

    spec  ──QueryBuilder──▶  CompiledSQL  ──Executor──▶  rows  ──ResultMapper──▶  result

Example::

    import sqlite3
    from shapeql import Database
    from shapeql.execute import DBAPIExecutor

    db = Database(DBAPIExecutor(sqlite3.connect(":memory:")), type="sqlite")
    db.insert("users", [{"name": "ada", "age": 36}, {"name": "alan", "age": 41}])
    db.select("users", ["id [Int]", "name"], {"age[>]": 40})
    # [{'id': 2, 'name': 'alan'}]
"""
from __future__ import annotations

import logging
import math
import threading
from collections import deque
from collections.abc import Callable, Iterator, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

from shapeql.compile.base import CompiledSQL
from shapeql.compile.builder import JoinSpec, QueryBuilder, WhereSpec
from shapeql.compile.registry import CompilerFactory
from shapeql.config import DatabaseConfig
from shapeql.errors import ExecutionError
from shapeql.execute.base import ExecutionResult, Executor
from shapeql.execute.binding import inline_parameters
from shapeql.mapping.data_mapper import ResultMapper
from shapeql.operations import Operation, OperationKind
from shapeql.schema.columns import ColumnSpec, ColumnTree
from shapeql.schema.expressions import LIMIT_KEY, ORDER_KEY, AggregateFunction
from shapeql.schema.raw import Raw

logger = logging.getLogger(__name__)


class Database:
    """Medoo-style data access over a pluggable executor.

    Args:
        executor: Runs compiled statements.  May be ``None`` for a
            compile-only instance; executing verbs then raise
            :class:`~shapeql.errors.ExecutionError` unless in debug mode.
        config: A prepared :class:`~shapeql.config.DatabaseConfig`.
        **options: Config fields (``type``, ``prefix``, ``logging``,
            ``log_size``) when ``config`` is not given.

    Raises:
        ConfigError: If ``options`` are invalid.
        CompilationError: If ``type`` names no registered dialect.
    """

    def __init__(
        self,
        executor: Executor | None = None,
        config: DatabaseConfig | None = None,
        **options: Any,
    ) -> None:
        self._config = config or DatabaseConfig.from_options(**options)
        self._executor = executor
        self._builder = QueryBuilder(
            CompilerFactory.create(self._config.type), prefix=self._config.prefix
        )
        size = self._config.log_size if self._config.logging else 1
        self._logs: deque[tuple[str, dict[str, Any]]] = deque(maxlen=size)
        self._state = threading.local()
        self._lock = threading.Lock()
        self._last_error: ExecutionError | None = None
        self._last_insert_id: Any = None

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def builder(self) -> QueryBuilder:
        return self._builder

    @property
    def executor(self) -> Executor | None:
        return self._executor

    # ------------------------------------------------------------------
    # Raw execution and diagnostics
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> ExecutionResult | str:
        """Execute ``sql`` with ``:name`` placeholders bound from ``params``.

        In debug mode nothing is executed; the statement is returned with
        its parameters inlined.

        Raises:
            ExecutionError: If there is no executor or the driver fails.
        """
        params = dict(params or {})
        if getattr(self._state, "debug", False):
            self._state.debug = False
            statement = self.generate(sql, params)
            logger.info("Dry run: %s", statement)
            return statement

        with self._lock:
            self._logs.append((sql, params))
            self._last_error = None
        if self._executor is None:
            error = ExecutionError("No executor is configured.", sql=sql)
            self._fail(error)
            raise error
        logger.debug("Executing %s", sql)
        try:
            return self._executor.execute(sql, params)
        except ExecutionError as exc:
            self._fail(exc)
            raise

    def query(self, raw: Raw) -> list[dict[str, Any]] | str:
        """Execute a Raw statement (``<placeholders>`` expanded) and return its rows."""
        compiled = self._builder.raw(raw)
        result = self._run(compiled)
        if isinstance(result, str):
            return result
        return result.rows

    def debug(self) -> Database:
        """Dry-run the next statement issued on this thread."""
        self._state.debug = True
        return self

    def generate(self, sql: str, params: Mapping[str, Any]) -> str:
        """Return ``sql`` with each placeholder replaced by its escaped literal."""
        compiler = self._builder.compiler
        return inline_parameters(
            sql, params, compiler.escape_literal, backslash_escapes=compiler.backslash_escapes
        )

    def error(self) -> ExecutionError | None:
        """The error raised by the most recent statement, if it failed."""
        return self._last_error

    def id(self) -> Any:
        """The driver's last insert id from the most recent :meth:`insert`."""
        return self._last_insert_id

    def last(self) -> str | None:
        """The most recently executed statement with parameters inlined."""
        with self._lock:
            if not self._logs:
                return None
            sql, params = self._logs[-1]
        return self.generate(sql, params)

    def log(self) -> list[str]:
        """Every statement kept in the history, with parameters inlined."""
        with self._lock:
            entries = list(self._logs)
        return [self.generate(sql, params) for sql, params in entries]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        columns: ColumnSpec | None = "*",
        where: WhereSpec = None,
        *,
        join: JoinSpec = None,
    ) -> list[Any] | dict[Any, Any] | str:
        """Select rows and reshape them according to ``columns``.

        Returns:
            Rows as dicts for ``"*"``; a list of values for one column
            string; a dict keyed by the index column for a single-key root
            mapping; otherwise a list of (possibly nested) result dicts.
        """
        compiled = self._builder.select(table, columns, where, join)
        result = self._run(compiled)
        if isinstance(result, str):
            return result
        return self._mapper(compiled).map_rows(result.rows)

    def get(
        self,
        table: str,
        columns: ColumnSpec | None = "*",
        where: WhereSpec = None,
        *,
        join: JoinSpec = None,
    ) -> Any:
        """Select the first matching row (or value), or ``None``."""
        compiled = self._builder.get(table, columns, where, join)
        result = self._run(compiled)
        if isinstance(result, str):
            return result
        if not result.rows:
            return None
        mapper = self._mapper(compiled)
        row = result.rows[0]
        tree = compiled.columns
        if tree is not None and tree.single:
            return mapper.map_value(row)
        return mapper.map_row(row)

    def has(self, table: str, where: WhereSpec = None, *, join: JoinSpec = None) -> bool | str:
        """Whether any row matches."""
        result = self._run(self._builder.has(table, where, join))
        if isinstance(result, str):
            return result
        value = _first_value(result)
        return value in (1, "1", True) or (isinstance(value, str) and value.lower() == "t")

    def rand(
        self,
        table: str,
        columns: ColumnSpec | None = "*",
        where: WhereSpec = None,
        *,
        join: JoinSpec = None,
    ) -> list[Any] | dict[Any, Any] | str:
        """Like :meth:`select` with rows in random order."""
        compiled = self._builder.rand(table, columns, where, join)
        result = self._run(compiled)
        if isinstance(result, str):
            return result
        return self._mapper(compiled).map_rows(result.rows)

    def aggregate(
        self,
        function: AggregateFunction | str,
        table: str,
        column: str | Raw | None = None,
        where: WhereSpec = None,
        *,
        join: JoinSpec = None,
    ) -> int | float | str | None:
        """Run one aggregate; numeric results are converted to ``int`` / ``float``."""
        result = self._run(self._builder.aggregate(function, table, column, where, join))
        if isinstance(result, str):
            return result
        return _to_number(_first_value(result))

    def count(self, table: str, column: str | None = None, where: WhereSpec = None, *, join: JoinSpec = None) -> Any:
        return self.aggregate(AggregateFunction.COUNT, table, column, where, join=join)

    def avg(self, table: str, column: str, where: WhereSpec = None, *, join: JoinSpec = None) -> Any:
        return self.aggregate(AggregateFunction.AVG, table, column, where, join=join)

    def max(self, table: str, column: str, where: WhereSpec = None, *, join: JoinSpec = None) -> Any:
        return self.aggregate(AggregateFunction.MAX, table, column, where, join=join)

    def min(self, table: str, column: str, where: WhereSpec = None, *, join: JoinSpec = None) -> Any:
        return self.aggregate(AggregateFunction.MIN, table, column, where, join=join)

    def sum(self, table: str, column: str, where: WhereSpec = None, *, join: JoinSpec = None) -> Any:
        return self.aggregate(AggregateFunction.SUM, table, column, where, join=join)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(
        self, table: str, rows: Mapping[str, Any] | Sequence[Mapping[str, Any]]
    ) -> ExecutionResult | str:
        """Insert one or more rows; :meth:`id` returns the last insert id afterwards."""
        result = self._run(self._builder.insert(table, rows))
        if isinstance(result, ExecutionResult):
            self._last_insert_id = result.last_insert_id
        return result

    def update(self, table: str, data: Mapping[str, Any], where: WhereSpec = None) -> ExecutionResult | str:
        return self._run(self._builder.update(table, data, where))

    def delete(self, table: str, where: WhereSpec) -> ExecutionResult | str:
        """Delete matching rows.  ``where`` is required; pass ``{}`` to delete all."""
        return self._run(self._builder.delete(table, where))

    def replace(
        self,
        table: str,
        columns: Mapping[str, Mapping[Any, Any]],
        where: WhereSpec = None,
    ) -> ExecutionResult | str | None:
        """In-string replacement; returns ``None`` when there is nothing to replace."""
        if not any(isinstance(v, Mapping) and v for v in columns.values()):
            return None
        return self._run(self._builder.replace(table, columns, where))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin(self) -> None:
        self._require_executor().begin()
        self._state.transaction = True

    def commit(self) -> None:
        try:
            self._require_executor().commit()
        finally:
            self._state.transaction = False

    def rollback(self) -> None:
        try:
            self._require_executor().rollback()
        finally:
            self._state.transaction = False

    def in_transaction(self) -> bool:
        """Whether the calling thread has an open transaction."""
        return getattr(self._state, "transaction", False)

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Commit when the block exits normally, roll back when it raises."""
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def action(self, fn: Callable[[Database], Any]) -> Any:
        """Run ``fn(self)`` in a transaction.

        The transaction is rolled back when ``fn`` returns ``False`` (which
        is then returned) or raises (the exception propagates); otherwise it
        is committed and ``fn``'s result returned.
        """
        self.begin()
        try:
            result = fn(self)
        except BaseException:
            self.rollback()
            raise
        if result is False:
            self.rollback()
            return False
        self.commit()
        return result

    # ------------------------------------------------------------------
    # Concurrent helpers
    # ------------------------------------------------------------------

    def run(self, operation: Operation) -> Any:
        """Dispatch one :class:`~shapeql.operations.Operation`."""
        kind = operation.kind
        if kind is OperationKind.SELECT:
            return self.select(operation.table, operation.columns, operation.where, join=operation.join)
        if kind is OperationKind.GET:
            return self.get(operation.table, operation.columns, operation.where, join=operation.join)
        if kind is OperationKind.HAS:
            return self.has(operation.table, operation.where, join=operation.join)
        if kind.aggregate is not None:
            return self.aggregate(
                kind.aggregate, operation.table, operation.columns, operation.where, join=operation.join
            )
        raise ValueError(f"Unsupported operation kind: {kind!r}")

    def parallel(
        self,
        operations: Sequence[Operation],
        *,
        concurrent: bool = True,
        max_workers: int | None = None,
    ) -> list[Any]:
        """Run ``operations`` and return their results in input order.

        With ``concurrent=False`` they run one after another on the calling
        thread.  The first exception raised by any operation propagates.
        Inside a transaction they always run in order on the calling thread.
        """
        if not concurrent or len(operations) < 2 or self.in_transaction():
            return [self.run(op) for op in operations]
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(self.run, operations))

    def batch(
        self, callables: Sequence[Callable[[Database], Any]], *, max_workers: int | None = None
    ) -> list[Any]:
        """Call each ``fn(self)`` concurrently; results keep input order.

        Inside a transaction the callables run in order on the calling thread.
        """
        if not callables:
            return []
        if self.in_transaction():
            return [fn(self) for fn in callables]
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(lambda fn: fn(self), callables))

    def pipeline(self, callables: Sequence[Callable[[Database, Any], Any]]) -> Any:
        """Call ``fn(self, previous_result)`` in order and return the last result."""
        result = None
        for fn in callables:
            result = fn(self, result)
        return result

    def parallel_select(
        self,
        table: str,
        columns: ColumnSpec | None = "*",
        where: Mapping[Any, Any] | None = None,
        *,
        join: JoinSpec = None,
        chunk_size: int = 1000,
        max_parallel: int = 5,
    ) -> list[Any] | dict[Any, Any]:
        """Select a large result as concurrent ``LIMIT``/``OFFSET`` chunks.

        Every chunk is fetched (at most ``max_parallel`` at a time) and the
        results are concatenated in order; indexed results are merged.  Inside a
        transaction the chunks are fetched one after another.
        """
        if chunk_size < 1 or max_parallel < 1:
            raise ValueError("chunk_size and max_parallel must be positive")
        base = {k: v for k, v in (where or {}).items() if k not in (LIMIT_KEY, ORDER_KEY)}
        total = self.count(table, None, base, join=join) or 0
        if total <= chunk_size:
            return self.select(table, columns, where, join=join)

        chunks = math.ceil(total / chunk_size)
        chunk_wheres = [
            {**(where or {}), LIMIT_KEY: [index * chunk_size, chunk_size]} for index in range(chunks)
        ]
        logger.debug("Selecting %d rows from %s in %d chunks", total, table, chunks)
        if self.in_transaction():
            parts = [self.select(table, columns, w, join=join) for w in chunk_wheres]
        else:
            with ThreadPoolExecutor(max_workers=min(chunks, max_parallel)) as pool:
                parts = list(pool.map(lambda w: self.select(table, columns, w, join=join), chunk_wheres))
        if parts and isinstance(parts[0], dict):
            merged: dict[Any, Any] = {}
            for part in parts:
                merged.update(part)
            return merged
        return [item for part in parts for item in part]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, compiled: CompiledSQL) -> ExecutionResult | str:
        return self.execute(compiled.sql, compiled.params)

    def _mapper(self, compiled: CompiledSQL) -> ResultMapper:
        return ResultMapper(compiled.columns or ColumnTree(wildcard=True))

    def _require_executor(self) -> Executor:
        if self._executor is None:
            raise ExecutionError("No executor is configured.")
        return self._executor

    def _fail(self, error: ExecutionError) -> None:
        with self._lock:
            self._last_error = error
        logger.warning("Statement failed: %s (%s)", error, error.sql)


def _first_value(result: ExecutionResult) -> Any:
    if not result.rows:
        return None
    return next(iter(result.rows[0].values()), None)


def _to_number(value: Any) -> int | float | str | None:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        pass
    try:
        return float(value)
    except (TypeError, ValueError):
        return value
