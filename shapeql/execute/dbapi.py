"""Executor for any DB-API 2.0 connection (sqlite3, psycopg, PyMySQL, ...)."""
from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

from shapeql.errors import ExecutionError
from shapeql.execute.base import ExecutionResult, Executor
from shapeql.execute.binding import ParamStyle, bind_parameters

logger = logging.getLogger(__name__)


class DBAPIExecutor(Executor):
    """Runs statements on one DB-API connection.

    A connection is not safe for concurrent use, so every statement holds a
    re-entrant lock.  :meth:`begin` keeps the lock until :meth:`commit` or
    :meth:`rollback`, which makes a transaction exclusive to the thread that
    opened it; other threads wait.  Outside a transaction each statement is
    committed on its own.

    Args:
        connection: An open DB-API 2.0 connection.
        paramstyle: The driver module's ``paramstyle`` (``sqlite3.paramstyle``
            is ``"qmark"``, psycopg and PyMySQL use ``"pyformat"``).
        backslash_escapes: Set for MySQL / MariaDB connections, whose string
            literals treat a backslash as an escape character.
    """

    def __init__(
        self,
        connection: Any,
        paramstyle: ParamStyle | str = ParamStyle.QMARK,
        *,
        backslash_escapes: bool = False,
    ) -> None:
        self._connection = connection
        self._paramstyle = ParamStyle(str(paramstyle))
        self._backslash_escapes = backslash_escapes
        self._lock = threading.RLock()
        self._in_transaction = False

    @property
    def connection(self) -> Any:
        return self._connection

    def execute(self, sql: str, params: Mapping[str, Any]) -> ExecutionResult:
        statement, values = bind_parameters(
            sql, params, self._paramstyle, backslash_escapes=self._backslash_escapes
        )
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute(statement, values)
                rows = _fetch_rows(cursor)
                rowcount = getattr(cursor, "rowcount", -1)
                result = ExecutionResult(
                    rows=rows,
                    affected=rowcount if rowcount is not None and rowcount >= 0 else len(rows),
                    last_insert_id=getattr(cursor, "lastrowid", None),
                )
                if not self._in_transaction:
                    self._connection.commit()
            except Exception as exc:
                if not self._in_transaction:
                    self._connection.rollback()
                raise ExecutionError(str(exc), sql=sql, driver_error=exc) from exc
            finally:
                cursor.close()
        return result

    def begin(self) -> None:
        self._lock.acquire()
        if self._in_transaction:
            self._lock.release()
            raise ExecutionError("A transaction is already open on this connection.")
        self._in_transaction = True
        logger.debug("Transaction started")

    def commit(self) -> None:
        self._finish(self._connection.commit, "committed")

    def rollback(self) -> None:
        self._finish(self._connection.rollback, "rolled back")

    def close(self) -> None:
        self._connection.close()

    def _finish(self, action: Any, outcome: str) -> None:
        with self._lock:
            if not self._in_transaction:
                raise ExecutionError("No transaction is open.")
            try:
                action()
            finally:
                self._in_transaction = False
                self._lock.release()
        logger.debug("Transaction %s", outcome)


def _fetch_rows(cursor: Any) -> list[dict[str, Any]]:
    if cursor.description is None:
        return []
    names = [column[0] for column in cursor.description]
    return [dict(zip(names, row)) for row in cursor.fetchall()]
