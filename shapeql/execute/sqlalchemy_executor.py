"""Executor backed by a SQLAlchemy :class:`~sqlalchemy.engine.Engine`.

Install the optional dependency before using this module::

    pip install "shapeql[sqlalchemy]"

Example::

    from sqlalchemy import create_engine
    from shapeql import Database
    from shapeql.execute.sqlalchemy_executor import SQLAlchemyExecutor

    engine = create_engine("sqlite:///app.db")
    db = Database(SQLAlchemyExecutor(engine), type="sqlite")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from shapeql.errors import ExecutionError
from shapeql.execute.base import ExecutionResult, Executor
from shapeql.execute.binding import bind_parameters

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

_MYSQL_DIALECTS = frozenset({"mysql", "mariadb"})


class SQLAlchemyExecutor(Executor):
    """Runs statements through ``Connection.exec_driver_sql``.

    Statements outside a transaction each run in their own
    ``engine.begin()`` block.  :meth:`begin` checks out a connection for the
    calling thread and keeps it until :meth:`commit` or :meth:`rollback`.
    On MySQL and MariaDB every new DBAPI connection is switched to
    ``ANSI_QUOTES`` so double-quoted identifiers are accepted.  Their string
    literals are scanned with backslash escapes.

    Args:
        engine: The engine to execute on.
    """

    def __init__(self, engine: Engine) -> None:
        from sqlalchemy import event

        self._engine = engine
        self._paramstyle = engine.dialect.paramstyle
        self._backslash_escapes = engine.dialect.name in _MYSQL_DIALECTS
        self._local = threading.local()
        if engine.dialect.name in _MYSQL_DIALECTS:
            event.listen(engine, "connect", _enable_ansi_quotes)

    @property
    def engine(self) -> Engine:
        return self._engine

    def execute(self, sql: str, params: Mapping[str, Any]) -> ExecutionResult:
        from sqlalchemy.exc import SQLAlchemyError

        statement, values = bind_parameters(
            sql, params, self._paramstyle, backslash_escapes=self._backslash_escapes
        )
        connection = self._current()
        try:
            if connection is not None:
                return self._run(connection, statement, values)
            with self._engine.begin() as connection:
                return self._run(connection, statement, values)
        except SQLAlchemyError as exc:
            message = str(getattr(exc, "orig", None) or exc)
            raise ExecutionError(message, sql=sql, driver_error=exc) from exc

    def begin(self) -> None:
        if self._current() is not None:
            raise ExecutionError("A transaction is already open on this thread.")
        connection = self._engine.connect()
        connection.begin()
        self._local.connection = connection
        logger.debug("Transaction started")

    def commit(self) -> None:
        connection = self._take()
        try:
            connection.commit()
        finally:
            connection.close()
        logger.debug("Transaction committed")

    def rollback(self) -> None:
        connection = self._take()
        try:
            connection.rollback()
        finally:
            connection.close()
        logger.debug("Transaction rolled back")

    def close(self) -> None:
        self._engine.dispose()

    # ------------------------------------------------------------------

    def _current(self) -> Connection | None:
        return getattr(self._local, "connection", None)

    def _take(self) -> Connection:
        connection = self._current()
        if connection is None:
            raise ExecutionError("No transaction is open on this thread.")
        self._local.connection = None
        return connection

    @staticmethod
    def _run(connection: Connection, statement: str, values: Any) -> ExecutionResult:
        if isinstance(values, list):
            values = tuple(values)
        if values:
            result = connection.exec_driver_sql(statement, values)
        else:
            result = connection.exec_driver_sql(statement)
        if result.returns_rows:
            rows = [dict(row) for row in result.mappings()]
            return ExecutionResult(rows=rows, affected=len(rows))
        return ExecutionResult(
            affected=max(result.rowcount, 0),
            last_insert_id=getattr(result, "lastrowid", None),
        )


def _enable_ansi_quotes(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("SET SESSION sql_mode = CONCAT(@@sql_mode, ',ANSI_QUOTES')")
    finally:
        cursor.close()
