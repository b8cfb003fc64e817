"""shapeQL – declarative, injection-safe SQL from nested Python structures.

Describe the shape you want; get parameterized SQL and nested results.

Public API
----------
``Database``
    Compile, execute and reshape in one call (``select``, ``get``, ``has``,
    ``count`` / ``avg`` / ``max`` / ``min`` / ``sum``, ``insert``,
    ``update``, ``delete``, ``replace``, transactions and concurrent reads).

``QueryBuilder``
    Compile-only entry point returning :class:`CompiledSQL` for any verb.

``Raw``
    Trusted SQL fragment with ``<table.column>`` identifier placeholders
    and its own parameter map.

Re-exported types
-----------------
``DatabaseConfig``, ``CompiledSQL``, ``Operation``, ``OperationKind``,
the dialect compilers, the executors and all error classes.

Extensibility
-------------
New dialect compilers can be registered via::

    from shapeql.compile.registry import CompilerFactory

    @CompilerFactory.register("oracle")
    class OracleCompiler(SQLCompiler):
        ...

After registration, ``Database(type="oracle")`` picks it up automatically.
"""

from __future__ import annotations

from shapeql.compile.base import CompiledSQL, SQLCompiler
from shapeql.compile.builder import QueryBuilder
from shapeql.compile.context import ParameterCounter
from shapeql.compile.mysql import MySQLCompiler
from shapeql.compile.postgres import PostgresCompiler
from shapeql.compile.registry import CompilerFactory
from shapeql.compile.sqlite import SQLiteCompiler
from shapeql.config import DatabaseConfig
from shapeql.database import Database
from shapeql.errors import (
    AmbiguousWildcardError,
    CompilationError,
    ConfigError,
    DuplicateParameterError,
    ExecutionError,
    InvalidIdentifierError,
    MalformedColumnError,
    MalformedConditionError,
    MalformedJoinKeyError,
    ShapeQLError,
)
from shapeql.execute.base import ExecutionResult, Executor
from shapeql.execute.dbapi import DBAPIExecutor
from shapeql.mapping.data_mapper import ResultMapper
from shapeql.operations import Operation, OperationKind
from shapeql.schema.columns import ColumnTree, parse_columns
from shapeql.schema.expressions import AggregateFunction, ValueType
from shapeql.schema.raw import Raw, raw

# ---------------------------------------------------------------------------
# Register built-in compilers with CompilerFactory
# ---------------------------------------------------------------------------

CompilerFactory.register_class("sqlite", SQLiteCompiler)
CompilerFactory.register_class("postgres", PostgresCompiler, aliases=("postgresql", "pgsql"))
CompilerFactory.register_class("mysql", MySQLCompiler, aliases=("mariadb",))

__all__ = [
    # Facade
    "Database",
    "DatabaseConfig",
    "Operation",
    "OperationKind",
    # Specification types
    "Raw",
    "raw",
    "ColumnTree",
    "parse_columns",
    "ValueType",
    "AggregateFunction",
    # Compilation
    "CompiledSQL",
    "CompilerFactory",
    "ParameterCounter",
    "QueryBuilder",
    "SQLCompiler",
    "MySQLCompiler",
    "PostgresCompiler",
    "SQLiteCompiler",
    # Execution and mapping
    "Executor",
    "ExecutionResult",
    "DBAPIExecutor",
    "ResultMapper",
    # Errors
    "ShapeQLError",
    "ConfigError",
    "CompilationError",
    "InvalidIdentifierError",
    "MalformedConditionError",
    "MalformedColumnError",
    "AmbiguousWildcardError",
    "MalformedJoinKeyError",
    "DuplicateParameterError",
    "ExecutionError",
]
