"""shapeQL compilation layer: table / column / where specifications → parameterized SQL."""
from shapeql.compile.base import CompiledSQL, SQLCompiler
from shapeql.compile.builder import QueryBuilder
from shapeql.compile.context import ParameterCounter
from shapeql.compile.mysql import MySQLCompiler
from shapeql.compile.postgres import PostgresCompiler
from shapeql.compile.registry import CompilerFactory
from shapeql.compile.sqlite import SQLiteCompiler

__all__ = [
    "CompiledSQL",
    "SQLCompiler",
    "QueryBuilder",
    "ParameterCounter",
    "CompilerFactory",
    "MySQLCompiler",
    "PostgresCompiler",
    "SQLiteCompiler",
]
