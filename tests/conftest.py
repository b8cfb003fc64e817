"""Shared pytest fixtures for shapeQL unit and integration tests."""
from __future__ import annotations

import pytest

from shapeql.compile.builder import QueryBuilder
from shapeql.compile.mysql import MySQLCompiler
from shapeql.compile.postgres import PostgresCompiler
from shapeql.compile.sqlite import SQLiteCompiler


@pytest.fixture()
def sq() -> QueryBuilder:
    """Fresh SQLite builder; placeholder numbering starts at ``param_0``."""
    return QueryBuilder(SQLiteCompiler())


@pytest.fixture()
def pg() -> QueryBuilder:
    return QueryBuilder(PostgresCompiler())


@pytest.fixture()
def my() -> QueryBuilder:
    return QueryBuilder(MySQLCompiler())
