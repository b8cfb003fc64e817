"""Unit tests for placeholder translation and literal inlining."""

from __future__ import annotations

import datetime

import pytest

from shapeql.compile.mysql import MySQLCompiler
from shapeql.compile.sqlite import SQLiteCompiler
from shapeql.execute.binding import ParamStyle, bind_parameters, inline_parameters

SQL = 'SELECT "id" FROM "users" WHERE "age" > :param_0 AND "name" = :param_1'
PARAMS = {"param_0": 30, "param_1": "Ada"}


class TestBindParameters:
    @pytest.mark.parametrize(
        "style, expected_sql, expected_values",
        [
            ("qmark", 'SELECT "id" FROM "users" WHERE "age" > ? AND "name" = ?', [30, "Ada"]),
            ("format", 'SELECT "id" FROM "users" WHERE "age" > %s AND "name" = %s', [30, "Ada"]),
            ("numeric", 'SELECT "id" FROM "users" WHERE "age" > :1 AND "name" = :2', [30, "Ada"]),
            (
                "pyformat",
                'SELECT "id" FROM "users" WHERE "age" > %(param_0)s AND "name" = %(param_1)s',
                PARAMS,
            ),
            ("named", SQL, PARAMS),
        ],
    )
    def test_styles(self, style, expected_sql, expected_values):
        sql, values = bind_parameters(SQL, PARAMS, style)
        assert sql == expected_sql
        assert values == expected_values

    def test_enum_style_accepted(self):
        assert bind_parameters(SQL, PARAMS, ParamStyle.QMARK)[1] == [30, "Ada"]

    def test_unknown_style(self):
        with pytest.raises(ValueError):
            bind_parameters(SQL, PARAMS, "dollar")

    def test_repeated_name_is_bound_per_occurrence(self):
        sql, values = bind_parameters(":a + :a", {"a": 2}, "qmark")
        assert sql == "? + ?"
        assert values == [2, 2]

    def test_quoted_and_commented_tokens_are_skipped(self):
        sql = (
            "SELECT ':a', \":a\", `:a` -- :a\n"
            "/* :a */ FROM t WHERE x = :a"
        )
        bound, values = bind_parameters(sql, {"a": 1}, "qmark")
        assert bound == (
            "SELECT ':a', \":a\", `:a` -- :a\n"
            "/* :a */ FROM t WHERE x = ?"
        )
        assert values == [1]

    def test_postgres_cast_is_not_a_parameter(self):
        bound, values = bind_parameters('"created"::date = :day', {"date": 1, "day": 2}, "qmark")
        assert bound == '"created"::date = ?'
        assert values == [2]

    def test_unknown_token_is_left_alone(self):
        bound, values = bind_parameters("a = :missing AND t = '12:30'", {}, "qmark")
        assert bound == "a = :missing AND t = '12:30'"
        assert values == []

    def test_percent_doubled_only_when_binding(self):
        bound, _ = bind_parameters("x LIKE '%a' AND y = :p", {"p": 1}, "format")
        assert bound == "x LIKE '%%a' AND y = %s"
        bound, values = bind_parameters("SELECT '100%'", {}, "format")
        assert bound == "SELECT '100%'"
        assert values == []

    def test_percent_untouched_for_qmark(self):
        bound, _ = bind_parameters("x LIKE '%a' AND y = :p", {"p": 1}, "qmark")
        assert bound == "x LIKE '%a' AND y = ?"

    def test_backslash_is_ordinary_in_standard_literals(self):
        sql = "x = 'C:\\' AND y = :p AND z = 'it''s :p'"
        bound, values = bind_parameters(sql, {"p": 1}, "qmark")
        assert bound == "x = 'C:\\' AND y = ? AND z = 'it''s :p'"
        assert values == [1]

    def test_backslash_escapes_for_mysql(self):
        sql = "x = 'it\\'s :p' AND y = :p"
        bound, values = bind_parameters(sql, {"p": 1}, "format", backslash_escapes=True)
        assert bound == "x = 'it\\'s :p' AND y = %s"
        assert values == [1]

    def test_doubled_identifier_quote(self):
        bound, _ = bind_parameters('"a"":b" = :b', {"b": 1}, "qmark")
        assert bound == '"a"":b" = ?'


class TestInlineParameters:
    def test_literals_are_escaped(self):
        sql = '"name" = :param_0 AND "id" IN (:param_1) AND "deleted" IS :param_2'
        params = {"param_0": "O'Brien", "param_1": 3, "param_2": None}
        assert inline_parameters(sql, params, SQLiteCompiler().escape_literal) == (
            "\"name\" = 'O''Brien' AND \"id\" IN (3) AND \"deleted\" IS NULL"
        )

    def test_mysql_escapes_backslash(self):
        out = inline_parameters("x = :p", {"p": "a\\b"}, MySQLCompiler().escape_literal)
        assert out == "x = 'a\\\\b'"


class TestEscapeLiteral:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, "NULL"),
            (True, "1"),
            (False, "0"),
            (12, "12"),
            (1.5, "1.5"),
            (datetime.date(2024, 1, 2), "'2024-01-02'"),
            (datetime.datetime(2024, 1, 2, 3, 4, 5), "'2024-01-02 03:04:05'"),
            (b"\x01\xff", "X'01ff'"),
            ("it's", "'it''s'"),
        ],
    )
    def test_values(self, value, expected):
        assert SQLiteCompiler().escape_literal(value) == expected
