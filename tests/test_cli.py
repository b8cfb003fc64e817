"""Tests for the shapeql command line."""

from __future__ import annotations

import json
import sqlite3

from shapeql.cli import main
from tests.fixtures import load_ddl


def test_compile_select(capsys):
    code = main(["select", "users", "--columns", '["id [Int]", "name"]', "--where", '{"age[>]": 30}'])
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out == {
        "sql": 'SELECT "id", "name" FROM "users" WHERE "age" > :param_0',
        "params": {"param_0": 30},
    }


def test_inline_with_prefix_and_dialect(capsys):
    code = main(
        ["count", "users", "--where", '{"name[~]": "ad"}', "--dialect", "postgres",
         "--prefix", "app_", "--inline"]
    )
    assert code == 0
    assert capsys.readouterr().out.strip() == (
        "SELECT COUNT(*) FROM \"app_users\" WHERE (\"name\" ILIKE '%ad%')"
    )


def test_raw_fragment_argument(capsys):
    code = main(["update", "users", "--data", '{"seen": {"$raw": "<seen> + 1"}}'])
    assert code == 0
    assert json.loads(capsys.readouterr().out)["sql"] == 'UPDATE "users" SET "seen" = "seen" + 1'


def test_compile_error_exit_code(capsys):
    assert main(["select", "users; DROP"]) == 1
    err = json.loads(capsys.readouterr().err)
    assert err["error"] == "INVALID_IDENTIFIER"


def test_invalid_json_exit_code(capsys):
    assert main(["select", "users", "--where", "{not json"]) == 2
    assert "Invalid JSON" in capsys.readouterr().err


def test_run_against_sqlite(tmp_path, capsys):
    path = tmp_path / "app.db"
    conn = sqlite3.connect(path)
    conn.executescript(load_ddl("sqlite"))
    conn.close()

    assert main(["insert", "users", "--data", '[{"name": "ada", "age": 36}]', "--sqlite", str(path)]) == 0
    assert json.loads(capsys.readouterr().out) == {"affected": 1, "id": 1}

    assert main(["select", "users", "--columns", '["id [Int]", "name"]', "--sqlite", str(path)]) == 0
    assert json.loads(capsys.readouterr().out) == [{"id": 1, "name": "ada"}]
