"""Integration tests: compile → execute → reshape against an in-memory SQLite DB.

Covers every verb of the facade, type coercion of result columns, joins,
grouping, custom ordering, transactions and the concurrent helpers.
"""
from __future__ import annotations

import re
import sqlite3

import pytest

from shapeql import Database, DBAPIExecutor, Operation, Raw
from shapeql.errors import ExecutionError
from tests.fixtures import load_ddl

USERS = [
    {"name": "ada", "email": "ada@example.com", "age": 36, "active": True,
     "score": 9.5, "meta": {"lang": "en"}},
    {"name": "alan", "email": "alan@example.com", "age": 41, "active": True,
     "score": 7.0},
    {"name": "grace", "age": 85, "active": False, "score": 8.25,
     "deleted_at": "2020-01-01"},
]
POSTS = [
    {"author_id": 1, "title": "Notes", "status": "published", "views": 10},
    {"author_id": 1, "title": "Engines", "status": "draft", "views": 3},
    {"author_id": 2, "title": "Computing", "status": "published", "views": 50},
]


def _regexp(pattern: str, value: object) -> bool:
    return value is not None and re.search(pattern, str(value)) is not None


@pytest.fixture()
def conn() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.create_function("REGEXP", 2, _regexp)
    conn.executescript(load_ddl("sqlite"))
    yield conn
    conn.close()


@pytest.fixture()
def db(conn) -> Database:
    db = Database(DBAPIExecutor(conn, paramstyle=sqlite3.paramstyle), type="sqlite")
    db.insert("users", USERS)
    db.insert("posts", POSTS)
    return db


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestSelect:
    def test_typed_columns(self, db):
        rows = db.select(
            "users", ["id [Int]", "name", "active [Bool]", "score [Number]", "meta [JSON]"], {"id": 1}
        )
        assert rows == [
            {"id": 1, "name": "ada", "active": True, "score": 9.5, "meta": {"lang": "en"}}
        ]

    def test_missing_keys_were_inserted_as_null(self, db):
        assert db.get("users", "meta [JSON]", {"name": "alan"}) is None
        assert db.get("users", "email", {"name": "grace"}) is None

    @pytest.mark.parametrize(
        "where, expected",
        [
            ({"age[>]": 40}, ["alan", "grace"]),
            ({"OR": {"age[<]": 40, "active": False}}, ["ada", "grace"]),
            ({"name[~]": "AL"}, ["alan"]),
            ({"name[!~]": "a"}, []),
            ({"id": [1, 3]}, ["ada", "grace"]),
            ({"id[!]": [1, 3]}, ["alan"]),
            ({"email[!]": None}, ["ada", "alan"]),
            ({"deleted_at": None}, ["ada", "alan"]),
            ({"age[<>]": [30, 50]}, ["ada", "alan"]),
            ({"age[><]": [30, 50]}, ["grace"]),
            ({"name[REGEXP]": "^a"}, ["ada", "alan"]),
            ({"score[>=]": Raw("<age> / 5")}, ["ada"]),
        ],
    )
    def test_conditions(self, db, where, expected):
        assert db.select("users", "name", {**where, "ORDER": "id"}) == expected

    def test_limit_and_offset(self, db):
        assert db.select("users", "name", {"ORDER": {"id": "DESC"}, "LIMIT": [1, 1]}) == ["alan"]

    def test_join_with_alias(self, db):
        rows = db.select(
            "posts(p)",
            ["p.title", "users.name(author)"],
            {"p.status": "published", "ORDER": "p.id"},
            join={"[>]users": {"author_id": "id"}},
        )
        assert rows == [
            {"title": "Notes", "author": "ada"},
            {"title": "Computing", "author": "alan"},
        ]

    def test_indexed_result(self, db):
        assert db.select("users", {"id": ["name", "age [Int]"]}, {"active": True}) == {
            1: {"name": "ada", "age": 36},
            2: {"name": "alan", "age": 41},
        }

    def test_nested_result(self, db):
        rows = db.select(
            "users", ["name", {"stats": ["age [Int]", "score [Number]"]}], {"id": 2}
        )
        assert rows == [{"name": "alan", "stats": {"age": 41, "score": 7.0}}]

    def test_group_and_having(self, db):
        rows = db.select(
            "posts",
            ["author_id [Int]", {"total [Int]": Raw("COUNT(<id>)")}],
            {"GROUP": "author_id", "HAVING": {"COUNT(id)[>]": 1}},
        )
        assert rows == [{"author_id": 1, "total": 2}]

    def test_custom_order(self, db):
        titles = db.select(
            "posts", "title", {"ORDER": [{"status": ["draft", "published"]}, "id"]}
        )
        assert titles == ["Engines", "Notes", "Computing"]

    def test_rand_returns_every_row(self, db):
        assert sorted(db.rand("users", "name")) == ["ada", "alan", "grace"]

    def test_backslash_literal_does_not_hide_parameters(self, db):
        where = {"name[!]": Raw("'C:\\'"), "age[>]": 40, "ORDER": "id"}
        assert db.select("users", "name", where) == ["alan", "grace"]

    def test_raw_query(self, db):
        rows = db.query(
            Raw("SELECT <name> FROM <users> WHERE <age> > :min ORDER BY <id>", {"min": 40})
        )
        assert rows == [{"name": "alan"}, {"name": "grace"}]


class TestScalars:
    def test_get_and_has(self, db):
        assert db.get("users", ["id [Int]", "name"], {"email[~]": "alan"}) == {"id": 2, "name": "alan"}
        assert db.get("users", "name", {"name": "nobody"}) is None
        assert db.has("users", {"name": "ada"}) is True
        assert db.has("users", {"name": "nobody"}) is False

    def test_aggregates(self, db):
        assert db.count("users") == 3
        assert db.count("users", None, {"active": True}) == 2
        assert db.max("users", "age") == 85
        assert db.min("users", "age") == 36
        assert db.avg("users", "age") == 54.0
        assert db.sum("posts", "views") == 63
        assert db.max("users", "age", {"name": "nobody"}) is None

    def test_aggregate_over_join(self, db):
        total = db.sum(
            "posts", "posts.views", {"users.name": "ada"}, join={"[><]users": {"author_id": "id"}}
        )
        assert total == 13


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestWrites:
    def test_insert_sets_id(self, db):
        result = db.insert("users", {"name": "linus", "age": 20})
        assert result.affected == 1
        assert db.id() == 4

    def test_update_arithmetic(self, db):
        result = db.update("posts", {"views[+]": 5}, {"id": 1})
        assert result.affected == 1
        assert db.get("posts", "views [Int]", {"id": 1}) == 15
        db.update("posts", {"views[*]": 2}, {"id": 1})
        assert db.get("posts", "views [Int]", {"id": 1}) == 30

    def test_update_json_and_bool(self, db):
        db.update("users", {"meta": {"lang": "fr"}, "active": False}, {"id": 1})
        assert db.get("users", ["meta [JSON]", "active [Bool]"], {"id": 1}) == {
            "meta": {"lang": "fr"},
            "active": False,
        }

    def test_replace(self, db):
        db.replace("posts", {"title": {"Notes": "Memos", "o": "0"}}, {"id": 1})
        assert db.get("posts", "title", {"id": 1}) == "Mem0s"

    def test_delete(self, db):
        assert db.delete("posts", {"author_id": 1}).affected == 2
        assert db.count("posts") == 1


# ---------------------------------------------------------------------------
# Transactions and diagnostics
# ---------------------------------------------------------------------------


class TestTransactions:
    def test_action_false_rolls_back(self, db):
        assert db.action(lambda d: d.delete("posts", {}) and False) is False
        assert db.count("posts") == 3

    def test_action_commits(self, db):
        db.action(lambda d: d.delete("posts", {"id": 2}))
        assert db.count("posts") == 2

    def test_transaction_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction():
                db.delete("posts", {})
                raise RuntimeError("abort")
        assert db.count("posts") == 3

    def test_nested_begin_is_rejected(self, db):
        db.begin()
        try:
            with pytest.raises(ExecutionError):
                db.begin()
        finally:
            db.rollback()


class TestDiagnostics:
    def test_driver_error(self, db):
        with pytest.raises(ExecutionError) as exc_info:
            db.select("missing")
        assert "missing" in str(exc_info.value)
        assert db.error() is exc_info.value
        assert isinstance(exc_info.value.driver_error, sqlite3.Error)

    def test_debug_and_last(self, db):
        statement = db.debug().delete("posts", {"title": "Notes"})
        assert statement == "DELETE FROM \"posts\" WHERE \"title\" = 'Notes'"
        assert db.count("posts") == 3
        assert db.last() == 'SELECT COUNT(*) FROM "posts"'


# ---------------------------------------------------------------------------
# Concurrent helpers
# ---------------------------------------------------------------------------


class TestConcurrency:
    def test_parallel(self, db):
        results = db.parallel(
            [
                Operation.count("users"),
                Operation.select("users", "name", {"ORDER": "id"}),
                Operation.max("posts", "views"),
                Operation.has("posts", {"status": "archived"}),
            ]
        )
        assert results == [3, ["ada", "alan", "grace"], 50, False]

    def test_parallel_select(self, db):
        rows = db.parallel_select("users", ["id [Int]"], {"ORDER": "id"}, chunk_size=1)
        assert rows == [{"id": 1}, {"id": 2}, {"id": 3}]

    def test_prefixed_tables(self, conn):
        db = Database(DBAPIExecutor(conn), type="sqlite", prefix="app_")
        db.insert("tags", [{"label": "sql"}, {"label": "python"}])
        assert db.select("tags", "label", {"ORDER": "label"}) == ["python", "sql"]

    def test_helpers_inside_transaction_share_its_connection(self, db):
        def work(d: Database):
            d.delete("posts", {"status": "draft"})
            counts = d.parallel([Operation.count("posts"), Operation.has("posts", {"views[<]": 5})])
            titles = d.parallel_select("posts", "title", {"ORDER": "id"}, chunk_size=1)
            sizes = d.batch([lambda x: x.count("users"), lambda x: x.count("posts")])
            return counts, titles, sizes

        counts, titles, sizes = db.action(work)
        assert counts == [2, False]
        assert titles == ["Notes", "Computing"]
        assert sizes == [3, 2]
        assert db.count("posts") == 2

    def test_helpers_after_rollback_run_concurrently_again(self, db):
        assert db.action(lambda d: d.parallel([Operation.count("posts")] * 2) and False) is False
        assert not db.in_transaction()
        assert db.parallel([Operation.count("users"), Operation.count("posts")]) == [3, 3]
