"""Unit tests for the Database facade, run against an in-memory fake executor."""

from __future__ import annotations

import re
import threading
from decimal import Decimal
from typing import Any, Callable

import pytest

from shapeql import Database, DatabaseConfig, Operation
from shapeql.errors import CompilationError, ConfigError, ExecutionError
from shapeql.execute.base import ExecutionResult, Executor
from shapeql.schema.raw import Raw

Responder = Callable[[str, dict], ExecutionResult]


class FakeExecutor(Executor):
    """Records every call and answers through ``responder``."""

    def __init__(self, responder: Responder | None = None) -> None:
        self.responder = responder or (lambda sql, params: ExecutionResult())
        self.calls: list[tuple[str, dict]] = []
        self.events: list[str] = []
        self._lock = threading.Lock()

    def execute(self, sql, params):
        with self._lock:
            self.calls.append((sql, dict(params)))
        return self.responder(sql, dict(params))

    def begin(self):
        self.events.append("begin")

    def commit(self):
        self.events.append("commit")

    def rollback(self):
        self.events.append("rollback")


def _rows(*rows: dict) -> Responder:
    return lambda sql, params: ExecutionResult(rows=list(rows), affected=len(rows))


@pytest.fixture()
def fake() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture()
def db(fake) -> Database:
    return Database(fake, type="sqlite")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestConfig:
    def test_options_build_config(self, fake):
        db = Database(fake, type="sqlite", prefix="app_")
        db.select("users", ["id"])
        assert fake.calls[0][0] == 'SELECT "id" FROM "app_users"'

    def test_config_object(self, fake):
        config = DatabaseConfig(type="postgres")
        assert Database(fake, config).builder.compiler.dialect_name == "postgres"

    @pytest.mark.parametrize(
        "options",
        [{"type": "sqlite", "bogus": 1}, {"prefix": "bad-prefix"}, {"log_size": 0}],
    )
    def test_invalid_options(self, options):
        with pytest.raises(ConfigError):
            Database(**options)

    def test_unknown_dialect(self):
        with pytest.raises(CompilationError):
            Database(type="oracle")

    @pytest.mark.parametrize("alias, target", [("MariaDB", "mysql"), ("postgresql", "postgres")])
    def test_type_aliases(self, alias, target):
        assert Database(type=alias).config.type == target


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    def test_select_maps_rows(self, fake, db):
        fake.responder = _rows({"id": "1", "name": "a"}, {"id": "2", "name": "b"})
        assert db.select("users", ["id [Int]", "name"]) == [
            {"id": 1, "name": "a"},
            {"id": 2, "name": "b"},
        ]

    def test_select_single_column(self, fake, db):
        fake.responder = _rows({"email": "a@x"}, {"email": "b@x"})
        assert db.select("users", "email") == ["a@x", "b@x"]

    def test_get(self, fake, db):
        fake.responder = _rows({"id": "4", "meta": '{"a": 1}'})
        assert db.get("users", ["id [Int]", "meta [JSON]"], {"id": 4}) == {"id": 4, "meta": {"a": 1}}
        assert fake.calls[-1][0].endswith("LIMIT 1")

    def test_get_single_value_and_missing_row(self, fake, db):
        fake.responder = _rows({"age": "30"})
        assert db.get("users", "age [Int]") == 30
        fake.responder = _rows()
        assert db.get("users", "age [Int]") is None

    @pytest.mark.parametrize("value, expected", [(1, True), (0, False), ("t", True), ("f", False)])
    def test_has(self, fake, db, value, expected):
        fake.responder = _rows({"exists": value})
        assert db.has("users", {"id": 1}) is expected

    def test_aggregates_convert_numbers(self, fake, db):
        fake.responder = _rows({"c": "3"})
        assert db.count("users") == 3
        fake.responder = _rows({"a": Decimal("2.5")})
        assert db.avg("users", "age") == 2.5
        fake.responder = _rows({"m": Decimal("7")})
        assert db.sum("users", "age") == 7
        fake.responder = _rows({"m": None})
        assert db.max("users", "age") is None
        fake.responder = _rows({"m": "ada"})
        assert db.min("users", "name") == "ada"

    def test_aggregate_helpers_compile_each_function(self, fake, db):
        fake.responder = _rows({"v": 1})
        db.count("users")
        db.avg("users", "age")
        db.max("users", "age", {"active": True})
        db.min("users", "age")
        db.sum("users", "age")
        assert [sql for sql, _ in fake.calls] == [
            'SELECT COUNT(*) FROM "users"',
            'SELECT AVG("age") FROM "users"',
            'SELECT MAX("age") FROM "users" WHERE "active" = :param_0',
            'SELECT MIN("age") FROM "users"',
            'SELECT SUM("age") FROM "users"',
        ]

    def test_rand(self, fake, db):
        fake.responder = _rows({"id": 1})
        assert db.rand("users", ["id [Int]"]) == [{"id": 1}]
        assert fake.calls[0][0] == 'SELECT "id" FROM "users" ORDER BY RANDOM()'

    def test_query_raw(self, fake, db):
        fake.responder = _rows({"n": 1})
        assert db.query(Raw("SELECT COUNT(*) AS n FROM <users>")) == [{"n": 1}]
        assert fake.calls[0][0] == 'SELECT COUNT(*) AS n FROM "users"'


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestWrites:
    def test_insert_records_id(self, fake, db):
        fake.responder = lambda sql, params: ExecutionResult(affected=2, last_insert_id=12)
        result = db.insert("users", [{"name": "a"}, {"name": "b"}])
        assert result.affected == 2
        assert db.id() == 12

    def test_update_and_delete(self, fake, db):
        db.update("users", {"age[+]": 1}, {"id": 3})
        db.delete("users", {"id": 3})
        assert [sql for sql, _ in fake.calls] == [
            'UPDATE "users" SET "age" = "age" + :param_0 WHERE "id" = :param_1',
            'DELETE FROM "users" WHERE "id" = :param_2',
        ]

    def test_replace_with_nothing_to_do(self, fake, db):
        assert db.replace("posts", {"body": {}}) is None
        assert fake.calls == []


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class TestDiagnostics:
    def test_debug_returns_inlined_sql_once(self, fake, db):
        sql = db.debug().select("users", ["id"], {"name": "O'Brien"})
        assert sql == "SELECT \"id\" FROM \"users\" WHERE \"name\" = 'O''Brien'"
        assert fake.calls == []
        db.select("users", ["id"])
        assert len(fake.calls) == 1

    def test_debug_is_per_thread(self, fake, db):
        db.debug()
        other = threading.Thread(target=lambda: db.select("users", ["id"]))
        other.start()
        other.join()
        assert len(fake.calls) == 1
        assert isinstance(db.delete("users", {"id": 1}), str)
        assert len(fake.calls) == 1

    def test_debug_without_executor(self):
        db = Database(type="mysql")
        assert db.debug().count("users") == 'SELECT COUNT(*) FROM "users"'

    def test_last_and_single_entry_log(self, db):
        assert db.last() is None
        db.delete("users", {"id": 1})
        db.delete("users", {"id": 2})
        assert db.last() == 'DELETE FROM "users" WHERE "id" = 2'
        assert db.log() == ['DELETE FROM "users" WHERE "id" = 2']

    def test_log_history_is_bounded(self, fake):
        db = Database(fake, type="sqlite", logging=True, log_size=2)
        for i in range(3):
            db.delete("users", {"id": i})
        assert db.log() == [
            'DELETE FROM "users" WHERE "id" = 1',
            'DELETE FROM "users" WHERE "id" = 2',
        ]

    def test_error_is_recorded_and_cleared(self, fake, db):
        def fail(sql, params):
            raise ExecutionError("no such table: users", sql=sql)

        fake.responder = fail
        with pytest.raises(ExecutionError):
            db.select("users")
        assert str(db.error()) == "no such table: users"
        fake.responder = _rows()
        db.select("users")
        assert db.error() is None

    def test_missing_executor(self):
        db = Database(type="sqlite")
        with pytest.raises(ExecutionError):
            db.select("users")
        assert db.error() is not None
        with pytest.raises(ExecutionError):
            db.begin()


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransactions:
    def test_action_commits(self, fake, db):
        assert db.action(lambda d: d.delete("users", {"id": 1}) and "done") == "done"
        assert fake.events == ["begin", "commit"]

    def test_action_false_rolls_back(self, fake, db):
        assert db.action(lambda d: False) is False
        assert fake.events == ["begin", "rollback"]

    def test_action_exception_rolls_back(self, fake, db):
        def boom(d):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            db.action(boom)
        assert fake.events == ["begin", "rollback"]

    def test_transaction_context(self, fake, db):
        with db.transaction():
            db.delete("users", {"id": 1})
        with pytest.raises(ValueError):
            with db.transaction():
                raise ValueError
        assert fake.events == ["begin", "commit", "begin", "rollback"]


# ---------------------------------------------------------------------------
# Concurrent helpers
# ---------------------------------------------------------------------------


def _by_table(sql: str, params: dict) -> ExecutionResult:
    if sql.startswith("SELECT COUNT"):
        return ExecutionResult(rows=[{"c": 2}])
    if "EXISTS" in sql:
        return ExecutionResult(rows=[{"e": 1}])
    if '"posts"' in sql:
        return ExecutionResult(rows=[{"title": "hello"}])
    return ExecutionResult(rows=[{"id": 1, "name": "a"}])


class TestConcurrency:
    @pytest.mark.parametrize("concurrent", [True, False])
    def test_parallel_keeps_order(self, fake, db, concurrent):
        fake.responder = _by_table
        results = db.parallel(
            [
                Operation.select("users", ["id [Int]", "name"]),
                Operation.count("users"),
                Operation.get("posts", "title"),
                Operation.has("users", {"id": 1}),
            ],
            concurrent=concurrent,
        )
        assert results == [[{"id": 1, "name": "a"}], 2, "hello", True]

    def test_parallel_placeholders_are_unique(self, fake, db):
        db.parallel([Operation.count("users", where={"id": i}) for i in range(20)], max_workers=8)
        names = [name for _, params in fake.calls for name in params]
        assert len(names) == len(set(names)) == 20

    def test_parallel_propagates_errors(self, fake, db):
        with pytest.raises(CompilationError):
            db.parallel([Operation.count("users"), Operation.avg("users", "bad-col")])

    def test_batch_and_pipeline(self, db):
        assert db.batch([lambda d: 1, lambda d: 2, lambda d: 3]) == [1, 2, 3]
        assert db.batch([]) == []
        assert db.pipeline([lambda d, prev: 1, lambda d, prev: prev + 1]) == 2

    def test_parallel_select_chunks(self, fake, db):
        def respond(sql: str, params: dict) -> ExecutionResult:
            if sql.startswith("SELECT COUNT"):
                return ExecutionResult(rows=[{"c": 5}])
            count, offset = map(int, re.search(r"LIMIT (\d+) OFFSET (\d+)", sql).groups())
            ids = range(offset, min(offset + count, 5))
            return ExecutionResult(rows=[{"id": i} for i in ids])

        fake.responder = respond
        result = db.parallel_select(
            "users",
            ["id [Int]"],
            {"active": 1, "ORDER": "id", "LIMIT": 100},
            chunk_size=2,
            max_parallel=2,
        )
        assert result == [{"id": i} for i in range(5)]
        count_sql = fake.calls[0][0]
        assert count_sql.startswith('SELECT COUNT(*) FROM "users" WHERE "active" = ')
        assert "LIMIT" not in count_sql and "ORDER" not in count_sql
        chunk_sql = sorted(sql for sql, _ in fake.calls[1:])
        assert len(chunk_sql) == 3
        assert all('ORDER BY "id" LIMIT 2 OFFSET' in sql for sql in chunk_sql)

    def test_parallel_select_merges_indexed_results(self, fake, db):
        def respond(sql: str, params: dict) -> ExecutionResult:
            if sql.startswith("SELECT COUNT"):
                return ExecutionResult(rows=[{"c": 3}])
            offset = int(re.search(r"OFFSET (\d+)", sql).group(1))
            return ExecutionResult(rows=[{"id": offset, "name": f"u{offset}"}])

        fake.responder = respond
        result = db.parallel_select("users", {"id": ["name"]}, chunk_size=1)
        assert result == {0: {"name": "u0"}, 1: {"name": "u1"}, 2: {"name": "u2"}}

    def test_parallel_select_small_result_is_one_query(self, fake, db):
        fake.responder = lambda sql, params: ExecutionResult(
            rows=[{"c": 1}] if sql.startswith("SELECT COUNT") else [{"id": 1}]
        )
        assert db.parallel_select("users", ["id"], chunk_size=10) == [{"id": 1}]
        assert len(fake.calls) == 2

    def test_parallel_select_rejects_bad_sizes(self, db):
        with pytest.raises(ValueError):
            db.parallel_select("users", chunk_size=0)

    def test_helpers_stay_on_the_transaction_thread(self, fake, db):
        threads: list[int] = []

        def respond(sql: str, params: dict) -> ExecutionResult:
            threads.append(threading.get_ident())
            if sql.startswith("SELECT COUNT"):
                return ExecutionResult(rows=[{"c": 3}])
            return ExecutionResult(rows=[{"id": 1}])

        fake.responder = respond

        def work(d: Database) -> list[Any]:
            return [
                d.parallel([Operation.count("users"), Operation.count("posts")]),
                d.batch([lambda x: x.count("users"), lambda x: x.count("tags")]),
                d.parallel_select("users", ["id [Int]"], chunk_size=1),
            ]

        assert db.action(work) == [[3, 3], [3, 3], [{"id": 1}] * 3]
        assert set(threads) == {threading.get_ident()}
        assert fake.events == ["begin", "commit"]
        assert not db.in_transaction()

    def test_transaction_flag_is_per_thread(self, db):
        seen: list[bool] = []
        with db.transaction():
            assert db.in_transaction()
            worker = threading.Thread(target=lambda: seen.append(db.in_transaction()))
            worker.start()
            worker.join()
        assert seen == [False]
        assert not db.in_transaction()
