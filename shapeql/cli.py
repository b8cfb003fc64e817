"""shapeQL command line.

Compiles one statement described by JSON arguments and prints the SQL and
its parameters, or runs it against an SQLite database file.

Usage
-----
Compile a select::

    shapeql select users --columns '["id [Int]", "name"]' --where '{"age[>]": 30}'

Show the statement with literals inlined (for reading, never for running)::

    shapeql select users --where '{"name[~]": "ad"}' --inline

Run it against SQLite and print the mapped rows::

    shapeql select users --columns '["id [Int]", "name"]' --sqlite app.db

Raw fragments are written as ``{"$raw": "SQL", "$map": {...}}``.
"""
from __future__ import annotations

import argparse
import json
import logging
import sqlite3
import sys
from typing import Any

from shapeql.compile.base import CompiledSQL
from shapeql.database import Database
from shapeql.errors import ShapeQLError
from shapeql.execute.dbapi import DBAPIExecutor
from shapeql.operations import OperationKind
from shapeql.schema.raw import Raw

_WRITE_VERBS = ("insert", "update", "delete", "replace")
_READ_VERBS = tuple(kind.value for kind in OperationKind) + ("rand",)


def _decode(text: str | None) -> Any:
    if text is None:
        return None
    return json.loads(text, object_hook=_raw_hook)


def _raw_hook(obj: dict[str, Any]) -> Any:
    if "$raw" in obj and set(obj) <= {"$raw", "$map"}:
        return Raw(obj["$raw"], obj.get("$map") or {})
    return obj


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="shapeql",
        description="Compile (or run) a shapeQL statement described in JSON.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    p.add_argument("verb", choices=_READ_VERBS + _WRITE_VERBS)
    p.add_argument("table", help="Target table, optionally 'table(alias)'.")
    p.add_argument("--columns", help="Column specification (JSON); the column for aggregates.")
    p.add_argument("--where", help="Where specification (JSON).")
    p.add_argument("--join", help="Join specification (JSON).")
    p.add_argument("--data", help="Rows for insert, data for update, replacements for replace (JSON).")
    p.add_argument(
        "--dialect", default="sqlite",
        help="Dialect target: sqlite, postgres, mysql or mariadb (default: sqlite).",
    )
    p.add_argument("--prefix", default="", help="Table prefix.")
    p.add_argument(
        "--inline", action="store_true",
        help="Print the statement with literals inlined instead of SQL + params.",
    )
    p.add_argument("--sqlite", metavar="PATH", help="Execute against this SQLite database.")
    p.add_argument("--verbose", "-v", action="store_true", help="Log compiled statements.")
    return p.parse_args(argv)


def _compile(db: Database, args: argparse.Namespace) -> CompiledSQL:
    builder = db.builder
    columns = _decode(args.columns)
    where = _decode(args.where)
    join = _decode(args.join)
    data = _decode(args.data)
    verb = args.verb
    if verb == "select":
        return builder.select(args.table, columns or "*", where, join)
    if verb == "get":
        return builder.get(args.table, columns or "*", where, join)
    if verb == "rand":
        return builder.rand(args.table, columns or "*", where, join)
    if verb == "has":
        return builder.has(args.table, where, join)
    if verb == "insert":
        return builder.insert(args.table, data or [])
    if verb == "update":
        return builder.update(args.table, data or {}, where)
    if verb == "delete":
        return builder.delete(args.table, where)
    if verb == "replace":
        return builder.replace(args.table, data or {}, where)
    return builder.aggregate(verb, args.table, columns, where, join)


def _run(db: Database, args: argparse.Namespace) -> Any:
    columns = _decode(args.columns)
    where = _decode(args.where)
    join = _decode(args.join)
    data = _decode(args.data)
    verb = args.verb
    if verb in ("select", "get", "rand"):
        return getattr(db, verb)(args.table, columns or "*", where, join=join)
    if verb == "has":
        return db.has(args.table, where, join=join)
    if verb == "insert":
        result = db.insert(args.table, data or [])
        return {"affected": result.affected, "id": db.id()}
    if verb == "update":
        return {"affected": db.update(args.table, data or {}, where).affected}
    if verb == "delete":
        return {"affected": db.delete(args.table, where).affected}
    if verb == "replace":
        result = db.replace(args.table, data or {}, where)
        return {"affected": result.affected if result is not None else 0}
    return db.aggregate(verb, args.table, columns, where, join=join)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    connection = None
    try:
        executor = None
        if args.sqlite:
            connection = sqlite3.connect(args.sqlite)
            executor = DBAPIExecutor(connection, paramstyle=sqlite3.paramstyle)
        db = Database(executor, type=args.dialect, prefix=args.prefix)
        if executor is not None:
            print(json.dumps(_run(db, args), indent=2, default=str))
            return 0
        compiled = _compile(db, args)
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON argument: {exc}", file=sys.stderr)
        return 2
    except ShapeQLError as exc:
        print(json.dumps(exc.to_error_response(), indent=2), file=sys.stderr)
        return 1
    finally:
        if connection is not None:
            connection.close()

    if args.inline:
        print(db.generate(compiled.sql, compiled.params))
    else:
        print(json.dumps({"sql": compiled.sql, "params": compiled.params}, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
