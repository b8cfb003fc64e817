"""Tagged read operations for :meth:`Database.parallel <shapeql.database.Database.parallel>`.

Each :class:`Operation` names its verb with an :class:`OperationKind`
member and carries typed arguments, so a batch of reads is plain data::

    db.parallel([
        Operation.select("users", ["id", "name"], {"active": True}),
        Operation.count("orders", where={"status": "open"}),
        Operation.max("orders", "total"),
    ])
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from shapeql.schema.columns import ColumnSpec
from shapeql.schema.expressions import AggregateFunction
from shapeql.schema.raw import Raw


class OperationKind(str, Enum):
    """The read verbs that can be dispatched as an :class:`Operation`."""

    SELECT = "select"
    GET = "get"
    HAS = "has"
    COUNT = "count"
    AVG = "avg"
    MAX = "max"
    MIN = "min"
    SUM = "sum"

    @property
    def aggregate(self) -> AggregateFunction | None:
        """The aggregate function for aggregate kinds, else ``None``."""
        try:
            return AggregateFunction(self.value.upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class Operation:
    """One read to run against a :class:`~shapeql.database.Database`.

    Attributes:
        kind: The verb.
        table: Target table, optionally ``table(alias)``.
        columns: Column specification for ``SELECT`` / ``GET``; the
            aggregated column for aggregate kinds; unused for ``HAS``.
        where: Where specification.
        join: Join specification.
    """

    kind: OperationKind
    table: str
    columns: ColumnSpec | Raw | None = None
    where: Mapping[Any, Any] | Raw | None = None
    join: Mapping[str, Any] | None = None

    @classmethod
    def select(cls, table: str, columns: ColumnSpec = "*", where: Any = None, join: Any = None) -> Operation:
        return cls(OperationKind.SELECT, table, columns, where, join)

    @classmethod
    def get(cls, table: str, columns: ColumnSpec = "*", where: Any = None, join: Any = None) -> Operation:
        return cls(OperationKind.GET, table, columns, where, join)

    @classmethod
    def has(cls, table: str, where: Any = None, join: Any = None) -> Operation:
        return cls(OperationKind.HAS, table, None, where, join)

    @classmethod
    def count(cls, table: str, column: str | None = None, where: Any = None, join: Any = None) -> Operation:
        return cls(OperationKind.COUNT, table, column, where, join)

    @classmethod
    def avg(cls, table: str, column: str, where: Any = None, join: Any = None) -> Operation:
        return cls(OperationKind.AVG, table, column, where, join)

    @classmethod
    def max(cls, table: str, column: str, where: Any = None, join: Any = None) -> Operation:
        return cls(OperationKind.MAX, table, column, where, join)

    @classmethod
    def min(cls, table: str, column: str, where: Any = None, join: Any = None) -> Operation:
        return cls(OperationKind.MIN, table, column, where, join)

    @classmethod
    def sum(cls, table: str, column: str, where: Any = None, join: Any = None) -> Operation:
        return cls(OperationKind.SUM, table, column, where, join)
