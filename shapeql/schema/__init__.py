"""shapeQL schema: Raw fragments, grammar enums, parsed keys and column trees."""
from shapeql.schema.column_reference import ColumnReference
from shapeql.schema.columns import (
    ColumnSpec,
    ColumnTree,
    FieldNode,
    GroupNode,
    RawNode,
    parse_columns,
)
from shapeql.schema.expressions import (
    AggregateFunction,
    ColumnComparisonOp,
    ConditionOperator,
    JoinDirection,
    LogicalOp,
    UpdateOperator,
    ValueType,
)
from shapeql.schema.raw import Raw, is_raw, raw

__all__ = [
    "AggregateFunction",
    "ColumnReference",
    "ColumnSpec",
    "ColumnTree",
    "FieldNode",
    "GroupNode",
    "RawNode",
    "parse_columns",
    "ColumnComparisonOp",
    "ConditionOperator",
    "JoinDirection",
    "LogicalOp",
    "UpdateOperator",
    "ValueType",
    "Raw",
    "is_raw",
    "raw",
]
