"""Column map: output column name → (result key, declared type)."""
from __future__ import annotations

from dataclasses import dataclass

from shapeql.schema.columns import ColumnTree, FieldNode, RawNode
from shapeql.schema.expressions import ValueType


@dataclass(frozen=True)
class ColumnMapping:
    """Where a driver column lands in the result object, and as what type."""

    result_key: str
    type: ValueType = ValueType.STRING


#: Keyed by the name the column carries in driver rows (its alias if any).
ColumnMap = dict[str, ColumnMapping]


class ColumnMapBuilder:
    """Derives a :data:`ColumnMap` from a parsed column tree.

    The wildcard tree yields an empty map; rows are then returned unchanged.
    """

    def build(self, tree: ColumnTree) -> ColumnMap:
        column_map: ColumnMap = {}
        if tree.wildcard:
            return column_map
        if tree.index_column is not None:
            column_map[tree.index_column] = ColumnMapping(tree.index_column)
        for node in tree.walk():
            if isinstance(node, FieldNode) and node.ref.is_wildcard:
                continue
            if isinstance(node, (FieldNode, RawNode)):
                name = node.ref.output_name
                column_map[name] = ColumnMapping(name, node.ref.result_type)
        return column_map
