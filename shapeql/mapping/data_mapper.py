"""Reshapes flat driver rows into nested, typed result objects.

The mapper walks the same :class:`~shapeql.schema.columns.ColumnTree` that
produced the projection, so every selected column is read from the row
under the exact name the projection gave it.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from shapeql.mapping.column_map import ColumnMap, ColumnMapBuilder, ColumnMapping
from shapeql.schema.columns import ColumnNode, ColumnTree, FieldNode, GroupNode
from shapeql.schema.expressions import ValueType

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


def coerce_value(value: Any, value_type: ValueType, column: str = "") -> Any:
    """Coerce one driver value to ``value_type``.

    ``None`` is returned unchanged for every type.  A value that cannot be
    parsed as its declared ``Int``, ``Number``, ``Object`` or ``JSON`` type
    is returned unchanged, so one bad cell never aborts a result set.
    """
    if value is None or value_type is ValueType.STRING:
        return value
    if value_type is ValueType.BOOL:
        if isinstance(value, (str, bytes)):
            return value not in ("", "0", b"", b"0")
        return bool(value)
    if value_type is ValueType.INT:
        return _to_int(value, column)
    if value_type is ValueType.NUMBER:
        try:
            return float(value)
        except (TypeError, ValueError):
            return _keep(value, value_type, column)
    if value_type in (ValueType.OBJECT, ValueType.JSON):
        if not isinstance(value, (str, bytes, bytearray)):
            return value
        try:
            return json.loads(value)
        except ValueError:
            logger.debug("Column '%s' holds invalid JSON; keeping the raw value", column)
            return value
    return value


def _to_int(value: Any, column: str) -> Any:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return _keep(value, ValueType.INT, column)


def _keep(value: Any, value_type: ValueType, column: str) -> Any:
    logger.warning(
        "Column '%s' value %r is not a valid %s; keeping the raw value", column, value, value_type.value
    )
    return value


class ResultMapper:
    """Maps driver rows according to a column tree.

    Args:
        tree: The parsed column specification of the statement.
        column_map: Precomputed column map; derived from ``tree`` if omitted.
    """

    def __init__(self, tree: ColumnTree, column_map: ColumnMap | None = None) -> None:
        self._tree = tree
        self._column_map = column_map if column_map is not None else ColumnMapBuilder().build(tree)

    @property
    def column_map(self) -> ColumnMap:
        return self._column_map

    def map_rows(self, rows: Sequence[Row]) -> list[Any] | dict[Any, dict[str, Any]]:
        """Map every row.

        Returns:
            - a list of row copies for ``"*"``;
            - a list of scalar values for a single-column specification;
            - a dict keyed by the index column for a single-key root mapping;
            - a list of result objects otherwise.
        """
        tree = self._tree
        if tree.wildcard:
            return [dict(row) for row in rows]
        if tree.single:
            return [self.map_value(row) for row in rows]
        if tree.index_column is not None:
            indexed: dict[Any, dict[str, Any]] = {}
            for row in rows:
                indexed[row.get(tree.index_column)] = self.map_row(row)
            return indexed
        return [self.map_row(row) for row in rows]

    def map_row(self, row: Row) -> dict[str, Any]:
        """Map one row to a (possibly nested) result object."""
        tree = self._tree
        if tree.wildcard:
            return dict(row)
        nodes = tree.nodes
        if tree.index_column is not None:
            (group,) = tree.nodes
            nodes = group.children if isinstance(group, GroupNode) else nodes
        return self._map_nodes(row, nodes)

    def map_value(self, row: Row) -> Any:
        """The coerced value of a single-column specification."""
        (node,) = self._tree.nodes
        return self._read(row, node.ref.output_name)

    def _map_nodes(self, row: Row, nodes: Sequence[ColumnNode]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for node in nodes:
            if isinstance(node, GroupNode):
                result[node.key] = self._map_nodes(row, node.children)
            elif isinstance(node, FieldNode) and node.ref.is_wildcard:
                result.update(row)
            else:
                name = node.ref.output_name
                result[name] = self._read(row, name)
        return result

    def _read(self, row: Row, name: str) -> Any:
        mapping = self._column_map.get(name, ColumnMapping(name))
        return coerce_value(row.get(name), mapping.type, name)
