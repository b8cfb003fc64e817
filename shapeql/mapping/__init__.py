"""shapeQL result mapping: flat driver rows → nested, typed result objects."""
from shapeql.mapping.column_map import ColumnMap, ColumnMapBuilder, ColumnMapping
from shapeql.mapping.data_mapper import ResultMapper, coerce_value

__all__ = [
    "ColumnMap",
    "ColumnMapBuilder",
    "ColumnMapping",
    "ResultMapper",
    "coerce_value",
]
