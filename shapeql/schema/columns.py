"""Typed column specification.

A column specification as written by callers is ``"*"``, a single column
string, a list, or a nested mapping.  :func:`parse_columns` turns it into an
immutable :class:`ColumnTree` once per query; the projection compiler, the
column-map builder and the result mapper all walk that same tree, so alias
and type resolution happens in exactly one place and the caller's value is
never modified.

Shapes
------
``"*"``
    Every column, rows returned as-is.
``"email"``
    A single column; reads return that column's values directly.
``["id [Int]", "name(display)", {"total [Number]": Raw("SUM(<price>)")}]``
    Flat list; embedded mappings contribute aliased Raw columns or nested
    groups.
``{"user_id": ["name", "email"]}``
    Single key at the root: rows are indexed by the value of ``user_id``.
``{"profile": ["bio", "avatar"], "stats": ["posts [Int]"]}``
    Several keys: each becomes a nested object in the result.
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from shapeql.errors import MalformedColumnError
from shapeql.schema.column_reference import ColumnReference
from shapeql.schema.grammar import parse_column_reference, parse_raw_column_key
from shapeql.schema.raw import Raw

#: The caller-facing column specification.
ColumnSpec = Union[str, Sequence[Any], Mapping[str, Any]]


@dataclass(frozen=True)
class FieldNode:
    """A selected column parsed from a reference string."""

    ref: ColumnReference


@dataclass(frozen=True)
class RawNode:
    """A Raw expression selected under an alias key."""

    ref: ColumnReference
    raw: Raw


@dataclass(frozen=True)
class GroupNode:
    """A nested result object built from ``children``."""

    key: str
    children: tuple[ColumnNode, ...]


ColumnNode = Union[FieldNode, RawNode, GroupNode]


@dataclass(frozen=True)
class ColumnTree:
    """The parsed form of one column specification.

    Attributes:
        nodes: Top-level nodes, in specification order.
        wildcard: ``True`` for the bare ``"*"`` specification.
        single: ``True`` when the specification was one column string.
        index_key: For a single-key root mapping, the column whose value
            indexes the result rows.
    """

    nodes: tuple[ColumnNode, ...] = field(default_factory=tuple)
    wildcard: bool = False
    single: bool = False
    index_key: str | None = None

    @property
    def index_column(self) -> str | None:
        """``index_key`` without its table qualifier (the row field to read)."""
        if self.index_key is None:
            return None
        return self.index_key.rsplit(".", 1)[-1]

    def walk(self) -> list[ColumnNode]:
        """All field and Raw nodes in depth-first order."""
        found: list[ColumnNode] = []
        stack = list(reversed(self.nodes))
        while stack:
            node = stack.pop()
            if isinstance(node, GroupNode):
                stack.extend(reversed(node.children))
            else:
                found.append(node)
        return found


WILDCARD = ColumnTree(wildcard=True)


def parse_columns(spec: ColumnSpec | None) -> ColumnTree:
    """Parse a caller column specification into a :class:`ColumnTree`.

    Raises:
        MalformedColumnError: If an entry does not follow the grammar.
    """
    if spec is None or spec == "*":
        return WILDCARD
    if isinstance(spec, str):
        return ColumnTree(nodes=(FieldNode(parse_column_reference(spec)),), single=True)
    if isinstance(spec, Mapping):
        if len(spec) == 1:
            key, value = next(iter(spec.items()))
            if _is_group_value(value):
                group = GroupNode(key=_group_key(key), children=_parse_entries(value))
                return ColumnTree(nodes=(group,), index_key=group.key)
        return ColumnTree(nodes=_parse_mapping(spec))
    if isinstance(spec, Sequence):
        return ColumnTree(nodes=_parse_entries(spec))
    raise MalformedColumnError(spec, f"unsupported column specification type {type(spec).__name__}")


def _is_group_value(value: Any) -> bool:
    if isinstance(value, (str, bytes, Raw)):
        return False
    return isinstance(value, (Mapping, Sequence))


def _group_key(key: Any) -> str:
    if not isinstance(key, str) or not key.strip():
        raise MalformedColumnError(key, "nested column groups need a string key")
    return key.strip()


def _parse_entries(value: Any) -> tuple[ColumnNode, ...]:
    if isinstance(value, str):
        return (FieldNode(parse_column_reference(value)),)
    if isinstance(value, Mapping):
        return _parse_mapping(value)
    nodes: list[ColumnNode] = []
    for item in value:
        if isinstance(item, str):
            nodes.append(FieldNode(parse_column_reference(item)))
        elif isinstance(item, Mapping):
            nodes.extend(_parse_mapping(item))
        elif isinstance(item, Raw):
            raise MalformedColumnError(item, "a Raw column needs an alias key, e.g. {'total': Raw(...)}")
        else:
            raise MalformedColumnError(item, f"unsupported column entry type {type(item).__name__}")
    return tuple(nodes)


def _parse_mapping(mapping: Mapping[str, Any]) -> tuple[ColumnNode, ...]:
    nodes: list[ColumnNode] = []
    for key, value in mapping.items():
        if isinstance(value, Raw):
            if not isinstance(key, str):
                raise MalformedColumnError(key, "Raw column keys must be strings")
            nodes.append(RawNode(ref=parse_raw_column_key(key), raw=value))
        elif _is_group_value(value):
            nodes.append(GroupNode(key=_group_key(key), children=_parse_entries(value)))
        else:
            raise MalformedColumnError(
                {key: value}, "mapping values must be Raw fragments or nested column lists"
            )
    return tuple(nodes)
