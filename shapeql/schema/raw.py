"""Raw SQL fragments.

A :class:`Raw` bypasses value parameterisation: its text is trusted
verbatim, except that ``<table>`` and ``<table.column>`` placeholders are
expanded to quoted identifiers when the fragment is spliced.  Values the
fragment needs are bound through its own ``map``::

    Raw("COUNT(<orders.id>) > :min_orders", {"min_orders": 3})
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True, eq=False)
class Raw:
    """An SQL text template plus its named parameters.

    Attributes:
        value: SQL text, possibly containing ``<identifier>`` placeholders.
        map: Named parameters referenced from ``value``.  Keys may be
            written with or without the leading ``:``.
    """

    value: str
    map: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError(f"Raw SQL must be a string, got {type(self.value).__name__}")
        object.__setattr__(self, "map", MappingProxyType(dict(self.map)))

    def __repr__(self) -> str:
        return f"Raw({self.value!r}, {dict(self.map)!r})"


def raw(value: str, map: Mapping[str, Any] | None = None) -> Raw:  # noqa: A002
    """Shorthand constructor for :class:`Raw`."""
    return Raw(value, map or {})


def is_raw(value: Any) -> bool:
    """True when ``value`` is a :class:`Raw` fragment."""
    return isinstance(value, Raw)
