"""Compilation context value objects.

``CompilationContext``
    The static ``(compiler, quoter)`` pair shared by ``QueryBuilder`` and
    all clause-level sub-builders.
``ParameterCounter``
    Thread-safe source of placeholder names, owned by one ``QueryBuilder``
    so that concurrent compilations never hand out the same name.
``RuntimeContext``
    Per-statement parameter accumulator threaded through every sub-builder.
"""
from __future__ import annotations

import itertools
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from shapeql.compile.base import SQLCompiler
from shapeql.errors import DuplicateParameterError

if TYPE_CHECKING:
    from shapeql.compile.quoting import IdentifierQuoter


@dataclass(frozen=True)
class CompilationContext:
    """Immutable context for a single compilation run.

    Attributes:
        compiler: Dialect-specific SQL compiler instance.
        quoter: Identifier quoter carrying the configured table prefix.
    """

    compiler: SQLCompiler
    quoter: IdentifierQuoter


class ParameterCounter:
    """Monotonic ``param_<n>`` name generator, safe to share between threads."""

    def __init__(self, prefix: str = "param_") -> None:
        self._prefix = prefix
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def next_name(self) -> str:
        with self._lock:
            return f"{self._prefix}{next(self._counter)}"


@dataclass
class RuntimeContext:
    """Accumulates named parameters during a single compilation run.

    A single instance is threaded through every sub-builder so that the
    ``params`` of the resulting statement hold every placeholder emitted
    by the value-bearing clauses and every Raw map merged on the way.
    """

    counter: ParameterCounter
    params: dict[str, Any] = field(default_factory=dict)

    def add_value(self, value: Any) -> str:
        """Store a literal value and return its placeholder name."""
        name = self.counter.next_name()
        self._bind(name, value)
        return name

    def merge(self, mapping: Mapping[str, Any]) -> None:
        """Merge a Raw parameter map; a leading ``:`` on keys is stripped.

        Raises:
            DuplicateParameterError: If a name is already bound to a
                different value.
        """
        for key, value in mapping.items():
            self._bind(str(key).lstrip(":"), value)

    def _bind(self, name: str, value: Any) -> None:
        if name in self.params:
            existing = self.params[name]
            if existing is not value and existing != value:
                raise DuplicateParameterError(name, existing, value)
        self.params[name] = value
