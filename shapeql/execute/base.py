"""Executor abstraction: runs compiled SQL against a database connection."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ExecutionResult:
    """What a driver returned for one statement.

    Attributes:
        rows: Result rows as column-name → value dicts (empty for writes).
        affected: Rows affected (or returned, for reads).
        last_insert_id: The driver's ``lastrowid`` after an INSERT, if any.
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    affected: int = 0
    last_insert_id: Any = None


class Executor(ABC):
    """Runs SQL with ``:name`` placeholders and manages transactions.

    Implementations translate placeholders to the driver's parameter style
    with :func:`~shapeql.execute.binding.bind_parameters` and wrap driver
    failures in :class:`~shapeql.errors.ExecutionError`.
    """

    @abstractmethod
    def execute(self, sql: str, params: Mapping[str, Any]) -> ExecutionResult:
        """Execute one statement.

        Raises:
            ExecutionError: If the driver rejects the statement.
        """

    @abstractmethod
    def begin(self) -> None:
        """Start a transaction on the calling thread."""

    @abstractmethod
    def commit(self) -> None:
        """Commit the calling thread's transaction."""

    @abstractmethod
    def rollback(self) -> None:
        """Roll back the calling thread's transaction."""

    def close(self) -> None:
        """Release driver resources; the default does nothing."""
