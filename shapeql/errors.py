"""Custom exception hierarchy for shapeQL.

All public errors inherit from ShapeQLError so callers can catch the base
class for any shapeQL-specific failure.  Every compile-stage error derives
from :class:`CompilationError` and is raised before a statement reaches the
executor.
"""
from __future__ import annotations

from typing import Any


class ShapeQLError(Exception):
    """Base exception for all shapeQL errors.

    Args:
        message: Human-readable description.
        code: Machine-readable error code (e.g. ``INVALID_IDENTIFIER``).
        details: Extra structured context.
    """

    default_code = "SHAPEQL_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response suitable for logging or APIs."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class ConfigError(ShapeQLError):
    """Raised when a :class:`~shapeql.config.DatabaseConfig` is invalid."""

    default_code = "CONFIG_ERROR"


class CompilationError(ShapeQLError):
    """Raised when a query cannot be compiled to SQL.

    Args:
        message: Human-readable description.
        clause: The clause being compiled when the error occurred.
    """

    default_code = "COMPILATION_ERROR"

    def __init__(
        self,
        message: str,
        clause: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
        self.clause = clause


class InvalidIdentifierError(CompilationError):
    """Raised when a table or column name fails identifier validation."""

    def __init__(self, identifier: str, kind: str = "column") -> None:
        super().__init__(
            f"Incorrect {kind} name \"{identifier}\".",
            code="INVALID_IDENTIFIER",
            details={"identifier": identifier, "kind": kind},
        )
        self.identifier = identifier
        self.kind = kind


class MalformedConditionError(CompilationError):
    """Raised when a condition key or its value has an unsupported shape."""

    def __init__(self, key: Any, reason: str, clause: str = "WHERE") -> None:
        super().__init__(
            f"Malformed condition {key!r}: {reason}",
            clause=clause,
            code="MALFORMED_CONDITION",
            details={"key": str(key), "reason": reason},
        )
        self.key = key
        self.reason = reason


class MalformedColumnError(CompilationError):
    """Raised when a column specification entry cannot be parsed."""

    def __init__(self, column: Any, reason: str, clause: str = "SELECT") -> None:
        super().__init__(
            f"Malformed column {column!r}: {reason}",
            clause=clause,
            code="MALFORMED_COLUMN",
            details={"column": str(column), "reason": reason},
        )
        self.column = column


class AmbiguousWildcardError(CompilationError):
    """Raised when a joined query selects ``*`` or ``table.*``."""

    def __init__(self, column: str) -> None:
        super().__init__(
            f"Cannot use '{column}' to select all columns while joining tables.",
            clause="SELECT",
            code="AMBIGUOUS_WILDCARD",
            details={"column": column},
        )
        self.column = column


class MalformedJoinKeyError(CompilationError):
    """Raised when a join key is not of the form ``[dir]table(alias)``."""

    def __init__(self, key: str, reason: str = "expected '[>]table', '[<]table', '[<>]table' or '[><]table'") -> None:
        super().__init__(
            f"Malformed join key {key!r}: {reason}",
            clause="JOIN",
            code="MALFORMED_JOIN_KEY",
            details={"key": key, "reason": reason},
        )
        self.key = key


class DuplicateParameterError(CompilationError):
    """Raised when merging parameters would overwrite a different value."""

    def __init__(self, name: str, existing: Any, new: Any) -> None:
        super().__init__(
            f"Parameter ':{name}' is already bound to {existing!r}; refusing to rebind it to {new!r}.",
            code="DUPLICATE_PARAMETER",
            details={"name": name},
        )
        self.name = name


class ExecutionError(ShapeQLError):
    """Wraps a failure raised by the database driver.

    Args:
        message: The driver's message.
        sql: The statement that failed.
        driver_error: The original exception.
    """

    default_code = "EXECUTION_ERROR"

    def __init__(
        self,
        message: str,
        sql: str | None = None,
        driver_error: BaseException | None = None,
    ) -> None:
        super().__init__(message, details={"sql": sql} if sql else None)
        self.sql = sql
        self.driver_error = driver_error
