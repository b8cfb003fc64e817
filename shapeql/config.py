"""Pydantic model for the configuration of a :class:`~shapeql.database.Database`.

Only compiler-relevant and logging settings live here; connection details
belong to the executor the caller constructs::

    from shapeql import Database, DatabaseConfig
    from shapeql.execute.dbapi import DBAPIExecutor

    config = DatabaseConfig.from_options(type="sqlite", prefix="app_")
    db = Database(DBAPIExecutor(sqlite3.connect("app.db")), config)
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shapeql.compile.registry import CompilerFactory
from shapeql.errors import ConfigError


class DatabaseConfig(BaseModel):
    """Settings shared by every statement compiled for one database.

    Attributes:
        type: Dialect target registered in
            :class:`~shapeql.compile.registry.CompilerFactory`; aliases
            such as ``mariadb`` are stored under their canonical name.
        prefix: String prepended to every quoted table name.
        logging: Keep a history of executed statements instead of only the
            most recent one.
        log_size: Maximum number of statements kept when ``logging`` is on.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: str = "mysql"
    prefix: str = Field("", pattern=r"^[A-Za-z0-9_]*$")
    logging: bool = False
    log_size: int = Field(100, ge=1)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return CompilerFactory.resolve(value)
        return value

    @classmethod
    def from_options(cls, **options: Any) -> DatabaseConfig:
        """Build a config from keyword options, raising :class:`ConfigError`.

        Raises:
            ConfigError: If any option is unknown or invalid.
        """
        try:
            return cls.model_validate(options)
        except ValidationError as exc:
            raise ConfigError(f"Invalid database configuration: {exc}") from exc
