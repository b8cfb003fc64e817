"""shapeQL execution layer: executors and DB-API parameter binding."""
from shapeql.execute.base import ExecutionResult, Executor
from shapeql.execute.binding import ParamStyle, bind_parameters, inline_parameters
from shapeql.execute.dbapi import DBAPIExecutor

__all__ = [
    "ExecutionResult",
    "Executor",
    "ParamStyle",
    "bind_parameters",
    "inline_parameters",
    "DBAPIExecutor",
]
