"""MySQL dialect compiler."""

from __future__ import annotations

from shapeql.compile.base import SQLCompiler


class MySQLCompiler(SQLCompiler):
    """Compiles to MySQL-flavoured SQL (MariaDB uses the same compiler).

    Identifiers stay ANSI double-quoted; the executor must run the session
    with ``ANSI_QUOTES`` enabled (``SQLAlchemyExecutor`` does this on
    connect).  String literals additionally escape backslashes because
    MySQL treats ``\\`` as an escape character by default.
    """

    backslash_escapes = True

    @property
    def dialect_name(self) -> str:
        return "mysql"

    def like_operator(self) -> str:
        return "LIKE"

    def regexp_operator(self) -> str:
        return "REGEXP"

    def random_function(self) -> str:
        return "RAND()"

    def _escape_string(self, text: str) -> str:
        return text.replace("\\", "\\\\").replace("'", "''")
