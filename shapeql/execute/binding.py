"""Translation of ``:name`` placeholder tokens to DB-API parameter styles.

The scanner skips quoted strings, comments and PostgreSQL ``::type`` casts,
so a ``:word`` inside a literal is never treated as a parameter.  Tokens
with no matching entry in ``params`` are left untouched.
"""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Final

_PARAMETER_PATTERN: Final = r"""
    (?P<dquote>DQUOTE) |
    (?P<squote>SQUOTE) |
    (?P<btick>`[^`]*`) |
    (?P<line_comment>--[^\r\n]*) |
    (?P<block_comment>/\*(?:[^*]|\*(?!/))*\*/) |
    (?P<pg_cast>::\w+) |
    (?P<named_colon>:(?P<colon_name>[A-Za-z_]\w*))
    """

#: Standard SQL: a quote inside a literal is doubled and ``\`` is ordinary.
_ANSI_REGEX: Final = re.compile(
    _PARAMETER_PATTERN.replace("DQUOTE", r'"(?:[^"]|"")*"').replace("SQUOTE", r"'(?:[^']|'')*'"),
    re.VERBOSE,
)
#: MySQL: ``\`` additionally escapes the next character.
_BACKSLASH_REGEX: Final = re.compile(
    _PARAMETER_PATTERN.replace("DQUOTE", r'"(?:[^"\\]|\\.)*"').replace("SQUOTE", r"'(?:[^'\\]|\\.)*'"),
    re.VERBOSE,
)


class ParamStyle(str, Enum):
    """DB-API 2.0 ``paramstyle`` values."""

    QMARK = "qmark"
    FORMAT = "format"
    PYFORMAT = "pyformat"
    NUMERIC = "numeric"
    NAMED = "named"

    def __str__(self) -> str:
        return self.value


def _placeholders(
    sql: str, params: Mapping[str, Any], backslash_escapes: bool
) -> list[re.Match[str]]:
    regex = _BACKSLASH_REGEX if backslash_escapes else _ANSI_REGEX
    return [
        match
        for match in regex.finditer(sql)
        if match.group("named_colon") and match.group("colon_name") in params
    ]


def bind_parameters(
    sql: str,
    params: Mapping[str, Any],
    paramstyle: ParamStyle | str = ParamStyle.QMARK,
    *,
    backslash_escapes: bool = False,
) -> tuple[str, list[Any] | dict[str, Any]]:
    """Rewrite ``sql`` for ``paramstyle`` and order ``params`` to match.

    Positional styles receive one value per occurrence, in textual order.
    For ``format`` / ``pyformat`` a literal ``%`` is doubled whenever any
    parameter is bound, since the driver then applies ``%`` formatting.
    String literals follow standard SQL unless ``backslash_escapes`` is set
    (MySQL), in which case ``\\'`` does not close a literal.

    Returns:
        ``(sql, parameters)`` ready for ``cursor.execute``: a list for
        ``qmark`` / ``format`` / ``numeric``, a dict for ``named`` /
        ``pyformat``.
    """
    style = ParamStyle(str(paramstyle))
    matches = _placeholders(sql, params, backslash_escapes)
    escape_percent = bool(matches) and style in (ParamStyle.FORMAT, ParamStyle.PYFORMAT)

    def text(chunk: str) -> str:
        return chunk.replace("%", "%%") if escape_percent else chunk

    out: list[str] = []
    positional: list[Any] = []
    named: dict[str, Any] = {}
    position = 0
    for match in matches:
        name = match.group("colon_name")
        out.append(text(sql[position:match.start()]))
        if style is ParamStyle.QMARK:
            out.append("?")
            positional.append(params[name])
        elif style is ParamStyle.FORMAT:
            out.append("%s")
            positional.append(params[name])
        elif style is ParamStyle.NUMERIC:
            positional.append(params[name])
            out.append(f":{len(positional)}")
        elif style is ParamStyle.PYFORMAT:
            out.append(f"%({name})s")
            named[name] = params[name]
        else:
            out.append(f":{name}")
            named[name] = params[name]
        position = match.end()
    out.append(text(sql[position:]))

    bound = "".join(out)
    if style in (ParamStyle.NAMED, ParamStyle.PYFORMAT):
        return bound, named
    return bound, positional


def inline_parameters(
    sql: str,
    params: Mapping[str, Any],
    escape: Callable[[Any], str],
    *,
    backslash_escapes: bool = False,
) -> str:
    """Replace each placeholder with ``escape(value)`` for display or logging.

    The result is for humans only; never execute it.
    """
    out: list[str] = []
    position = 0
    for match in _placeholders(sql, params, backslash_escapes):
        out.append(sql[position:match.start()])
        out.append(escape(params[match.group("colon_name")]))
        position = match.end()
    out.append(sql[position:])
    return "".join(out)
