"""Expansion of ``<placeholder>`` identifiers inside Raw fragments."""
from __future__ import annotations

import re

from shapeql.compile.context import RuntimeContext
from shapeql.compile.quoting import IdentifierQuoter
from shapeql.schema.expressions import TABLE_KEYWORDS
from shapeql.schema.raw import Raw

_PLACEHOLDER = re.compile(r"<([A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)?)>")
_PRECEDING_WORD = re.compile(r"([A-Za-z_]+)\s*$")
_QUOTE_CHARS = frozenset("'\"`")


class RawSplicer:
    """Splices :class:`~shapeql.schema.raw.Raw` fragments into a statement.

    ``<name>`` and ``<table.name>`` placeholders are replaced by quoted
    identifiers: as a table when the preceding word is ``FROM``, ``TABLE``,
    ``INTO``, ``UPDATE`` or ``JOIN``, otherwise as a column.  Text inside
    single, double or back quotes is copied verbatim, and a ``<`` that does
    not open a valid placeholder stays a literal character (so ``a < b``
    survives).

    Args:
        quoter: Identifier quoter for the active dialect and prefix.
    """

    def __init__(self, quoter: IdentifierQuoter) -> None:
        self._quoter = quoter

    def splice(self, fragment: Raw, runtime: RuntimeContext) -> str:
        """Return the expanded SQL text and merge the fragment's map into ``runtime``."""
        text = fragment.value
        out: list[str] = []
        quote: str | None = None
        i = 0
        while i < len(text):
            char = text[i]
            if quote is not None:
                out.append(char)
                if char == quote:
                    quote = None
                i += 1
                continue
            if char in _QUOTE_CHARS:
                quote = char
                out.append(char)
                i += 1
                continue
            if char == "<":
                match = _PLACEHOLDER.match(text, i)
                if match:
                    out.append(self._expand(match.group(1), "".join(out)))
                    i = match.end()
                    continue
            out.append(char)
            i += 1
        runtime.merge(fragment.map)
        return "".join(out)

    def _expand(self, name: str, preceding: str) -> str:
        word = _PRECEDING_WORD.search(preceding)
        if word and word.group(1).upper() in TABLE_KEYWORDS:
            return self._quoter.quote_column(name) if "." in name else self._quoter.quote_table(name)
        return self._quoter.quote_column(name)
