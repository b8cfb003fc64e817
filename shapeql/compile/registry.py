"""Dialect compiler registry.

``Database`` looks its compiler up by the configured ``type``.  Names are
case-insensitive, and a dialect may be registered under extra aliases
(``mariadb`` for ``mysql``, ``postgresql`` for ``postgres``).

Usage::

    from shapeql.compile.registry import CompilerFactory

    @CompilerFactory.register("oracle", "oracledb")
    class OracleCompiler(SQLCompiler):
        ...

    CompilerFactory.create("OracleDB")  # -> OracleCompiler()
"""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from shapeql.compile.base import SQLCompiler
from shapeql.errors import CompilationError


class CompilerFactory:
    """Maps dialect names and their aliases to :class:`SQLCompiler` classes."""

    _compilers: ClassVar[dict[str, type[SQLCompiler]]] = {}
    _aliases: ClassVar[dict[str, str]] = {}

    @classmethod
    def register(
        cls, name: str, *aliases: str
    ) -> Callable[[type[SQLCompiler]], type[SQLCompiler]]:
        """Decorator form of :meth:`register_class`."""

        def decorator(compiler_cls: type[SQLCompiler]) -> type[SQLCompiler]:
            cls.register_class(name, compiler_cls, aliases)
            return compiler_cls

        return decorator

    @classmethod
    def register_class(
        cls, name: str, compiler_cls: type[SQLCompiler], aliases: tuple[str, ...] = ()
    ) -> None:
        """Register ``compiler_cls`` as dialect ``name``.

        Each alias resolves to ``name``; re-registering a name replaces the
        previous class.
        """
        canonical = name.strip().lower()
        cls._compilers[canonical] = compiler_cls
        for alias in aliases:
            cls._aliases[alias.strip().lower()] = canonical

    @classmethod
    def resolve(cls, name: str) -> str:
        """The canonical dialect name for ``name`` (which need not be registered)."""
        lowered = name.strip().lower()
        return cls._aliases.get(lowered, lowered)

    @classmethod
    def create(cls, name: str) -> SQLCompiler:
        """Instantiate the compiler registered for ``name`` or one of its aliases.

        Raises:
            CompilationError: If no compiler is registered for ``name``.
        """
        compiler_cls = cls._compilers.get(cls.resolve(name))
        if compiler_cls is None:
            raise CompilationError(
                f"Unsupported dialect target: '{name}'. "
                f"Registered targets: {cls.registered_targets()}."
            )
        return compiler_cls()

    @classmethod
    def registered_targets(cls) -> list[str]:
        """Sorted canonical dialect names."""
        return sorted(cls._compilers)
