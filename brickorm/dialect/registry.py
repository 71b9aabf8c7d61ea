"""Dialect registry (Open/Closed Principle).

Adding a backend means registering a :class:`~brickorm.dialect.base.Dialect`
subclass once; :class:`~brickorm.config.DatabaseConfig` resolves dialects by
name through this registry.

Registration enforces the construction-time invariant that a dialect was
written for this engine version: a mismatch raises
:class:`~brickorm.errors.DialectVersionError` while ``brickorm`` (or the
plugin registering the dialect) is being imported, never at query time.

Usage::

    from brickorm.dialect.registry import DialectRegistry

    @DialectRegistry.register("cockroach")
    class CockroachDialect(PostgresDialect):
        ...

    dialect = DialectRegistry.create("cockroach")
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, ClassVar

from brickorm.dialect.base import Dialect
from brickorm.errors import ConfigurationError, DialectVersionError
from brickorm.version import __version__

logger = logging.getLogger(__name__)


class DialectRegistry:
    """Registry mapping dialect names to :class:`Dialect` classes.

    Example::

        @DialectRegistry.register("mysql")
        class MySQLDialect(Dialect):
            ...

        dialect = DialectRegistry.create("mysql")
    """

    _dialects: ClassVar[dict[str, type[Dialect]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[Dialect]], type[Dialect]]:
        """Decorator that registers a dialect class under ``name``.

        Args:
            name: The dialect name (e.g. ``"postgres"``).

        Returns:
            A decorator that registers and returns the dialect class.
        """

        def decorator(dialect_cls: type[Dialect]) -> type[Dialect]:
            cls.register_class(name, dialect_cls)
            return dialect_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, dialect_cls: type[Dialect]) -> None:
        """Register a dialect class without using the decorator form.

        Args:
            name: The dialect name.
            dialect_cls: The :class:`Dialect` subclass to register.

        Raises:
            DialectVersionError: If the dialect declares a different engine
                version.
        """
        if dialect_cls.engine_version != __version__:
            raise DialectVersionError(name, __version__, dialect_cls.engine_version)
        cls._dialects[name] = dialect_cls
        logger.debug("registered dialect %r -> %s", name, dialect_cls.__name__)

    @classmethod
    def create(cls, name: str, **options: Any) -> Dialect:
        """Instantiate the dialect registered for ``name``.

        Args:
            name: The dialect name.
            **options: Constructor arguments for the dialect class.

        Returns:
            A fresh :class:`Dialect` instance.

        Raises:
            ConfigurationError: If no dialect is registered for ``name``.
        """
        dialect_cls = cls._dialects.get(name)
        if dialect_cls is None:
            registered = sorted(cls._dialects)
            raise ConfigurationError(
                f"Unsupported dialect: '{name}'. Registered dialects: {registered}."
            )
        return dialect_cls(**options)

    @classmethod
    def registered_names(cls) -> list[str]:
        """Return the sorted list of registered dialect names."""
        return sorted(cls._dialects)
