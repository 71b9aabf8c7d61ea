"""brickORM – dialect-aware query building and object-relational mapping.

Public API
----------
``Database``
    Owns a dialect, an execution adapter and the hook pipeline; creates
    ``SelectQuery``, ``InsertQuery``, ``UpdateQuery`` and ``DeleteQuery``.

``DatabaseConfig`` / ``load_config``
    Strict configuration model.

Models
------
Plain pydantic models with ``__tablename__`` / ``__relations__``
declarations; relations are declared with ``has_one``, ``belongs_to``,
``has_many`` and ``many_to_many``.

Extensibility
-------------
Dialects are registered by name::

    from brickorm.dialect.registry import DialectRegistry

    @DialectRegistry.register("cockroach")
    class CockroachDialect(PostgresDialect):
        ...
"""
from __future__ import annotations

from brickorm.adapters.base import ExecResult, ExecutionAdapter
from brickorm.config import DatabaseConfig, load_config
from brickorm.db import Database
from brickorm.debug import QueryDebugHook
from brickorm.dialect import (
    Dialect,
    DialectRegistry,
    Feature,
    MSSQLDialect,
    MySQLDialect,
    PostgresDialect,
    SQLiteDialect,
)
from brickorm.errors import (
    BrickORMError,
    ConfigurationError,
    DialectVersionError,
    FeatureNotSupportedError,
    ModelDeclarationError,
    NilModelError,
    NoRowsError,
    QueryBuildError,
    RelationDepthError,
    RelationNotFoundError,
)
from brickorm.hooks import DBStats, QueryContext, QueryEvent, QueryHook
from brickorm.query import (
    DeleteQuery,
    InsertQuery,
    QueryBuilder,
    RelationOpts,
    SelectQuery,
    UpdateQuery,
)
from brickorm.schema import (
    Cast,
    Ident,
    In,
    RelationSpec,
    Safe,
    belongs_to,
    has_many,
    has_one,
    many_to_many,
)
from brickorm.version import __version__

# Built-in dialects; registration checks each one against __version__.
DialectRegistry.register_class("postgres", PostgresDialect)
DialectRegistry.register_class("sqlite", SQLiteDialect)
DialectRegistry.register_class("mysql", MySQLDialect)
DialectRegistry.register_class("mssql", MSSQLDialect)

__all__ = [
    "__version__",
    # Core
    "Database",
    "DatabaseConfig",
    "load_config",
    "ExecResult",
    "ExecutionAdapter",
    "QueryDebugHook",
    # Queries
    "SelectQuery",
    "InsertQuery",
    "UpdateQuery",
    "DeleteQuery",
    "QueryBuilder",
    "RelationOpts",
    # Hooks
    "DBStats",
    "QueryContext",
    "QueryEvent",
    "QueryHook",
    # Dialects
    "Dialect",
    "DialectRegistry",
    "Feature",
    "MSSQLDialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
    # Schema
    "Cast",
    "Ident",
    "In",
    "RelationSpec",
    "Safe",
    "belongs_to",
    "has_many",
    "has_one",
    "many_to_many",
    # Errors
    "BrickORMError",
    "ConfigurationError",
    "DialectVersionError",
    "FeatureNotSupportedError",
    "ModelDeclarationError",
    "NilModelError",
    "NoRowsError",
    "QueryBuildError",
    "RelationDepthError",
    "RelationNotFoundError",
]
