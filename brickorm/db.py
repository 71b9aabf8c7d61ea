"""The ``Database`` facade: one dialect, one adapter, one hook pipeline."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from brickorm.adapters.base import ExecutionAdapter
from brickorm.config import DatabaseConfig
from brickorm.debug import QueryDebugHook
from brickorm.dialect.base import Dialect
from brickorm.dialect.registry import DialectRegistry
from brickorm.hooks import DBStats, HookPipeline, QueryHook
from brickorm.query.mutation import DeleteQuery, InsertQuery, UpdateQuery
from brickorm.query.select import SelectQuery

logger = logging.getLogger(__name__)


class Database:
    """Entry point for building and running queries.

    Args:
        adapter: Executes rendered SQL.
        dialect: Target dialect.
        config: Options; defaults to ``DatabaseConfig(dialect=dialect.name)``.
        hooks: Query hooks to install, in order.

    Example::

        db = Database(SQLAlchemyAdapter(engine), SQLiteDialect())
        users = await db.select(User).where("?TableAlias.age > ?", 18).scan()
    """

    def __init__(
        self,
        adapter: ExecutionAdapter,
        dialect: Dialect,
        config: DatabaseConfig | None = None,
        hooks: Iterable[QueryHook] = (),
    ) -> None:
        self.adapter = adapter
        self.dialect = dialect
        self.config = config or DatabaseConfig(dialect=dialect.name)
        self.hooks = HookPipeline(hooks)
        if self.config.debug:
            self.add_query_hook(
                QueryDebugHook(
                    slow_query_threshold=self.config.slow_query_threshold,
                    log_arguments=self.config.log_arguments,
                )
            )

    @classmethod
    def from_config(cls, adapter: ExecutionAdapter, config: DatabaseConfig) -> Database:
        """Build a database whose dialect is resolved by name from ``config``.

        Raises:
            ConfigurationError: If ``config.dialect`` is not registered.
        """
        dialect = DialectRegistry.create(config.dialect, **config.dialect_options)
        logger.debug("database configured for dialect %r", dialect.name)
        return cls(adapter, dialect, config)

    # ------------------------------------------------------------------
    # Query factories
    # ------------------------------------------------------------------

    def select(self, model: Any = None) -> SelectQuery:
        return SelectQuery(self, model)

    def insert(self, model: Any = None) -> InsertQuery:
        return InsertQuery(self, model)

    def update(self, model: Any = None) -> UpdateQuery:
        return UpdateQuery(self, model)

    def delete(self, model: Any = None) -> DeleteQuery:
        return DeleteQuery(self, model)

    # ------------------------------------------------------------------
    # Hooks, models, statistics
    # ------------------------------------------------------------------

    def add_query_hook(self, hook: QueryHook) -> None:
        self.hooks.add(hook)

    def register_models(self, *models: type) -> None:
        """Register models so relations can refer to them by class name."""
        self.dialect.tables.register(*models)

    @property
    def stats(self) -> DBStats:
        return self.hooks.stats

    def __repr__(self) -> str:
        return f"Database(dialect={self.dialect.name!r}, adapter={type(self.adapter).__name__})"
