"""Database configuration.

``DatabaseConfig`` is a strict pydantic model: unknown keys are rejected so a
misspelt option fails loudly instead of being ignored::

    config = DatabaseConfig(dialect="sqlite", debug=True, slow_query_threshold=0.5)
    db = Database.from_config(adapter, config)

    # or from a JSON file
    config = load_config("brickorm.json")
"""
from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from brickorm.errors import ConfigurationError


class DatabaseConfig(BaseModel):
    """Options for :class:`~brickorm.db.Database`.

    Attributes:
        dialect: Name of a dialect registered with
            :class:`~brickorm.dialect.registry.DialectRegistry`.
        dialect_options: Keyword arguments for the dialect constructor
            (e.g. ``{"server_version": 5}`` for MySQL).
        max_relation_depth: Maximum number of segments in a relation path.
        debug: Install :class:`~brickorm.debug.QueryDebugHook`.
        slow_query_threshold: Seconds after which the debug hook logs a
            statement at WARNING.
        log_arguments: Include the inlined values in debug log records.
    """

    model_config = ConfigDict(extra="forbid")

    dialect: str = "postgres"
    dialect_options: dict[str, int | str | bool] = Field(default_factory=dict)
    max_relation_depth: int = Field(default=8, ge=1)
    debug: bool = False
    slow_query_threshold: float | None = Field(default=None, gt=0)
    log_arguments: bool = False

    @field_validator("dialect")
    @classmethod
    def _normalize_dialect(cls, value: str) -> str:
        return value.strip().lower()


def load_config(path: str | Path) -> DatabaseConfig:
    """Read a :class:`DatabaseConfig` from a JSON file.

    Raises:
        ConfigurationError: If the file cannot be read.
        pydantic.ValidationError: If its contents are invalid.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file '{path}': {exc}") from exc
    return DatabaseConfig.model_validate_json(text)
