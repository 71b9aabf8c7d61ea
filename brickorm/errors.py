"""Custom exception hierarchy for brickORM.

All public errors inherit from BrickORMError so callers can catch the base
class for any brickORM-specific failure.  Errors coming from the execution
adapter (driver errors, cancellation, timeouts) are never wrapped.
"""
from __future__ import annotations


class BrickORMError(Exception):
    """Base exception for all brickORM errors."""


# ---------------------------------------------------------------------------
# Configuration errors (fatal, raised or recorded at build time)
# ---------------------------------------------------------------------------


class ConfigurationError(BrickORMError):
    """Raised when the engine, a dialect or a model is misconfigured."""


class DialectVersionError(ConfigurationError):
    """Raised when a dialect was written for a different engine version.

    Args:
        dialect: The dialect name.
        expected: The engine version (``brickorm.__version__``).
        actual: The version declared by the dialect.
    """

    def __init__(self, dialect: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Dialect '{dialect}' and brickORM must have the same version: "
            f"v{actual} != v{expected}."
        )
        self.dialect = dialect
        self.expected = expected
        self.actual = actual


class RelationNotFoundError(ConfigurationError):
    """Raised when a query references a relation the model does not declare."""

    def __init__(self, table: str, relation: str, available: list[str]) -> None:
        super().__init__(f"Table '{table}' does not have relation '{relation}'.")
        self.table = table
        self.relation = relation
        self.available = available


class RelationDepthError(ConfigurationError):
    """Raised when a relation path is nested deeper than allowed."""

    def __init__(self, path: str, max_depth: int) -> None:
        super().__init__(
            f"Relation path '{path}' exceeds the maximum depth of {max_depth}."
        )
        self.path = path
        self.max_depth = max_depth


class ModelDeclarationError(ConfigurationError):
    """Raised when a model class cannot be turned into table metadata."""

    def __init__(self, model: str, message: str) -> None:
        super().__init__(f"{model}: {message}")
        self.model = model


# ---------------------------------------------------------------------------
# Builder state errors (sticky on the query)
# ---------------------------------------------------------------------------


class QueryBuildError(BrickORMError):
    """Raised when a query cannot be built as requested.

    Builder methods never raise this directly; the error is recorded on the
    query and raised by ``render()`` and every terminal operation.

    Args:
        message: Human-readable description.
        clause: The clause being built when the error occurred.
    """

    def __init__(self, message: str, clause: str | None = None) -> None:
        super().__init__(message)
        self.clause = clause


class NilModelError(QueryBuildError):
    """Raised when an operation needs a model but the query has none."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation} requires a model; call model() first.")
        self.operation = operation


class FeatureNotSupportedError(QueryBuildError):
    """Raised when a query needs a feature the dialect does not provide."""

    def __init__(self, feature: str, dialect: str, clause: str | None = None) -> None:
        super().__init__(
            f"Dialect '{dialect}' does not support {feature}.", clause=clause
        )
        self.feature = feature
        self.dialect = dialect


# ---------------------------------------------------------------------------
# Execution outcomes
# ---------------------------------------------------------------------------


class NoRowsError(BrickORMError, LookupError):
    """Raised when a single-row read matched nothing.

    Not counted as a failed statement in :class:`~brickorm.hooks.DBStats`.
    """

    def __init__(self, message: str = "no rows in result set") -> None:
        super().__init__(message)
