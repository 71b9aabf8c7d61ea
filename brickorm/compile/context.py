"""Compilation context value object.

Packages the ``(dialect, runtime)`` pair that every clause-level builder
needs into a single object.  One context is created per rendered statement
and shared with nested statements (CTEs, set-operation branches,
sub-queries) so the inlined values are recorded in statement order.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from brickorm.compile.formatter import Formatter, RuntimeContext

if TYPE_CHECKING:
    from brickorm.dialect.base import Dialect
    from brickorm.schema.table import Table


class RenderMode(enum.Enum):
    """What a ``SELECT`` plan is rendered as."""

    SELECT = "select"
    COUNT = "count"
    SELECT_EXISTS = "select_exists"
    WHERE_EXISTS = "where_exists"


@dataclass(frozen=True)
class CompilationContext:
    """Immutable context for a single compilation run.

    Attributes:
        dialect: Target dialect.
        runtime: Accumulator for the values inlined into the statement.
    """

    dialect: Dialect
    runtime: RuntimeContext = field(default_factory=RuntimeContext)

    @classmethod
    def from_formatter(cls, fmter: Formatter) -> CompilationContext:
        return cls(dialect=fmter.dialect, runtime=fmter.runtime)

    def formatter(self, table: Table | None = None, sql_alias: str | None = None) -> Formatter:
        """Return a formatter bound to ``table`` sharing this context's runtime."""
        return Formatter(self.dialect, table, sql_alias, self.runtime)

    def quote(self, name: str) -> str:
        return self.dialect.quote_identifier(name)
