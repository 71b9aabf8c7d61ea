"""Dialect abstractions: the capability registry entry for one SQL backend.

A :class:`Dialect` is data plus a handful of rendering callbacks.  The query
engine is a single implementation parameterized by the dialect; backend
differences live here rather than in subclasses of the engine:

- the :class:`~brickorm.dialect.feature.Feature` set (``has_feature``),
- identifier quoting,
- literal rendering (strings, booleans, bytes, unsigned integers, arrays),
- column-definition helpers (identity / sequence syntax),
- the LIMIT / OFFSET spelling.

Dialects are immutable after construction and shared by every query built
against them.  Each dialect owns the process-wide table metadata cache for
its quoting rules.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from brickorm.dialect.feature import Feature
from brickorm.errors import FeatureNotSupportedError
from brickorm.schema.tables import Tables
from brickorm.version import __version__

if TYPE_CHECKING:
    from brickorm.schema.table import Field, Table


class Dialect(ABC):
    """Abstract base for SQL backend profiles.

    Subclasses set :attr:`features` and :attr:`ident_quote` and override the
    rendering callbacks where the backend spells things differently.
    """

    #: Engine version this dialect was written against.
    engine_version: ClassVar[str] = __version__

    #: Capability set.
    features: ClassVar[Feature] = Feature.NONE

    #: Identifier quote character.
    ident_quote: ClassVar[str] = '"'

    def __init__(self) -> None:
        self._tables = Tables(self)

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the canonical dialect name (e.g. ``'postgres'``)."""

    @property
    def tables(self) -> Tables:
        """The table metadata cache bound to this dialect."""
        return self._tables

    def has_feature(self, feature: Feature) -> bool:
        """Return ``True`` when every flag in ``feature`` is supported."""
        return (self.features & feature) == feature

    def require_feature(self, feature: Feature, clause: str | None = None) -> None:
        """Raise :class:`FeatureNotSupportedError` unless ``feature`` is supported."""
        if not self.has_feature(feature):
            raise FeatureNotSupportedError(feature.name or str(feature), self.name, clause)

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        """Quote a possibly dotted identifier (``a.b`` → ``"a"."b"``).

        ``*`` segments are left bare so ``t.*`` renders as ``"t".*``.
        """
        q = self.ident_quote
        parts = []
        for part in name.split("."):
            if part == "*":
                parts.append(part)
            else:
                parts.append(q + part.replace(q, q + q) + q)
        return ".".join(parts)

    # ------------------------------------------------------------------
    # Literals
    # ------------------------------------------------------------------

    def append_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def append_bool(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"

    def append_bytes(self, value: bytes) -> str:
        return f"X'{value.hex()}'"

    def append_uint32(self, value: int) -> str:
        return str(value)

    def append_uint64(self, value: int) -> str:
        return str(value)

    def append_array(self, values: Sequence[Any], append_value: Callable[[Any], str]) -> str:
        """Render a list literal; unsupported unless the backend has arrays."""
        raise FeatureNotSupportedError("array literals", self.name)

    def cast(self, expr: str, sql_type: str) -> str:
        if self.has_feature(Feature.DOUBLE_COLON_CAST):
            return f"{expr}::{sql_type}"
        return f"CAST({expr} AS {sql_type})"

    # ------------------------------------------------------------------
    # Column definitions
    # ------------------------------------------------------------------

    def append_sequence(self, table: Table, field: Field) -> str:
        """Return the identity / auto-increment suffix for a column definition."""
        return ""

    # ------------------------------------------------------------------
    # Row limiting
    # ------------------------------------------------------------------

    #: Whether compound SELECT branches are wrapped in parentheses.
    parenthesize_compound: ClassVar[bool] = True

    #: Column injected when a LIMIT needs an ORDER BY the caller did not give.
    synthetic_order_column: ClassVar[str | None] = None

    def append_limit_offset(self, limit: int, offset: int) -> str:
        """Render the row-limiting suffix; ``limit <= 0`` means no limit."""
        sql = ""
        if limit > 0:
            sql += f" LIMIT {limit}"
        if offset > 0:
            sql += f" OFFSET {offset}"
        return sql

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
