"""Placeholder interpolation and literal rendering.

``Formatter`` turns a fragment (``"age > ?"``, ``(18,)``) into SQL text
(``age > 18``) using the dialect's literal rules.  The rendered statement is
self-contained: the adapter receives text only.

Placeholders
------------
``?``          next positional argument
``?0``, ``?1`` argument by index
``?TableName``, ``?TableAlias``, ``?TableColumns``, ``?Columns``, ``?PKs``
               expanded from the table bound to the formatter
``\\?``        a literal question mark

A :class:`RuntimeContext` is shared by every formatter used for one
statement (sub-queries, CTEs, set-operation branches) and records the
values that were inlined, in order, for hooks and debugging.
"""
from __future__ import annotations

import datetime as dt
import enum
import json
import math
import re
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from brickorm.errors import QueryBuildError
from brickorm.schema.fragment import Cast, Ident, In, QueryWithArgs, Safe

if TYPE_CHECKING:
    from brickorm.dialect.base import Dialect
    from brickorm.schema.table import Table

_PLACEHOLDER_RE = re.compile(r"\\\?|\?(\d+|[A-Za-z_][A-Za-z0-9_]*)?")


@runtime_checkable
class QueryAppender(Protocol):
    """Anything that can render itself as a sub-statement."""

    def append_query(self, fmter: Formatter) -> str:
        ...


@dataclass
class RuntimeContext:
    """Accumulates the literal values inlined while rendering one statement."""

    args: list[Any] = field(default_factory=list)

    def add_value(self, value: Any) -> None:
        self.args.append(value)


class Formatter:
    """Renders fragments for one dialect and (optionally) one bound table.

    Args:
        dialect: Target dialect.
        table: Table used to expand named placeholders.
        sql_alias: Quoted alias overriding ``table.sql_alias`` (relation
            joins render the related table under the join alias).
        runtime: Shared value accumulator; a fresh one is created if omitted.
    """

    def __init__(
        self,
        dialect: Dialect,
        table: Table | None = None,
        sql_alias: str | None = None,
        runtime: RuntimeContext | None = None,
    ) -> None:
        self.dialect = dialect
        self.table = table
        self.sql_alias = sql_alias or (table.sql_alias if table is not None else None)
        self.runtime = runtime if runtime is not None else RuntimeContext()

    def for_table(self, table: Table | None, sql_alias: str | None = None) -> Formatter:
        """Return a formatter bound to ``table`` sharing this runtime context."""
        return Formatter(self.dialect, table, sql_alias, self.runtime)

    # ------------------------------------------------------------------
    # Fragments
    # ------------------------------------------------------------------

    def format(self, frag: QueryWithArgs) -> str:
        """Render a fragment, resolving bare identifiers and placeholders."""
        if frag.ident:
            return self.dialect.quote_identifier(frag.query)
        return self.format_query(frag.query, frag.args)

    def format_query(self, query: str, args: tuple[Any, ...] = ()) -> str:
        if "?" not in query:
            return query

        position = 0

        def replace(match: re.Match[str]) -> str:
            nonlocal position
            token = match.group(0)
            if token == "\\?":
                return "?"
            name = match.group(1)
            if name is None:
                if position >= len(args):
                    if not args:
                        return token
                    raise QueryBuildError(
                        f"Not enough arguments for placeholders in {query!r}."
                    )
                value = args[position]
                position += 1
                return self.append_value(value)
            if name.isdigit():
                index = int(name)
                if index >= len(args):
                    raise QueryBuildError(f"Placeholder ?{index} has no argument in {query!r}.")
                return self.append_value(args[index])
            named = self._named(name)
            return named if named is not None else token

        return _PLACEHOLDER_RE.sub(replace, query)

    def _named(self, name: str) -> str | None:
        table = self.table
        if table is None:
            return None
        alias = self.sql_alias
        if name == "TableName":
            return table.sql_name
        if name == "TableAlias":
            return alias
        if name == "TableColumns":
            return ", ".join(f"{alias}.{f.sql_name}" for f in table.fields)
        if name == "Columns":
            return ", ".join(f.sql_name for f in table.fields)
        if name == "PKs":
            return ", ".join(f"{alias}.{f.sql_name}" for f in table.pk_fields)
        return None

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def append_value(self, value: Any) -> str:
        """Render one argument as SQL."""
        dialect = self.dialect

        if isinstance(value, QueryAppender):
            return "(" + value.append_query(self) + ")"
        if isinstance(value, Safe):
            return value.sql
        if isinstance(value, Ident):
            return dialect.quote_identifier(value.name)
        if isinstance(value, In):
            return "(" + ", ".join(self._append_row(v) for v in value.values) + ")"
        if isinstance(value, Cast):
            return dialect.cast(self.append_value(value.value), value.sql_type)

        self.runtime.add_value(value)

        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return dialect.append_bool(value)
        if isinstance(value, enum.Enum):
            return self._append_scalar(value.value)
        return self._append_scalar(value)

    def _append_row(self, value: Any) -> str:
        if isinstance(value, tuple):
            return "(" + ", ".join(self.append_value(v) for v in value) + ")"
        return self.append_value(value)

    def _append_scalar(self, value: Any) -> str:
        dialect = self.dialect
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return dialect.append_bool(value)
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            if math.isfinite(value):
                return repr(value)
            return dialect.append_string(str(value))
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, str):
            return dialect.append_string(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return dialect.append_bytes(bytes(value))
        if isinstance(value, dt.datetime):
            return dialect.append_string(value.isoformat(sep=" "))
        if isinstance(value, (dt.date, dt.time)):
            return dialect.append_string(value.isoformat())
        if isinstance(value, uuid.UUID):
            return dialect.append_string(str(value))
        if isinstance(value, dict):
            return dialect.append_string(json.dumps(value, default=str))
        if isinstance(value, (list, tuple)):
            return dialect.append_array(value, self.append_value)
        raise QueryBuildError(f"Unsupported argument type: {type(value).__name__}")
