"""SQL fragment value types.

Every clause of a query is accumulated as a list of fragments: a raw SQL
snippet plus the positional arguments its ``?`` placeholders refer to.
Fragments are frozen; a query never edits a fragment in place, it appends
or replaces whole fragments, which keeps :meth:`SelectQuery.clone` a matter
of copying lists.

Argument wrappers
-----------------
``Ident``  — rendered as a quoted identifier.
``Safe``   — rendered verbatim (no quoting, no escaping).
``In``     — rendered as a parenthesized, comma-separated list.
``Cast``   — rendered as a dialect-specific cast of a literal.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Union


@dataclass(frozen=True)
class QueryWithArgs:
    """A SQL snippet and its positional arguments.

    Attributes:
        query: SQL text with ``?`` / ``?N`` / ``?Name`` placeholders.
        args: Values for the placeholders.
        ident: When ``True`` the snippet is a bare identifier supplied by the
            caller (``column("name")``); the compiler may resolve it against
            the bound table's fields before quoting it.
    """

    query: str
    args: tuple[Any, ...] = ()
    ident: bool = False

    def is_zero(self) -> bool:
        return not self.query and not self.args


@dataclass(frozen=True)
class QueryWithSep(QueryWithArgs):
    """A fragment that carries the separator joining it to its predecessor.

    Attributes:
        sep: ``" AND "`` or ``" OR "``; ignored for the first fragment.
    """

    sep: str = " AND "


@dataclass(frozen=True)
class WhereGroup:
    """A parenthesized group of WHERE fragments joined to its predecessor by ``sep``."""

    sep: str
    items: tuple[WhereItem, ...] = field(default_factory=tuple)


WhereItem = Union[QueryWithSep, WhereGroup]


def safe_query(query: str, args: Iterable[Any] = ()) -> QueryWithArgs:
    """Return a fragment for caller-written SQL."""
    return QueryWithArgs(query, tuple(args))


def safe_query_with_sep(query: str, args: Iterable[Any] = (), sep: str = " AND ") -> QueryWithSep:
    """Return a separator-carrying fragment for caller-written SQL."""
    return QueryWithSep(query, tuple(args), sep=sep)


def unsafe_ident(name: str) -> QueryWithArgs:
    """Return a fragment for an identifier that must be quoted when rendered."""
    return QueryWithArgs(name, (), ident=True)


# ---------------------------------------------------------------------------
# Argument wrappers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Ident:
    """An identifier argument: ``where("? = 1", Ident("user.id"))``."""

    name: str


@dataclass(frozen=True)
class Safe:
    """Raw SQL argument inserted without quoting."""

    sql: str


@dataclass(frozen=True)
class In:
    """A list argument rendered as ``(a, b, c)``.

    Nested tuples render as row values: ``In([(1, 2), (3, 4)])`` →
    ``((1, 2), (3, 4))``.
    """

    values: Sequence[Any]

    def __init__(self, values: Iterable[Any]) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class Cast:
    """A literal rendered with a dialect-specific cast (``'1'::int`` / ``CAST('1' AS int)``)."""

    value: Any
    sql_type: str
