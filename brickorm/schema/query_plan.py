"""Query plans: the accumulated clause state of one statement.

Fluent query objects (``SelectQuery``, ``InsertQuery`` …) mutate a plan;
the compilers in :mod:`brickorm.compile` render a plan to SQL.  Plans hold
frozen fragments in plain lists, so :meth:`clone` is a matter of copying
lists (and cloning nested queries and relation joins).
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from brickorm.schema.fragment import QueryWithArgs, QueryWithSep, WhereItem

if TYPE_CHECKING:
    from brickorm.schema.table import Field, Relation, Table


def _clone_query(query: Any) -> Any:
    clone = getattr(query, "clone", None)
    return clone() if callable(clone) else query


class DeletedFilter(str, enum.Enum):
    """Which rows of a soft-delete model a statement sees."""

    ALIVE = "alive"
    DELETED = "deleted"
    ALL = "all"


#: Index hint directives in rendering order.
INDEX_HINT_DIRECTIVES: tuple[str, ...] = tuple(
    f"{action} INDEX{scope}"
    for action in ("USE", "IGNORE", "FORCE")
    for scope in ("", " FOR JOIN", " FOR ORDER BY", " FOR GROUP BY")
)


@dataclass
class WithClause:
    """One common table expression: ``"name" AS (query)``."""

    name: str
    query: Any
    recursive: bool = False

    def clone(self) -> WithClause:
        return WithClause(self.name, _clone_query(self.query), self.recursive)


@dataclass
class JoinClause:
    """An explicit join and the ``ON`` conditions attached to it."""

    join: QueryWithArgs
    on: list[QueryWithSep] = field(default_factory=list)

    def clone(self) -> JoinClause:
        return JoinClause(self.join, list(self.on))


@dataclass
class SetOpClause:
    """A trailing ``UNION`` / ``INTERSECT`` / ``EXCEPT`` branch."""

    op: str
    query: Any

    def clone(self) -> SetOpClause:
        return SetOpClause(self.op, _clone_query(self.query))


@dataclass
class RelationJoin:
    """Per-query instantiation of a :class:`Relation`.

    Joins form a tree owned by the plan; a join knows its parent only by
    alias.

    Attributes:
        relation: The resolved relation.
        alias: Unquoted alias of the joined table (``parent__child`` when
            nested).
        parent_alias: Unquoted alias of the table the join hangs off.
        apply: Refinement applied to the follow-up query (deferred joins).
        columns: Column refinement captured from ``apply`` (inline joins).
        where: Filters captured from ``apply`` (inline joins); rendered
            against the joined table and added to the primary WHERE.
        on: Additional ``ON`` conditions.
        children: Joins nested under this one.
    """

    relation: Relation
    alias: str
    parent_alias: str
    apply: Callable[[Any], Any] | None = None
    columns: list[QueryWithArgs] | None = None
    where: list[WhereItem] = field(default_factory=list)
    on: list[QueryWithArgs] = field(default_factory=list)
    children: list[RelationJoin] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.relation.name

    @property
    def is_inline(self) -> bool:
        return self.relation.is_inline

    def child(self, name: str) -> RelationJoin | None:
        for join in self.children:
            if join.name == name:
                return join
        return None

    def clone(self) -> RelationJoin:
        return RelationJoin(
            relation=self.relation,
            alias=self.alias,
            parent_alias=self.parent_alias,
            apply=self.apply,
            columns=list(self.columns) if self.columns is not None else None,
            where=list(self.where),
            on=list(self.on),
            children=[c.clone() for c in self.children],
        )

    def rerooted(self, parent_alias: str, prefix: str = "") -> RelationJoin:
        """Return a copy hanging off ``parent_alias`` with aliases recomputed."""
        alias = prefix + self.name
        join = self.clone()
        join.alias = alias
        join.parent_alias = parent_alias
        join.children = [c.rerooted(alias, alias + "__") for c in self.children]
        return join


def find_join(joins: list[RelationJoin], name: str) -> RelationJoin | None:
    for join in joins:
        if join.name == name:
            return join
    return None


def deferred_key_fields(joins: list[RelationJoin]) -> list[Field]:
    """Owner fields that the deferred joins among ``joins`` are matched on."""
    fields: list[Field] = []
    for join in joins:
        if join.is_inline:
            continue
        for f in join.relation.base_fields:
            if f not in fields:
                fields.append(f)
    return fields


def walk_inline(joins: list[RelationJoin]):
    """Yield inline joins depth-first, not descending into deferred joins."""
    for join in joins:
        if join.is_inline:
            yield join
            yield from walk_inline(join.children)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


@dataclass
class BasePlan:
    """Clause state shared by every statement kind.

    Attributes:
        table: Model table, when the query is bound to a model.
        with_: Common table expressions.
        tables: Extra ``FROM`` tables / expressions.
        model_table_expr: Replaces ``"name" AS "alias"`` for the model table.
        columns: Explicit columns; ``None`` means the default column list.
        where: WHERE fragments and groups.
        returning: ``RETURNING`` expressions (mutations).
        comment: Leading ``/* ... */`` comment.
        deleted: Soft-deleted rows filter; ignored for models without a
            soft-delete column.
    """

    table: Table | None = None
    with_: list[WithClause] = field(default_factory=list)
    tables: list[QueryWithArgs] = field(default_factory=list)
    model_table_expr: QueryWithArgs | None = None
    columns: list[QueryWithArgs] | None = None
    where: list[WhereItem] = field(default_factory=list)
    returning: list[QueryWithArgs] = field(default_factory=list)
    comment: str = ""
    deleted: DeletedFilter = DeletedFilter.ALIVE

    def _base_kwargs(self) -> dict[str, Any]:
        return dict(
            table=self.table,
            with_=[w.clone() for w in self.with_],
            tables=list(self.tables),
            model_table_expr=self.model_table_expr,
            columns=list(self.columns) if self.columns is not None else None,
            where=list(self.where),
            returning=list(self.returning),
            comment=self.comment,
            deleted=self.deleted,
        )


@dataclass
class SelectPlan(BasePlan):
    """Clause state of a ``SELECT``.

    ``distinct_on`` is ``None`` without DISTINCT, an empty list for plain
    ``DISTINCT`` and the expressions for ``DISTINCT ON (...)``.
    ``index_hints`` maps a directive from :data:`INDEX_HINT_DIRECTIVES` to
    index names.
    """

    distinct_on: list[QueryWithArgs] | None = None
    joins: list[JoinClause] = field(default_factory=list)
    relations: list[RelationJoin] = field(default_factory=list)
    group: list[QueryWithArgs] = field(default_factory=list)
    having: list[QueryWithArgs] = field(default_factory=list)
    order: list[QueryWithArgs] = field(default_factory=list)
    limit: int = 0
    offset: int = 0
    lock: QueryWithArgs | None = None
    set_ops: list[SetOpClause] = field(default_factory=list)
    index_hints: dict[str, list[str]] = field(default_factory=dict)

    @property
    def has_distinct(self) -> bool:
        return self.distinct_on is not None

    def clone(self) -> SelectPlan:
        return SelectPlan(
            **self._base_kwargs(),
            distinct_on=list(self.distinct_on) if self.distinct_on is not None else None,
            joins=[j.clone() for j in self.joins],
            relations=[r.clone() for r in self.relations],
            group=list(self.group),
            having=list(self.having),
            order=list(self.order),
            limit=self.limit,
            offset=self.offset,
            lock=self.lock,
            set_ops=[s.clone() for s in self.set_ops],
            index_hints={k: list(v) for k, v in self.index_hints.items()},
        )


@dataclass
class InsertPlan(BasePlan):
    """Clause state of an ``INSERT``; ``on`` is the conflict target."""

    on: QueryWithArgs | None = None
    set_: list[QueryWithArgs] = field(default_factory=list)
    ignore: bool = False

    def clone(self) -> InsertPlan:
        return InsertPlan(
            **self._base_kwargs(), on=self.on, set_=list(self.set_), ignore=self.ignore
        )


@dataclass
class UpdatePlan(BasePlan):
    """Clause state of an ``UPDATE``."""

    set_: list[QueryWithArgs] = field(default_factory=list)
    allow_unfiltered: bool = False

    def clone(self) -> UpdatePlan:
        return UpdatePlan(
            **self._base_kwargs(), set_=list(self.set_), allow_unfiltered=self.allow_unfiltered
        )


@dataclass
class DeletePlan(BasePlan):
    """Clause state of a ``DELETE``.

    Attributes:
        allow_unfiltered: Permit a statement without WHERE.
        force: Remove rows of a soft-delete model instead of marking them.
        deleted_at: Timestamp written to the soft-delete column.
    """

    allow_unfiltered: bool = False
    force: bool = False
    deleted_at: Any = None

    def clone(self) -> DeletePlan:
        return DeletePlan(
            **self._base_kwargs(),
            allow_unfiltered=self.allow_unfiltered,
            force=self.force,
            deleted_at=self.deleted_at,
        )
