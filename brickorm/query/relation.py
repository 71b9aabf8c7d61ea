"""Relation graph resolver.

Relations requested with ``SelectQuery.relation()`` become a tree of
:class:`~brickorm.schema.query_plan.RelationJoin` nodes on the query plan.

- **Inline** joins (has-one, belongs-to) are folded into the primary
  statement as ``LEFT JOIN``s; their columns come back with
  ``<alias>__<field>`` labels and are hydrated with the parent row.
- **Deferred** joins (has-many, many-to-many) are loaded after the primary
  scan: one follow-up ``SELECT`` per join, restricted to the distinct keys of
  the parents that were actually scanned, whose rows are then distributed
  onto the parents.  No rows, no follow-up statements.  Keys are coerced to
  the owner's key field types before matching, so a driver returning a UUID
  key as text still finds its parent.

Joins nested under a deferred join travel into its follow-up query, so they
are resolved the same way one level down.
"""
from __future__ import annotations

import functools
from collections import defaultdict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

from brickorm.errors import BrickORMError, RelationDepthError, RelationNotFoundError
from brickorm.query.base import in_condition
from brickorm.scan import key_of
from brickorm.schema.fragment import QueryWithArgs, safe_query, unsafe_ident
from brickorm.schema.query_plan import RelationJoin, find_join
from brickorm.schema.table import Field, Relation, RelationKind, Table

if TYPE_CHECKING:
    from brickorm.hooks import QueryContext
    from brickorm.query.select import SelectQuery

M2M_PREFIX = "__m2m__"


@dataclass(frozen=True)
class RelationOpts:
    """Options for :meth:`SelectQuery.relation_with_opts`.

    Attributes:
        apply: Refinement for the related query.  For inline joins it is
            evaluated once, immediately: its columns restrict the joined
            columns and its filters join the primary WHERE.  For deferred
            joins it is applied to the follow-up query.
        on: Additional ``ON`` conditions for inline joins (``?TableAlias``
            resolves to the join alias).
    """

    apply: Callable[[SelectQuery], Any] | None = None
    on: tuple[str | QueryWithArgs, ...] = ()


# ---------------------------------------------------------------------------
# Building the join tree
# ---------------------------------------------------------------------------


def add_relation(query: SelectQuery, path: str, opts: RelationOpts) -> None:
    """Create or reuse one join node per segment of ``path``.

    Errors are recorded as the query's sticky error.
    """
    table = query._require_table("relation")
    if table is None:
        return

    segments = path.split(".")
    max_depth = query.db.config.max_relation_depth
    if len(segments) > max_depth:
        query._set_err(RelationDepthError(path, max_depth))
        return

    try:
        join = _resolve_path(query.plan.relations, table, segments)
    except BrickORMError as exc:
        query._set_err(exc)
        return

    join.on.extend(safe_query(o) if isinstance(o, str) else o for o in opts.on)
    if opts.apply is not None:
        join.apply = opts.apply
        if join.is_inline:
            _capture(query, join)


def _resolve_path(joins: list[RelationJoin], table: Table, segments: Sequence[str]) -> RelationJoin:
    """Walk ``segments`` from ``table``, creating missing join nodes; return the last."""
    parent_alias = table.alias
    prefix = ""
    current = table
    for segment in segments[:-1]:
        join = _step(joins, current, segment, prefix, parent_alias)
        parent_alias = join.alias
        prefix = join.alias + "__"
        current = join.relation.join_table
        joins = join.children
    return _step(joins, current, segments[-1], prefix, parent_alias)


def _step(joins: list[RelationJoin], current: Table, segment: str, prefix: str, parent_alias: str) -> RelationJoin:
    join = find_join(joins, segment)
    if join is None:
        relation = current.relation(segment)
        if relation is None:
            raise RelationNotFoundError(current.name, segment, sorted(current.relations))
        join = RelationJoin(relation, alias=prefix + segment, parent_alias=parent_alias)
        joins.append(join)
    return join


def _capture(query: SelectQuery, join: RelationJoin) -> None:
    """Evaluate an inline join's refinement once against a scratch query."""
    scratch = query.db.select(join.relation.join_table.model)
    join.apply(scratch)
    if scratch.error is not None:
        query._set_err(scratch.error)
        return
    join.columns = list(scratch.plan.columns) if scratch.plan.columns is not None else None
    join.where = list(scratch.plan.where)


# ---------------------------------------------------------------------------
# Loading deferred joins
# ---------------------------------------------------------------------------


async def load_relations(
    query: SelectQuery,
    instances: Sequence[Any],
    joins: Sequence[RelationJoin],
    ctx: QueryContext | None,
    timeout: float | None,
) -> None:
    """Resolve every deferred join below ``joins`` for ``instances``."""
    for join in joins:
        if join.is_inline:
            related = [
                child for child in (getattr(i, join.name, None) for i in instances)
                if child is not None
            ]
            if related:
                await load_relations(query, related, join.children, ctx, timeout)
        else:
            await _load_deferred(query, join, instances, ctx, timeout)


@functools.lru_cache(maxsize=None)
def _key_adapter(model: type, name: str) -> TypeAdapter[Any]:
    return TypeAdapter(model.model_fields[name].annotation)


def _coerce_key(rel: Relation, values: Sequence[Any]) -> tuple[Any, ...]:
    """Validate ``values`` against the owner's ``base_fields`` annotations."""
    model = rel.table.model
    return tuple(
        None if value is None else _key_adapter(model, field.name).validate_python(value)
        for field, value in zip(rel.base_fields, values)
    )


def _owner_key(rel: Relation, obj: Any, fields: Sequence[Field]) -> tuple[Any, ...]:
    return _coerce_key(rel, key_of(obj, fields))


def _parent_keys(parents: Sequence[Any], join: RelationJoin) -> list[tuple[Any, ...]]:
    seen: dict[tuple[Any, ...], None] = {}
    for parent in parents:
        key = _owner_key(join.relation, parent, join.relation.base_fields)
        if any(v is None for v in key):
            continue
        seen.setdefault(key, None)
    return list(seen)


def follow_up_query(
    query: SelectQuery, join: RelationJoin, keys: Sequence[tuple[Any, ...]]
) -> SelectQuery:
    """Build the follow-up ``SELECT`` loading ``join`` for the given parent keys."""
    rel = join.relation
    related = rel.join_table
    quote = query.dialect.quote_identifier

    follow = query.db.select(related.model).conn(query._conn)
    follow.plan.relations = [c.rerooted(related.alias) for c in join.children]

    if rel.kind is RelationKind.MANY_TO_MANY:
        through = quote(rel.m2m_table)
        alias = quote(rel.m2m_alias)
        follow.join(f"JOIN {through} AS {alias}")
        for column, field in zip(rel.m2m_join_columns, rel.join_fields):
            follow.join_on(f"{alias}.{quote(column)} = ?TableAlias.{field.sql_name}")
        refs = [f"{alias}.{quote(c)}" for c in rel.m2m_base_columns]
    else:
        refs = [f"?TableAlias.{f.sql_name}" for f in rel.join_fields]

    frag = in_condition(query.dialect, refs, keys)
    follow.where(frag.query, *frag.args)
    for condition in rel.conditions:
        follow.where(condition)

    if join.apply is not None:
        join.apply(follow)

    if rel.kind is RelationKind.MANY_TO_MANY:
        if follow.plan.columns is None:
            follow.plan.columns = [unsafe_ident(f.name) for f in related.fields]
        for column in rel.m2m_base_columns:
            follow.plan.columns.append(
                safe_query(f"{alias}.{quote(column)} AS {quote(M2M_PREFIX + column)}")
            )
    elif follow.plan.columns is not None:
        selected = {c.query for c in follow.plan.columns if c.ident}
        for field in rel.join_fields:
            if field.name not in selected:
                follow.plan.columns.append(unsafe_ident(field.name))
    return follow


async def _load_deferred(
    query: SelectQuery,
    join: RelationJoin,
    parents: Sequence[Any],
    ctx: QueryContext | None,
    timeout: float | None,
) -> None:
    rel = join.relation
    keys = _parent_keys(parents, join)

    groups: dict[tuple[Any, ...], list[Any]] = defaultdict(list)
    if keys:
        follow = follow_up_query(query, join, keys)
        children, rows = await follow._scan(ctx, timeout, with_rows=True)

        if rel.kind is RelationKind.MANY_TO_MANY:
            columns = [M2M_PREFIX + c for c in rel.m2m_base_columns]
            for child, row in zip(children, rows):
                groups[_coerce_key(rel, [row[c] for c in columns])].append(child)
        else:
            for child in children:
                groups[_owner_key(rel, child, rel.join_fields)].append(child)

    for parent in parents:
        key = _owner_key(rel, parent, rel.base_fields)
        setattr(parent, rel.name, list(groups.get(key, [])))
