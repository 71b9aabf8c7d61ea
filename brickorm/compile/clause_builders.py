"""Clause-level SQL builders.

Each class handles exactly one SQL clause and returns its text with a
leading space (or an empty string when the clause is absent), so the
orchestrator can simply concatenate them.  Nested statements (CTE bodies,
set-operation branches) render through :meth:`append_query` with a
formatter sharing the outer :class:`~brickorm.compile.formatter.RuntimeContext`.

Classes
-------
CteBuilder            — ``WITH [RECURSIVE] "name" AS (...)``
ColumnsBuilder        — the select list, including inline relation columns
FromClauseBuilder     — ``FROM "table" AS "alias", ...``
IndexHintBuilder      — ``USE / IGNORE / FORCE INDEX (...)`` after the tables
RelationJoinBuilder   — ``LEFT JOIN`` for inline to-one relations
JoinClauseBuilder     — explicit ``JOIN ... ON (...)``
WhereClauseBuilder    — ``WHERE (...) AND (...)`` plus the soft-delete filter
OrderLimitBuilder     — ``ORDER BY``, row limiting and ``FOR ...``
SetOpBuilder          — ``UNION / INTERSECT / EXCEPT (...)``
ReturningBuilder      — ``RETURNING ...``
"""
from __future__ import annotations

from collections.abc import Sequence

from brickorm.compile.context import CompilationContext
from brickorm.compile.formatter import Formatter
from brickorm.dialect.feature import Feature
from brickorm.schema.fragment import QueryWithArgs, WhereGroup, WhereItem
from brickorm.schema.query_plan import (
    BasePlan,
    JoinClause,
    RelationJoin,
    INDEX_HINT_DIRECTIVES,
    DeletedFilter,
    SelectPlan,
    SetOpClause,
    WithClause,
    deferred_key_fields,
    walk_inline,
)
from brickorm.schema.table import Table


def append_comment(comment: str) -> str:
    """Render a leading comment; ``*/`` inside it is neutralized."""
    if not comment:
        return ""
    return "/* " + comment.replace("*/", "*\\/") + " */ "


def append_where(fmter: Formatter, items: Sequence[WhereItem]) -> str:
    """Render WHERE items, each parenthesized and joined by its own separator."""
    out: list[str] = []
    for item in items:
        if isinstance(item, WhereGroup):
            inner = append_where(fmter, item.items)
            if not inner:
                continue
            sql = "(" + inner + ")"
        else:
            sql = "(" + fmter.format(item) + ")"
        if out:
            out.append(item.sep)
        out.append(sql)
    return "".join(out)


def soft_delete_condition(table: Table | None, sql_alias: str, deleted: DeletedFilter) -> str:
    """Render the soft-delete filter for ``table``, or ``""`` when none applies."""
    if table is None or table.soft_delete_field is None or deleted is DeletedFilter.ALL:
        return ""
    column = f"{sql_alias}.{table.soft_delete_field.sql_name}"
    if deleted is DeletedFilter.DELETED:
        return column + " IS NOT NULL"
    return column + " IS NULL"


def append_column(fmter: Formatter, frag: QueryWithArgs, qualify: bool = True) -> str:
    """Render one column fragment.

    A bare name that is a field of the bound table renders as
    ``"alias"."column"`` (or just ``"column"`` with ``qualify=False``).
    """
    if not frag.ident:
        return fmter.format(frag)
    table = fmter.table
    field = table.field_map.get(frag.query) if table is not None else None
    if field is None:
        return fmter.dialect.quote_identifier(frag.query)
    if qualify and fmter.sql_alias:
        return f"{fmter.sql_alias}.{field.sql_name}"
    return field.sql_name


class CteBuilder:
    """Builds the ``WITH [RECURSIVE] "name" AS (...)`` prefix."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, ctes: Sequence[WithClause]) -> str:
        if not ctes:
            return ""
        self._ctx.dialect.require_feature(Feature.CTE, clause="WITH")
        fmter = self._ctx.formatter()
        keyword = "WITH RECURSIVE " if any(c.recursive for c in ctes) else "WITH "
        parts = [
            f"{self._ctx.quote(cte.name)} AS ({cte.query.append_query(fmter)})"
            for cte in ctes
        ]
        return keyword + ", ".join(parts) + " "


class ColumnsBuilder:
    """Builds the select list.

    Explicit columns win; otherwise every field of the model table is
    selected under the table alias; with neither, ``*``.  Columns of inline
    relation joins are appended as ``"alias"."field" AS "alias__field"``.
    """

    def __init__(self, ctx: CompilationContext, fmter: Formatter) -> None:
        self._ctx = ctx
        self._fmter = fmter

    def build(self, plan: SelectPlan) -> str:
        cols = self._model_columns(plan)
        cols.extend(RelationJoinBuilder(self._ctx, self._fmter).columns(plan.relations))
        if not cols:
            return "*"
        return ", ".join(cols)

    def _model_columns(self, plan: BasePlan) -> list[str]:
        fmter = self._fmter
        if plan.columns is not None:
            cols = [append_column(fmter, c) for c in plan.columns]
            if isinstance(plan, SelectPlan):
                return self._with_key_columns(plan, cols)
            return cols
        table = plan.table
        if table is None:
            return []
        return [f"{fmter.sql_alias}.{f.sql_name}" for f in table.fields]

    def _with_key_columns(self, plan: SelectPlan, cols: list[str]) -> list[str]:
        selected = {c.query for c in plan.columns or () if c.ident}
        for f in deferred_key_fields(plan.relations):
            if f.name not in selected:
                cols.append(f"{self._fmter.sql_alias}.{f.sql_name}")
        return cols


class FromClauseBuilder:
    """Builds ``FROM <model table>, <extra tables>``."""

    def __init__(self, ctx: CompilationContext, fmter: Formatter) -> None:
        self._ctx = ctx
        self._fmter = fmter

    def build(self, plan: BasePlan) -> str:
        items = self.items(plan)
        if not items:
            return ""
        return " FROM " + ", ".join(items)

    def items(self, plan: BasePlan) -> list[str]:
        items: list[str] = []
        if plan.model_table_expr is not None:
            items.append(self._fmter.format(plan.model_table_expr))
        elif plan.table is not None:
            items.append(self.model_table(plan.table))
        items.extend(self._fmter.format(t) for t in plan.tables)
        return items

    def model_table(self, table: Table) -> str:
        return f"{table.sql_name} AS {self._fmter.sql_alias}"


class IndexHintBuilder:
    """Builds MySQL index hints; placed right after the FROM tables."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, hints: dict[str, list[str]]) -> str:
        if not hints:
            return ""
        self._ctx.dialect.require_feature(Feature.INDEX_HINTS, clause="INDEX")
        quote = self._ctx.quote
        sql = ""
        for directive in INDEX_HINT_DIRECTIVES:
            names = hints.get(directive)
            if names:
                sql += f" {directive} (" + ", ".join(quote(n) for n in names) + ")"
        return sql


class RelationJoinBuilder:
    """Renders inline (to-one) relation joins, depth-first."""

    def __init__(self, ctx: CompilationContext, fmter: Formatter) -> None:
        self._ctx = ctx
        self._fmter = fmter

    def _join_formatter(self, join: RelationJoin) -> Formatter:
        return self._fmter.for_table(join.relation.join_table, self._ctx.quote(join.alias))

    def columns(self, joins: Sequence[RelationJoin]) -> list[str]:
        cols: list[str] = []
        for join in walk_inline(list(joins)):
            cols.extend(self._join_columns(join))
        return cols

    def _join_columns(self, join: RelationJoin) -> list[str]:
        quote = self._ctx.quote
        alias = quote(join.alias)
        table = join.relation.join_table

        if join.columns is None:
            return [
                f"{alias}.{f.sql_name} AS {quote(join.alias + '__' + f.name)}"
                for f in table.fields
            ]

        fmter = self._join_formatter(join)
        cols: list[str] = []
        selected: set[str] = set()
        for frag in join.columns:
            if frag.ident:
                selected.add(frag.query)
                cols.append(
                    f"{alias}.{quote(frag.query)} AS {quote(join.alias + '__' + frag.query)}"
                )
            else:
                cols.append(fmter.format(frag))
        for f in deferred_key_fields(join.children):
            if f.name not in selected:
                cols.append(f"{alias}.{f.sql_name} AS {quote(join.alias + '__' + f.name)}")
        return cols

    def build(self, joins: Sequence[RelationJoin], deleted: DeletedFilter = DeletedFilter.ALIVE) -> str:
        """Render the joins.

        Soft-deleted related rows are left out unless ``deleted`` is
        :attr:`DeletedFilter.ALL`.
        """
        join_deleted = DeletedFilter.ALL if deleted is DeletedFilter.ALL else DeletedFilter.ALIVE
        return "".join(self._build_join(j, join_deleted) for j in walk_inline(list(joins)))

    def _build_join(self, join: RelationJoin, deleted: DeletedFilter) -> str:
        quote = self._ctx.quote
        rel = join.relation
        alias = quote(join.alias)
        parent = quote(join.parent_alias)

        conds = [
            f"{alias}.{jf.sql_name} = {parent}.{bf.sql_name}"
            for bf, jf in zip(rel.base_fields, rel.join_fields)
        ]
        sql = f" LEFT JOIN {rel.join_table.sql_name} AS {alias} ON ({' AND '.join(conds)})"

        fmter = self._join_formatter(join)
        for cond in rel.conditions:
            sql += f" AND ({fmter.format_query(cond)})"
        for on in join.on:
            sql += f" AND ({fmter.format(on)})"
        soft_delete = soft_delete_condition(rel.join_table, alias, deleted)
        if soft_delete:
            sql += f" AND {soft_delete}"
        return sql

    def where(self, joins: Sequence[RelationJoin]) -> list[str]:
        """Render filters captured from inline-join refinements."""
        parts = []
        for join in walk_inline(list(joins)):
            if join.where:
                parts.append(append_where(self._join_formatter(join), join.where))
        return parts


class JoinClauseBuilder:
    """Builds explicit ``JOIN ... ON (...)`` fragments."""

    def __init__(self, fmter: Formatter) -> None:
        self._fmter = fmter

    def build(self, joins: Sequence[JoinClause]) -> str:
        return "".join(self._build_join(j) for j in joins)

    def _build_join(self, join: JoinClause) -> str:
        sql = " " + self._fmter.format(join.join)
        if join.on:
            sql += " ON " + append_where(self._fmter, join.on)
        return sql


class WhereClauseBuilder:
    """Builds ``WHERE`` from the plan's filters, inline-join filters and the
    soft-delete filter of the model table.
    """

    def __init__(self, ctx: CompilationContext, fmter: Formatter) -> None:
        self._ctx = ctx
        self._fmter = fmter

    def build(self, plan: BasePlan, soft_delete: bool = True) -> str:
        parts: list[str] = []
        primary = append_where(self._fmter, plan.where)
        if primary:
            parts.append(primary)
        if isinstance(plan, SelectPlan):
            parts.extend(RelationJoinBuilder(self._ctx, self._fmter).where(plan.relations))
        if soft_delete and self._fmter.sql_alias:
            deleted = soft_delete_condition(plan.table, self._fmter.sql_alias, plan.deleted)
            if deleted:
                parts.append(deleted)
        if not parts:
            return ""
        if len(parts) == 1:
            return " WHERE " + parts[0]
        return " WHERE " + " AND ".join(f"({p})" for p in parts)


class OrderLimitBuilder:
    """Builds ``ORDER BY``, the dialect's row limiting and ``FOR ...``.

    Dialects whose limit syntax needs an ORDER BY (``synthetic_order_column``)
    get one when the caller limited an unordered query.
    """

    def __init__(self, ctx: CompilationContext, fmter: Formatter) -> None:
        self._ctx = ctx
        self._fmter = fmter

    def needs_synthetic_order(self, plan: SelectPlan) -> bool:
        return (
            self._ctx.dialect.synthetic_order_column is not None
            and (plan.limit > 0 or plan.offset > 0)
            and not plan.order
        )

    def build(self, plan: SelectPlan) -> str:
        sql = ""
        if plan.order:
            sql += " ORDER BY " + ", ".join(self._fmter.format(o) for o in plan.order)
        elif self.needs_synthetic_order(plan):
            sql += f" ORDER BY {self._ctx.dialect.synthetic_order_column}"
        sql += self._ctx.dialect.append_limit_offset(plan.limit, plan.offset)
        if plan.lock is not None:
            sql += " FOR " + self._fmter.format(plan.lock)
        return sql


class SetOpBuilder:
    """Builds trailing ``UNION / INTERSECT / EXCEPT (<query>)`` branches."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, set_ops: Sequence[SetOpClause]) -> str:
        fmter = self._ctx.formatter()
        if not self._ctx.dialect.parenthesize_compound:
            return "".join(f" {op.op} {op.query.append_query(fmter)}" for op in set_ops)
        return "".join(
            f" {op.op} ({op.query.append_query(fmter)})" for op in set_ops
        )


class ReturningBuilder:
    """Builds ``RETURNING ...``; bare names render unqualified."""

    def __init__(self, fmter: Formatter) -> None:
        self._fmter = fmter

    def build(self, returning: Sequence[QueryWithArgs]) -> str:
        if not returning:
            return ""
        cols = [append_column(self._fmter, r, qualify=False) for r in returning]
        return " RETURNING " + ", ".join(cols)
