"""Core SelectPlan → SQL compilation logic.

``SelectCompiler`` is the top-level orchestrator for ``SELECT`` statements.
It wires together the clause-level sub-builders and drives the rendering
algorithm; all dialect-specific behaviour is delegated to the dialect.

Sub-builder hierarchy
---------------------
SelectCompiler
  ├── CteBuilder           (clause_builders.py)
  ├── ColumnsBuilder       (clause_builders.py)
  ├── FromClauseBuilder    (clause_builders.py)
  ├── IndexHintBuilder     (clause_builders.py)
  ├── RelationJoinBuilder  (clause_builders.py)
  ├── JoinClauseBuilder    (clause_builders.py)
  ├── WhereClauseBuilder   (clause_builders.py)
  ├── OrderLimitBuilder    (clause_builders.py)
  └── SetOpBuilder         (clause_builders.py)

Render modes
------------
``SELECT``         the statement itself.
``COUNT``          ``SELECT count(*) ...`` without ORDER / LIMIT / OFFSET /
                   FOR; wrapped as ``WITH _count_wrapper AS (...) SELECT
                   count(*) FROM _count_wrapper`` when the plan groups, is
                   DISTINCT or has set operations.
``SELECT_EXISTS``  ``SELECT EXISTS (<statement>)``.
``WHERE_EXISTS``   ``SELECT 1 WHERE EXISTS (<statement>)`` for dialects
                   without a native boolean EXISTS select.
"""
from __future__ import annotations

from brickorm.compile.clause_builders import (
    ColumnsBuilder,
    CteBuilder,
    FromClauseBuilder,
    IndexHintBuilder,
    JoinClauseBuilder,
    OrderLimitBuilder,
    RelationJoinBuilder,
    SetOpBuilder,
    WhereClauseBuilder,
    append_comment,
)
from brickorm.compile.context import CompilationContext, RenderMode
from brickorm.compile.formatter import Formatter
from brickorm.dialect.feature import Feature
from brickorm.schema.query_plan import SelectPlan

COUNT_WRAPPER = "_count_wrapper"


class SelectCompiler:
    """Compiles a :class:`SelectPlan` to SQL text.

    Args:
        ctx: Compilation context shared with nested statements.
        sql_alias: Quoted alias overriding the model table's alias.
    """

    def __init__(self, ctx: CompilationContext, sql_alias: str | None = None) -> None:
        self._ctx = ctx
        self._sql_alias = sql_alias

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(
        self,
        plan: SelectPlan,
        mode: RenderMode = RenderMode.SELECT,
        comment: str | None = None,
    ) -> str:
        """Render ``plan``.

        Args:
            plan: The accumulated clause state.
            mode: What to render the plan as.
            comment: Overrides ``plan.comment`` when given.

        Returns:
            Single-line SQL text.

        Raises:
            FeatureNotSupportedError: If the plan needs a feature the dialect
                lacks (e.g. CTEs).
        """
        head = append_comment(comment if comment is not None else plan.comment)

        if mode is RenderMode.SELECT_EXISTS:
            return head + "SELECT EXISTS (" + self._build_core(plan, count=False) + ")"
        if mode is RenderMode.WHERE_EXISTS:
            return head + "SELECT 1 WHERE EXISTS (" + self._build_core(plan, count=False) + ")"
        if mode is RenderMode.COUNT:
            return head + self._build_count(plan)
        return head + self._build_core(plan, count=False)

    # ------------------------------------------------------------------
    # Count
    # ------------------------------------------------------------------

    @staticmethod
    def needs_count_wrapper(plan: SelectPlan) -> bool:
        return bool(plan.group) or plan.has_distinct or bool(plan.set_ops)

    def _build_count(self, plan: SelectPlan) -> str:
        if not self.needs_count_wrapper(plan):
            return self._build_core(plan, count=True)

        # Inner statement keeps its columns but drops ORDER / LIMIT / FOR.
        inner = self._build_core(plan, count=True, count_columns=False)
        if self._ctx.dialect.has_feature(Feature.CTE):
            return f"WITH {COUNT_WRAPPER} AS ({inner}) SELECT count(*) FROM {COUNT_WRAPPER}"
        return f"SELECT count(*) FROM ({inner}) AS {COUNT_WRAPPER}"

    # ------------------------------------------------------------------
    # Core statement
    # ------------------------------------------------------------------

    def _formatter(self, plan: SelectPlan) -> Formatter:
        return self._ctx.formatter(plan.table, self._sql_alias)

    def _build_core(self, plan: SelectPlan, count: bool, count_columns: bool = True) -> str:
        ctx = self._ctx
        fmter = self._formatter(plan)
        order_limit = OrderLimitBuilder(ctx, fmter)

        parens = bool(plan.set_ops) and ctx.dialect.parenthesize_compound
        sql = CteBuilder(ctx).build(plan.with_)
        if parens:
            sql += "("

        sql += "SELECT "
        if plan.distinct_on is not None:
            if plan.distinct_on:
                exprs = ", ".join(fmter.format(d) for d in plan.distinct_on)
                sql += f"DISTINCT ON ({exprs}) "
            else:
                sql += "DISTINCT "

        if count and count_columns:
            sql += "count(*)"
        else:
            if not count and order_limit.needs_synthetic_order(plan):
                sql += f"0 AS {ctx.dialect.synthetic_order_column}, "
            sql += ColumnsBuilder(ctx, fmter).build(plan)

        sql += FromClauseBuilder(ctx, fmter).build(plan)
        sql += IndexHintBuilder(ctx).build(plan.index_hints)
        sql += RelationJoinBuilder(ctx, fmter).build(plan.relations, plan.deleted)
        sql += JoinClauseBuilder(fmter).build(plan.joins)
        sql += WhereClauseBuilder(ctx, fmter).build(plan)

        if plan.group:
            sql += " GROUP BY " + ", ".join(fmter.format(g) for g in plan.group)
        if plan.having:
            sql += " HAVING " + " AND ".join(f"({fmter.format(h)})" for h in plan.having)

        if not count:
            sql += order_limit.build(plan)

        if plan.set_ops:
            if parens:
                sql += ")"
            sql += SetOpBuilder(ctx).build(plan.set_ops)
        return sql
