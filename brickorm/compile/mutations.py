"""INSERT / UPDATE / DELETE compilation.

Each compiler renders one mutation plan.  Details handled here:

- the target table alias is only rendered where the dialect accepts it
  (``INSERT_TABLE_ALIAS``, ``UPDATE_TABLE_ALIAS`` / ``UPDATE_MULTI_TABLE``,
  ``DELETE_TABLE_ALIAS``); otherwise ``?TableAlias`` resolves to the table
  name so qualified filters stay valid;
- upserts render as ``ON CONFLICT ... [SET ...]`` or ``ON DUPLICATE KEY
  UPDATE ...``; ``ignore`` as ``ON CONFLICT DO NOTHING`` or ``INSERT IGNORE``;
- rows of soft-delete models that are already deleted are left alone by
  UPDATE and DELETE unless the query asks for them, and DELETE on such a
  model renders as an UPDATE of the soft-delete column; a forced DELETE
  removes the rows with no soft-delete filter;
- ``RETURNING`` requires ``INSERT_RETURNING`` (inserts) or ``RETURNING``.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from brickorm.compile.clause_builders import (
    CteBuilder,
    ReturningBuilder,
    WhereClauseBuilder,
    append_comment,
)
from brickorm.compile.context import CompilationContext
from brickorm.compile.formatter import Formatter
from brickorm.dialect.feature import Feature
from brickorm.errors import NilModelError, QueryBuildError
from brickorm.schema.query_plan import BasePlan, DeletePlan, InsertPlan, UpdatePlan
from brickorm.schema.table import Field, Table


class _MutationCompiler:
    alias_features: Feature = Feature.NONE

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def _table(self, plan: BasePlan, operation: str) -> Table:
        if plan.table is None:
            raise NilModelError(operation)
        return plan.table

    def _uses_alias(self) -> bool:
        return bool(self._ctx.dialect.features & self.alias_features)

    def _formatter(self, table: Table, aliased: bool) -> Formatter:
        return self._ctx.formatter(table, table.sql_alias if aliased else table.sql_name)

    def _target(self, table: Table, aliased: bool) -> str:
        if aliased:
            return f"{table.sql_name} AS {table.sql_alias}"
        return table.sql_name

    def _returning(self, fmter: Formatter, plan: BasePlan, feature: Feature) -> str:
        if not plan.returning:
            return ""
        self._ctx.dialect.require_feature(feature, clause="RETURNING")
        return ReturningBuilder(fmter).build(plan.returning)


class InsertCompiler(_MutationCompiler):
    """Compiles an :class:`InsertPlan` plus its value rows."""

    def build(
        self,
        plan: InsertPlan,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        comment: str | None = None,
    ) -> str:
        """Render ``INSERT``.

        Args:
            plan: Clause state.
            columns: Column names, in value order.
            rows: One tuple of values per inserted row.
            comment: Overrides ``plan.comment`` when given.
        """
        dialect = self._ctx.dialect
        table = self._table(plan, "insert")
        if not columns or not rows:
            raise QueryBuildError("Insert has no values.", clause="VALUES")

        aliased = plan.on is not None and dialect.has_feature(Feature.INSERT_TABLE_ALIAS)
        fmter = self._formatter(table, aliased)

        sql = append_comment(comment if comment is not None else plan.comment)
        sql += CteBuilder(self._ctx).build(plan.with_)
        sql += "INSERT "
        if plan.ignore and dialect.has_feature(Feature.INSERT_IGNORE):
            sql += "IGNORE "
        sql += "INTO " + self._target(table, aliased)

        quote = dialect.quote_identifier
        sql += " (" + ", ".join(quote(c) for c in columns) + ") VALUES "
        sql += ", ".join(
            "(" + ", ".join(fmter.append_value(v) for v in row) + ")" for row in rows
        )

        sql += self._on_conflict(plan, fmter, table, columns)
        sql += self._returning(fmter, plan, Feature.INSERT_RETURNING)
        return sql

    def _on_conflict(self, plan: InsertPlan, fmter: Formatter, table: Table, columns: Sequence[str]) -> str:
        dialect = self._ctx.dialect

        if plan.on is None:
            if plan.ignore and not dialect.has_feature(Feature.INSERT_IGNORE):
                dialect.require_feature(Feature.INSERT_ON_CONFLICT, clause="ON CONFLICT")
                return " ON CONFLICT DO NOTHING"
            return ""

        if not (
            dialect.has_feature(Feature.INSERT_ON_CONFLICT)
            or dialect.has_feature(Feature.INSERT_ON_DUPLICATE_KEY)
        ):
            dialect.require_feature(Feature.INSERT_ON_CONFLICT, clause="ON CONFLICT")

        on_sql = fmter.format(plan.on)
        sql = " ON " + on_sql
        duplicate_key = dialect.has_feature(Feature.INSERT_ON_DUPLICATE_KEY)
        if plan.set_:
            sql += " " if duplicate_key else " SET "
            sql += ", ".join(fmter.format(s) for s in plan.set_)
        elif on_sql.upper().endswith("DO UPDATE"):
            quote = dialect.quote_identifier
            excluded = [
                f"{quote(c)} = EXCLUDED.{quote(c)}"
                for c in columns
                if not (table.has_field(c) and table.field_map[c].is_pk)
            ]
            sql += " SET " + ", ".join(excluded)

        where = WhereClauseBuilder(self._ctx, fmter).build(plan, soft_delete=False)
        return sql + where


class UpdateCompiler(_MutationCompiler):
    """Compiles an :class:`UpdatePlan`."""

    alias_features = Feature.UPDATE_TABLE_ALIAS | Feature.UPDATE_MULTI_TABLE

    def build(self, plan: UpdatePlan, comment: str | None = None) -> str:
        table = self._table(plan, "update")
        if not plan.set_:
            raise QueryBuildError("Update has no SET clause.", clause="SET")
        if not plan.where and not plan.allow_unfiltered:
            raise QueryBuildError(
                "Update without WHERE; call where_pk() or allow_unfiltered().", clause="WHERE"
            )

        aliased = self._uses_alias()
        fmter = self._formatter(table, aliased)

        sql = append_comment(comment if comment is not None else plan.comment)
        sql += CteBuilder(self._ctx).build(plan.with_)
        sql += "UPDATE " + self._target(table, aliased)
        sql += " SET " + ", ".join(fmter.format(s) for s in plan.set_)
        if plan.tables:
            sql += " FROM " + ", ".join(fmter.format(t) for t in plan.tables)
        sql += WhereClauseBuilder(self._ctx, fmter).build(plan)
        sql += self._returning(fmter, plan, Feature.RETURNING)
        return sql


class DeleteCompiler(_MutationCompiler):
    """Compiles a :class:`DeletePlan`."""

    alias_features = Feature.DELETE_TABLE_ALIAS

    def build(self, plan: DeletePlan, comment: str | None = None) -> str:
        table = self._table(plan, "delete")
        if not plan.where and not plan.allow_unfiltered:
            raise QueryBuildError(
                "Delete without WHERE; call where_pk() or allow_unfiltered().", clause="WHERE"
            )
        if table.soft_delete_field is not None and not plan.force:
            return self._mark_deleted(plan, table, table.soft_delete_field, comment)

        aliased = self._uses_alias()
        fmter = self._formatter(table, aliased)

        sql = append_comment(comment if comment is not None else plan.comment)
        sql += CteBuilder(self._ctx).build(plan.with_)
        sql += "DELETE FROM " + self._target(table, aliased)
        if plan.tables:
            sql += " USING " + ", ".join(fmter.format(t) for t in plan.tables)
        sql += WhereClauseBuilder(self._ctx, fmter).build(plan, soft_delete=not plan.force)
        sql += self._returning(fmter, plan, Feature.RETURNING)
        return sql

    def _mark_deleted(self, plan: DeletePlan, table: Table, column: Field, comment: str | None) -> str:
        aliased = bool(self._ctx.dialect.features & UpdateCompiler.alias_features)
        fmter = self._formatter(table, aliased)

        sql = append_comment(comment if comment is not None else plan.comment)
        sql += CteBuilder(self._ctx).build(plan.with_)
        sql += "UPDATE " + self._target(table, aliased)
        sql += f" SET {column.sql_name} = " + fmter.append_value(plan.deleted_at)
        if plan.tables:
            sql += " FROM " + ", ".join(fmter.format(t) for t in plan.tables)
        sql += WhereClauseBuilder(self._ctx, fmter).build(plan)
        sql += self._returning(fmter, plan, Feature.RETURNING)
        return sql
