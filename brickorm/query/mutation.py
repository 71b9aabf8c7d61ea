"""INSERT / UPDATE / DELETE queries.

Mutations are built from model instances (or, for UPDATE / DELETE, from
explicit ``set_`` / ``where`` fragments) and run the model lifecycle hooks
around the statement::

    await db.insert(user).execute()
    await db.update(user).column("name").execute()
    await db.delete(User).where("?TableAlias.age < ?", 18).execute()

Values returned by ``RETURNING`` are written back onto the instances.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from brickorm.compile.context import CompilationContext
from brickorm.compile.mutations import DeleteCompiler, InsertCompiler, UpdateCompiler
from brickorm.dialect.feature import Feature
from brickorm.errors import NilModelError, QueryBuildError
from brickorm.hooks import call_after_hooks, call_before_hooks
from brickorm.query.base import BaseQuery
from brickorm.schema.fragment import Ident, QueryWithArgs, safe_query, unsafe_ident
from brickorm.schema.query_plan import BasePlan, DeletePlan, InsertPlan, UpdatePlan

if TYPE_CHECKING:
    from brickorm.adapters.base import ExecResult
    from brickorm.db import Database
    from brickorm.hooks import QueryContext
    from brickorm.schema.table import Table


class _MutationQuery(BaseQuery):
    before_hook: str = ""
    after_hook: str = ""

    def _effective_plan(self) -> BasePlan:
        return self.plan

    def _write_back(self, plan: BasePlan, result: ExecResult) -> None:
        table = plan.table
        if table is None or not plan.returning or not result.rows:
            return
        for entity, row in zip(self._entities, result.rows):
            for key, value in row.items():
                if table.has_field(key):
                    setattr(entity, key, value)

    async def execute(self, ctx: QueryContext | None = None, timeout: float | None = None) -> ExecResult:
        """Run the before hooks, the statement and the after hooks."""
        self._check()
        await call_before_hooks(self._entities, self.before_hook, self)

        comment = ctx.comment if ctx is not None else None
        plan = self._effective_plan()
        compilation = CompilationContext(self.dialect)
        sql = self._compile_plan(plan, compilation, comment)
        args = tuple(compilation.runtime.args)

        def write_back(result: ExecResult) -> None:
            self._write_back(plan, result)

        result = await self._run(ctx, timeout, sql, args, write_back)
        await call_after_hooks(self._entities, self.after_hook, self)
        return result

    def _compile(self, ctx: CompilationContext, comment: str | None = None) -> str:
        return self._compile_plan(self._effective_plan(), ctx, comment)

    def _table(self) -> Table:
        if self.plan.table is None:
            raise NilModelError(self.operation)
        return self.plan.table

    def _compile_plan(self, plan: BasePlan, ctx: CompilationContext, comment: str | None) -> str:
        raise NotImplementedError


def _expect_plan(plan: BasePlan, plan_type: type[BasePlan], operation: str) -> None:
    if not isinstance(plan, plan_type):
        raise QueryBuildError(f"{operation} cannot render a {type(plan).__name__}.", clause=operation)


# ---------------------------------------------------------------------------
# INSERT
# ---------------------------------------------------------------------------


class InsertQuery(_MutationQuery):
    """``INSERT INTO ... VALUES ...`` for one model instance or a list.

    Primary-key columns that are ``None`` on every instance are left to the
    database; on dialects with ``INSERT_RETURNING`` they are returned and
    written back automatically.
    """

    operation = "INSERT"
    before_hook = "before_insert"
    after_hook = "after_insert"
    plan: InsertPlan

    def __init__(self, db: Database, model: Any = None) -> None:
        super().__init__(db, InsertPlan(), model)

    def on(self, query: str, *args: Any) -> InsertQuery:
        """Conflict clause: ``on("CONFLICT (id) DO UPDATE")`` / ``on("DUPLICATE KEY UPDATE")``."""
        self.plan.on = safe_query(query, args)
        return self

    def set_(self, query: str, *args: Any) -> InsertQuery:
        """Assignment for the conflict clause: ``set_("name = EXCLUDED.name")``."""
        self.plan.set_.append(safe_query(query, args))
        return self

    def ignore(self) -> InsertQuery:
        """Skip conflicting rows (``INSERT IGNORE`` / ``ON CONFLICT DO NOTHING``)."""
        self.plan.ignore = True
        return self

    def _columns(self) -> list[str]:
        table = self._table()
        if self.plan.columns is not None:
            return [c.query for c in self.plan.columns if c.ident]
        return [
            f.name
            for f in table.fields
            if not (f.is_pk and all(getattr(e, f.name) is None for e in self._entities))
        ]

    def _generated_pks(self) -> list[str]:
        table = self._table()
        return [
            f.name
            for f in table.pk_fields
            if all(getattr(e, f.name) is None for e in self._entities)
        ]

    def _effective_plan(self) -> InsertPlan:
        if self.plan.table is None:
            raise NilModelError("insert")
        if not self._entities:
            raise QueryBuildError("insert requires model instances.", clause="VALUES")
        plan = self.plan
        if not plan.returning and self.dialect.has_feature(Feature.INSERT_RETURNING):
            generated = self._generated_pks()
            if generated:
                plan = plan.clone()
                plan.returning = [unsafe_ident(name) for name in generated]
        return plan

    def _compile_plan(self, plan: BasePlan, ctx: CompilationContext, comment: str | None) -> str:
        _expect_plan(plan, InsertPlan, self.operation)
        columns = self._columns()
        rows = [tuple(getattr(e, c) for c in columns) for e in self._entities]
        return InsertCompiler(ctx).build(plan, columns, rows, comment)

    def _write_back(self, plan: BasePlan, result: ExecResult) -> None:
        if plan.returning and result.rows:
            super()._write_back(plan, result)
            return
        generated = self._generated_pks()
        if len(self._entities) == 1 and len(generated) == 1 and result.last_insert_id is not None:
            setattr(self._entities[0], generated[0], result.last_insert_id)


# ---------------------------------------------------------------------------
# UPDATE
# ---------------------------------------------------------------------------


class UpdateQuery(_MutationQuery):
    """``UPDATE ... SET ... WHERE ...``.

    Bound to a single instance and without explicit ``set_`` calls, every
    non-primary-key column (or the columns named with :meth:`column`) is
    assigned from the instance.  Bound to instances and without explicit
    filters, the statement is restricted with :meth:`where_pk`.
    """

    operation = "UPDATE"
    before_hook = "before_update"
    after_hook = "after_update"
    plan: UpdatePlan

    def __init__(self, db: Database, model: Any = None) -> None:
        super().__init__(db, UpdatePlan(), model)

    def set_(self, query: str, *args: Any) -> UpdateQuery:
        """Add an assignment: ``set_("name = ?", "bob")``."""
        self.plan.set_.append(safe_query(query, args))
        return self

    def allow_unfiltered(self) -> UpdateQuery:
        """Permit an UPDATE without WHERE."""
        self.plan.allow_unfiltered = True
        return self

    def _effective_plan(self) -> UpdatePlan:
        table = self.plan.table
        if table is None:
            raise NilModelError("update")
        plan = self.plan
        if not self._entities:
            return plan

        plan = plan.clone()
        if not plan.set_:
            if len(self._entities) > 1:
                raise QueryBuildError(
                    "Updating several instances requires explicit set_() assignments.",
                    clause="SET",
                )
            entity = self._entities[0]
            if plan.columns is not None:
                names = [c.query for c in plan.columns if c.ident]
            else:
                names = [f.name for f in table.fields if not f.is_pk]
            plan.set_ = [
                QueryWithArgs("? = ?", (Ident(name), getattr(entity, name))) for name in names
            ]
        if not plan.where:
            plan.where = [self._pk_condition()]
        return plan

    def _compile_plan(self, plan: BasePlan, ctx: CompilationContext, comment: str | None) -> str:
        _expect_plan(plan, UpdatePlan, self.operation)
        return UpdateCompiler(ctx).build(plan, comment)


# ---------------------------------------------------------------------------
# DELETE
# ---------------------------------------------------------------------------


class DeleteQuery(_MutationQuery):
    """``DELETE FROM ... WHERE ...``; instances are matched by primary key.

    On a soft-delete model the statement sets the soft-delete column to the
    current UTC time instead, and the timestamp is written back onto the
    instances.  :meth:`force_delete` removes the rows.
    """

    operation = "DELETE"
    before_hook = "before_delete"
    after_hook = "after_delete"
    plan: DeletePlan

    def __init__(self, db: Database, model: Any = None) -> None:
        super().__init__(db, DeletePlan(), model)

    def allow_unfiltered(self) -> DeleteQuery:
        """Permit a DELETE without WHERE."""
        self.plan.allow_unfiltered = True
        return self

    def force_delete(self) -> DeleteQuery:
        """Delete rows of a soft-delete model instead of marking them."""
        self.plan.force = True
        return self

    def _effective_plan(self) -> DeletePlan:
        table = self.plan.table
        if table is None:
            raise NilModelError("delete")
        plan = self.plan.clone()
        if self._entities and not plan.where:
            plan.where = [self._pk_condition()]
        if table.soft_delete_field is not None and not plan.force:
            plan.deleted_at = datetime.now(timezone.utc)
        return plan

    def _write_back(self, plan: BasePlan, result: ExecResult) -> None:
        super()._write_back(plan, result)
        table = plan.table
        deleted_at = getattr(plan, "deleted_at", None)
        if table is None or table.soft_delete_field is None or deleted_at is None:
            return
        for entity in self._entities:
            setattr(entity, table.soft_delete_field.name, deleted_at)

    def _compile_plan(self, plan: BasePlan, ctx: CompilationContext, comment: str | None) -> str:
        _expect_plan(plan, DeletePlan, self.operation)
        return DeleteCompiler(ctx).build(plan, comment)
