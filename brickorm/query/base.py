"""Behaviour shared by every fluent query.

A query accumulates fragments on a plan and never performs I/O from a
builder method.  Anything a builder call cannot satisfy is recorded as the
query's *sticky error*: the first error wins, later builder calls keep
returning the query, and ``render()`` plus every terminal operation raise
it.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from brickorm.compile.context import CompilationContext
from brickorm.compile.formatter import Formatter
from brickorm.dialect.feature import Feature
from brickorm.errors import BrickORMError, NilModelError, QueryBuildError
from brickorm.hooks import EMPTY_CONTEXT, QueryContext, QueryEvent
from brickorm.schema.fragment import (
    In,
    QueryWithArgs,
    QueryWithSep,
    WhereGroup,
    WhereItem,
    safe_query,
    safe_query_with_sep,
    unsafe_ident,
)
from brickorm.schema.query_plan import BasePlan, DeletedFilter, WithClause
from brickorm.schema.table import Table

if TYPE_CHECKING:
    from brickorm.adapters.base import ExecResult, ExecutionAdapter
    from brickorm.db import Database
    from brickorm.dialect.base import Dialect

Q = TypeVar("Q", bound="BaseQuery")


def _normalize_sep(sep: str) -> str:
    return " " + sep.strip().upper() + " "


def in_condition(
    dialect: Dialect, columns: Sequence[str], keys: Sequence[tuple[Any, ...]]
) -> QueryWithArgs:
    """Build a fragment matching ``columns`` against a set of key tuples.

    Args:
        dialect: Decides whether composite ``IN`` is available.
        columns: Already-rendered column references.
        keys: One tuple per key, aligned with ``columns``.

    Returns:
        ``col IN (...)`` for a single column, ``(a, b) IN ((..), (..))``
        with ``COMPOSITE_IN``, otherwise an OR of AND-groups.
    """
    if len(columns) == 1:
        return safe_query(f"{columns[0]} IN ?", (In(k[0] for k in keys),))
    if dialect.has_feature(Feature.COMPOSITE_IN):
        return safe_query(f"({', '.join(columns)}) IN ?", (In(keys),))

    group = "(" + " AND ".join(f"{c} = ?" for c in columns) + ")"
    args: list[Any] = []
    for key in keys:
        args.extend(key)
    return safe_query(" OR ".join([group] * len(keys)), args)


@runtime_checkable
class QueryBuilder(Protocol):
    """The filtering surface shared by SELECT, UPDATE and DELETE queries.

    Code written against it applies the same WHERE logic to any query kind::

        def only_adults(qb: QueryBuilder) -> QueryBuilder:
            return qb.where("?TableAlias.age >= ?", 18)

        db.select(User).apply_query_builder(only_adults)
        db.delete(User).apply_query_builder(only_adults)
    """

    def where(self, query: str, *args: Any) -> QueryBuilder: ...

    def where_or(self, query: str, *args: Any) -> QueryBuilder: ...

    def where_group(self, sep: str, fn: Callable[[Any], Any]) -> QueryBuilder: ...

    def where_deleted(self) -> QueryBuilder: ...

    def where_all_with_deleted(self) -> QueryBuilder: ...

    def where_pk(self, *columns: str) -> QueryBuilder: ...

    def unwrap(self) -> Any: ...


class BaseQuery:
    """Common state and builder methods of every query kind.

    Args:
        db: Owning :class:`~brickorm.db.Database`.
        plan: Fresh plan to accumulate into.
        model: Model class, instance or list of instances.
    """

    operation: str = "SELECT"

    def __init__(self, db: Database, plan: BasePlan, model: Any = None) -> None:
        self.db = db
        self.dialect: Dialect = db.dialect
        self.plan = plan
        self._err: BaseException | None = None
        self._conn: ExecutionAdapter | None = None
        self._entities: list[Any] = []
        if model is not None:
            self._set_model(model)

    # ------------------------------------------------------------------
    # Sticky error
    # ------------------------------------------------------------------

    @property
    def error(self) -> BaseException | None:
        """The recorded sticky error, if any."""
        return self._err

    def _set_err(self, err: BaseException) -> None:
        if self._err is None:
            self._err = err

    def _check(self) -> None:
        if self._err is not None:
            raise self._err

    def err(self: Q, err: BaseException) -> Q:
        """Record ``err`` as the sticky error (first error wins)."""
        self._set_err(err)
        return self

    # ------------------------------------------------------------------
    # Model binding
    # ------------------------------------------------------------------

    def _set_model(self, model: Any) -> None:
        try:
            if isinstance(model, type):
                self.plan.table = self.dialect.tables.get(model)
                self._entities = []
                return
            entities = list(model) if isinstance(model, (list, tuple)) else [model]
            if not entities:
                raise QueryBuildError("Model list is empty.")
            model_type = type(entities[0])
            if any(type(e) is not model_type for e in entities):
                raise QueryBuildError("Model list mixes model types.")
            self.plan.table = self.dialect.tables.get(model_type)
            self._entities = entities
        except BrickORMError as exc:
            self._set_err(exc)

    def model(self: Q, model: Any) -> Q:
        """Bind a model class, an instance or a list of instances."""
        self._set_model(model)
        return self

    @property
    def entities(self) -> list[Any]:
        return list(self._entities)

    def _require_table(self, operation: str) -> Table | None:
        if self.plan.table is None:
            self._set_err(NilModelError(operation))
            return None
        return self.plan.table

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def conn(self: Q, conn: ExecutionAdapter | None) -> Q:
        """Pin the query to a connection (e.g. a transaction)."""
        self._conn = conn
        return self

    @property
    def pinned(self) -> bool:
        return self._conn is not None

    def _adapter(self) -> ExecutionAdapter:
        return self._conn if self._conn is not None else self.db.adapter

    # ------------------------------------------------------------------
    # Generic builders
    # ------------------------------------------------------------------

    def apply(self: Q, *fns: Callable[[Q], Q | None] | None) -> Q:
        """Run each refinement function against this query."""
        for fn in fns:
            if fn is not None:
                fn(self)
        return self

    def with_(self: Q, name: str, query: Any) -> Q:
        """Add ``"name" AS (query)`` to the WITH prefix."""
        self.plan.with_.append(WithClause(name, query))
        return self

    def with_recursive(self: Q, name: str, query: Any) -> Q:
        self.plan.with_.append(WithClause(name, query, recursive=True))
        return self

    def table(self: Q, *tables: str) -> Q:
        """Add extra tables by (quoted) name."""
        for table in tables:
            self.plan.tables.append(unsafe_ident(table))
        return self

    def table_expr(self: Q, query: str, *args: Any) -> Q:
        self.plan.tables.append(safe_query(query, args))
        return self

    def model_table_expr(self: Q, query: str, *args: Any) -> Q:
        """Replace ``"name" AS "alias"`` of the model table."""
        self.plan.model_table_expr = safe_query(query, args)
        return self

    def column(self: Q, *columns: str) -> Q:
        """Select columns by name; model fields render alias-qualified."""
        if self.plan.columns is None:
            self.plan.columns = []
        for column in columns:
            self.plan.columns.append(unsafe_ident(column))
        return self

    def column_expr(self: Q, query: str, *args: Any) -> Q:
        if self.plan.columns is None:
            self.plan.columns = []
        self.plan.columns.append(safe_query(query, args))
        return self

    def exclude_column(self: Q, *columns: str) -> Q:
        """Drop model columns from the (default or explicit) column list."""
        if self.plan.columns is None:
            table = self._require_table("exclude_column")
            if table is None:
                return self
            self.plan.columns = [unsafe_ident(f.name) for f in table.fields]
        excluded = set(columns)
        if "*" in excluded:
            self.plan.columns = []
            return self
        table = self.plan.table
        unknown = [c for c in columns if table is not None and not table.has_field(c)]
        if unknown:
            self._set_err(
                QueryBuildError(f"exclude_column: unknown columns {unknown}.", clause="SELECT")
            )
            return self
        self.plan.columns = [
            c for c in self.plan.columns if not (c.ident and c.query in excluded)
        ]
        return self

    # ------------------------------------------------------------------
    # WHERE
    # ------------------------------------------------------------------

    def where(self: Q, query: str, *args: Any) -> Q:
        """Add an AND-joined filter: ``where("age > ?", 18)``."""
        self.plan.where.append(safe_query_with_sep(query, args, " AND "))
        return self

    def where_or(self: Q, query: str, *args: Any) -> Q:
        self.plan.where.append(safe_query_with_sep(query, args, " OR "))
        return self

    def where_group(self: Q, sep: str, fn: Callable[[Q], Any]) -> Q:
        """Collect the filters added by ``fn`` into one parenthesized group.

        Args:
            sep: ``"AND"`` or ``"OR"``; joins the group to preceding filters.
            fn: Receives this query and adds filters to it.
        """
        saved = self.plan.where
        self.plan.where = []
        try:
            fn(self)
            items: list[WhereItem] = self.plan.where
        finally:
            self.plan.where = saved
        if items:
            self.plan.where.append(WhereGroup(_normalize_sep(sep), tuple(items)))
        return self

    def where_pk(self: Q, *columns: str) -> Q:
        """Filter by the primary key (or ``columns``) of the bound instances."""
        try:
            self.plan.where.append(self._pk_condition(columns))
        except QueryBuildError as exc:
            self._set_err(exc)
        return self

    def _pk_condition(self, columns: Sequence[str] = ()) -> QueryWithSep:
        table = self.plan.table
        if table is None:
            raise NilModelError("where_pk")
        if not self._entities:
            raise QueryBuildError("where_pk requires model instances.", clause="WHERE")

        if columns:
            unknown = [c for c in columns if not table.has_field(c)]
            if unknown:
                raise QueryBuildError(f"where_pk: unknown columns {unknown}.", clause="WHERE")
            fields = [table.field_map[c] for c in columns]
        else:
            fields = list(table.pk_fields)
        if not fields:
            raise QueryBuildError(f"Model {table.model.__name__} has no primary key.", clause="WHERE")

        keys = [tuple(getattr(e, f.name) for f in fields) for e in self._entities]
        if any(v is None for key in keys for v in key):
            raise QueryBuildError("where_pk: primary key value is None.", clause="WHERE")

        refs = [f"?TableAlias.{f.sql_name}" for f in fields]
        if len(keys) == 1:
            query = " AND ".join(f"{r} = ?" for r in refs)
            return QueryWithSep(query, keys[0], sep=" AND ")
        frag = in_condition(self.dialect, refs, keys)
        return QueryWithSep(frag.query, frag.args, sep=" AND ")

    def where_deleted(self: Q) -> Q:
        """Only match soft-deleted rows."""
        self._require_soft_delete("where_deleted")
        self.plan.deleted = DeletedFilter.DELETED
        return self

    def where_all_with_deleted(self: Q) -> Q:
        """Match rows whether or not they are soft-deleted."""
        self._require_soft_delete("where_all_with_deleted")
        self.plan.deleted = DeletedFilter.ALL
        return self

    def _require_soft_delete(self, operation: str) -> None:
        table = self._require_table(operation)
        if table is not None and table.soft_delete_field is None:
            self._set_err(
                QueryBuildError(
                    f"{operation}: model {table.model.__name__} has no soft delete column.",
                    clause="WHERE",
                )
            )

    def returning(self: Q, *columns: str) -> Q:
        """Add ``RETURNING`` columns (``"*"`` for all)."""
        for column in columns:
            self.plan.returning.append(unsafe_ident(column))
        return self

    def returning_expr(self: Q, query: str, *args: Any) -> Q:
        self.plan.returning.append(safe_query(query, args))
        return self

    def comment(self: Q, comment: str) -> Q:
        """Prefix the statement with ``/* comment */``."""
        self.plan.comment = comment
        return self

    # ------------------------------------------------------------------
    # Shared filtering
    # ------------------------------------------------------------------

    def query_builder(self) -> QueryBuilder:
        """Return this query through the :class:`QueryBuilder` surface."""
        return self

    def apply_query_builder(self: Q, fn: Callable[[QueryBuilder], QueryBuilder | None]) -> Q:
        """Run shared filtering logic written against :class:`QueryBuilder`."""
        fn(self.query_builder())
        return self

    def unwrap(self: Q) -> Q:
        return self

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _compile(self, ctx: CompilationContext, comment: str | None = None) -> str:
        raise NotImplementedError

    def render(self) -> str:
        """Render the statement; raises the sticky error if one is recorded."""
        return self.render_with_args()[0]

    def render_with_args(self, comment: str | None = None) -> tuple[str, tuple[Any, ...]]:
        """Render the statement and return the values inlined into it."""
        self._check()
        ctx = CompilationContext(self.dialect)
        sql = self._compile(ctx, comment)
        return sql, tuple(ctx.runtime.args)

    def append_query(self, fmter: Formatter) -> str:
        """Render as a nested statement sharing ``fmter``'s runtime context."""
        self._check()
        return self._compile(CompilationContext.from_formatter(fmter), comment="")

    def __str__(self) -> str:
        return self.render()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run(
        self,
        ctx: QueryContext | None,
        timeout: float | None,
        sql: str,
        args: tuple[Any, ...],
        after: Callable[[ExecResult], Any] | None = None,
    ) -> ExecResult:
        """Execute ``sql`` inside the hook pipeline.

        ``after`` runs inside the hooked section (hydration, scanning) so its
        errors are visible to hooks as the statement's error.
        """
        ctx = ctx if ctx is not None else EMPTY_CONTEXT
        adapter = self._adapter()
        table = self.plan.table

        def event_factory() -> QueryEvent:
            return QueryEvent(
                db=self.db,
                query=self,
                operation=self.operation,
                sql=sql,
                args=args,
                model=table.model if table is not None else None,
            )

        async def run(_ctx: QueryContext) -> ExecResult:
            if timeout is not None:
                result = await asyncio.wait_for(adapter.execute(sql), timeout)
            else:
                result = await adapter.execute(sql)
            if after is not None:
                done = after(result)
                if asyncio.iscoroutine(done):
                    await done
            return result

        return await self.db.hooks.run(ctx, event_factory, run)

    async def execute(self, ctx: QueryContext | None = None, timeout: float | None = None) -> ExecResult:
        """Render and execute the statement, returning the raw result."""
        comment = ctx.comment if ctx is not None else None
        sql, args = self.render_with_args(comment)
        return await self._run(ctx, timeout, sql, args)
