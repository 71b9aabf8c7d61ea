"""The fluent ``SELECT`` builder.

Example::

    users = await (
        db.select(User)
        .relation("profile")
        .relation("posts", lambda q: q.order("id"))
        .where("?TableAlias.age > ?", 18)
        .order("name ASC")
        .limit(10)
        .scan()
    )

Builder methods only mutate the plan and return ``self``.  Terminal
operations (``execute``, ``scan``, ``scan_one``, ``rows``, ``count``,
``exists``, ``scan_and_count``) are coroutines that render the statement,
run it through the hook pipeline and hydrate the result.
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from brickorm.compile.builder import SelectCompiler
from brickorm.compile.context import CompilationContext, RenderMode
from brickorm.dialect.feature import Feature
from brickorm.errors import NoRowsError, QueryBuildError
from brickorm.hooks import call_model_hook
from brickorm.query.base import BaseQuery
from brickorm.query.relation import RelationOpts, add_relation, load_relations
from brickorm.scan import scan_rows
from brickorm.schema.fragment import (
    Ident,
    Safe,
    safe_query,
    safe_query_with_sep,
    unsafe_ident,
)
from brickorm.schema.query_plan import JoinClause, SelectPlan, SetOpClause

if TYPE_CHECKING:
    from brickorm.adapters.base import ExecResult
    from brickorm.db import Database
    from brickorm.hooks import QueryContext

_ORDER_DIRECTIONS = frozenset(
    {
        "ASC",
        "DESC",
        "ASC NULLS FIRST",
        "DESC NULLS FIRST",
        "ASC NULLS LAST",
        "DESC NULLS LAST",
    }
)

_INDEX_HINT_SCOPES = {
    None: "",
    "join": " FOR JOIN",
    "order_by": " FOR ORDER BY",
    "group_by": " FOR GROUP BY",
}


class SelectQuery(BaseQuery):
    """Incrementally built ``SELECT`` statement.

    Args:
        db: Owning database.
        model: Optional model class, instance or list of instances.
    """

    plan: SelectPlan

    def __init__(self, db: Database, model: Any = None) -> None:
        super().__init__(db, SelectPlan(), model)

    # ------------------------------------------------------------------
    # DISTINCT
    # ------------------------------------------------------------------

    def distinct(self) -> SelectQuery:
        if self.plan.distinct_on is None:
            self.plan.distinct_on = []
        return self

    def distinct_on(self, query: str, *args: Any) -> SelectQuery:
        """Add a ``DISTINCT ON (...)`` expression."""
        if self.plan.distinct_on is None:
            self.plan.distinct_on = []
        self.plan.distinct_on.append(safe_query(query, args))
        return self

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def join(self, join: str, *args: Any) -> SelectQuery:
        """Add an explicit join: ``join("JOIN roles AS r")``."""
        self.plan.joins.append(JoinClause(safe_query(join, args)))
        return self

    def join_on(self, cond: str, *args: Any) -> SelectQuery:
        """Add an AND-joined ``ON`` condition to the last explicit join."""
        return self._join_on(cond, args, " AND ")

    def join_on_or(self, cond: str, *args: Any) -> SelectQuery:
        return self._join_on(cond, args, " OR ")

    def _join_on(self, cond: str, args: tuple[Any, ...], sep: str) -> SelectQuery:
        if not self.plan.joins:
            self._set_err(QueryBuildError("join_on called without a preceding join.", clause="JOIN"))
            return self
        self.plan.joins[-1].on.append(safe_query_with_sep(cond, args, sep))
        return self

    # ------------------------------------------------------------------
    # Index hints
    # ------------------------------------------------------------------

    def use_index(self, *indexes: str, for_: str | None = None) -> SelectQuery:
        """Add ``USE INDEX [FOR JOIN | ORDER BY | GROUP BY] (...)``.

        Args:
            indexes: Index names.
            for_: ``"join"``, ``"order_by"`` or ``"group_by"`` to scope the
                hint.

        Hints are only recorded on dialects with ``INDEX_HINTS`` (MySQL);
        elsewhere the call is a no-op so portable code can keep it.
        """
        return self._index_hint("USE", indexes, for_)

    def ignore_index(self, *indexes: str, for_: str | None = None) -> SelectQuery:
        return self._index_hint("IGNORE", indexes, for_)

    def force_index(self, *indexes: str, for_: str | None = None) -> SelectQuery:
        return self._index_hint("FORCE", indexes, for_)

    def _index_hint(self, action: str, indexes: tuple[str, ...], for_: str | None) -> SelectQuery:
        if for_ not in _INDEX_HINT_SCOPES:
            self._set_err(
                QueryBuildError(
                    f"Unknown index hint scope {for_!r}; use 'join', 'order_by' or 'group_by'.",
                    clause="INDEX",
                )
            )
            return self
        if not self.dialect.has_feature(Feature.INDEX_HINTS):
            return self
        directive = f"{action} INDEX{_INDEX_HINT_SCOPES[for_]}"
        self.plan.index_hints.setdefault(directive, []).extend(indexes)
        return self

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def relation(self, name: str, apply: Callable[[SelectQuery], Any] | None = None) -> SelectQuery:
        """Load a declared relation (dotted paths load nested relations).

        Args:
            name: Relation name or dotted path (``"posts.tags"``).
            apply: Refinement for the related rows; see :class:`RelationOpts`.
        """
        add_relation(self, name, RelationOpts(apply=apply))
        return self

    def relation_with_opts(self, name: str, opts: RelationOpts) -> SelectQuery:
        add_relation(self, name, opts)
        return self

    # ------------------------------------------------------------------
    # GROUP BY / HAVING / ORDER BY
    # ------------------------------------------------------------------

    def group(self, *columns: str) -> SelectQuery:
        for column in columns:
            self.plan.group.append(unsafe_ident(column))
        return self

    def group_expr(self, query: str, *args: Any) -> SelectQuery:
        self.plan.group.append(safe_query(query, args))
        return self

    def having(self, query: str, *args: Any) -> SelectQuery:
        self.plan.having.append(safe_query(query, args))
        return self

    def order(self, *orders: str) -> SelectQuery:
        """Order by columns: ``order("name", "id DESC")``."""
        for order in orders:
            field, sep, direction = order.partition(" ")
            if sep and direction.strip().upper() in _ORDER_DIRECTIONS:
                self.plan.order.append(safe_query("? ?", (Ident(field), Safe(direction.strip()))))
            else:
                self.plan.order.append(unsafe_ident(order))
        return self

    def order_expr(self, query: str, *args: Any) -> SelectQuery:
        self.plan.order.append(safe_query(query, args))
        return self

    # ------------------------------------------------------------------
    # Row limiting and locking
    # ------------------------------------------------------------------

    def limit(self, n: int) -> SelectQuery:
        """Limit the rows returned; ``limit(-1)`` makes ``scan_and_count`` count only."""
        self.plan.limit = n
        return self

    def offset(self, n: int) -> SelectQuery:
        self.plan.offset = n
        return self

    def lock(self, query: str, *args: Any) -> SelectQuery:
        """Add a locking clause: ``lock("UPDATE SKIP LOCKED")`` → ``FOR UPDATE SKIP LOCKED``."""
        self.plan.lock = safe_query(query, args)
        return self

    # ------------------------------------------------------------------
    # Set operations
    # ------------------------------------------------------------------

    def _set_op(self, op: str, other: SelectQuery) -> SelectQuery:
        self.plan.set_ops.append(SetOpClause(op, other))
        return self

    def union(self, other: SelectQuery) -> SelectQuery:
        return self._set_op("UNION", other)

    def union_all(self, other: SelectQuery) -> SelectQuery:
        return self._set_op("UNION ALL", other)

    def intersect(self, other: SelectQuery) -> SelectQuery:
        return self._set_op("INTERSECT", other)

    def intersect_all(self, other: SelectQuery) -> SelectQuery:
        return self._set_op("INTERSECT ALL", other)

    def except_(self, other: SelectQuery) -> SelectQuery:
        return self._set_op("EXCEPT", other)

    def except_all(self, other: SelectQuery) -> SelectQuery:
        return self._set_op("EXCEPT ALL", other)

    # ------------------------------------------------------------------
    # Cloning
    # ------------------------------------------------------------------

    def clone(self) -> SelectQuery:
        """Return an independent deep copy (sticky error included)."""
        clone = SelectQuery(self.db)
        clone.plan = self.plan.clone()
        clone._err = self._err
        clone._conn = self._conn
        clone._entities = list(self._entities)
        return clone

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _compile(
        self,
        ctx: CompilationContext,
        comment: str | None = None,
        mode: RenderMode = RenderMode.SELECT,
    ) -> str:
        return SelectCompiler(ctx).build(self.plan, mode, comment)

    def _render(self, mode: RenderMode, ctx: QueryContext | None) -> tuple[str, tuple[Any, ...]]:
        self._check()
        compilation = CompilationContext(self.dialect)
        comment = ctx.comment if ctx is not None else None
        sql = self._compile(compilation, comment, mode)
        return sql, tuple(compilation.runtime.args)

    def exists_mode(self) -> RenderMode:
        if self.dialect.has_feature(Feature.SELECT_EXISTS):
            return RenderMode.SELECT_EXISTS
        return RenderMode.WHERE_EXISTS

    # ------------------------------------------------------------------
    # Terminal operations
    # ------------------------------------------------------------------

    async def rows(self, ctx: QueryContext | None = None, timeout: float | None = None) -> list[dict[str, Any]]:
        """Execute and return the raw rows."""
        result = await self.execute(ctx, timeout)
        return list(result.rows)

    async def scan(self, ctx: QueryContext | None = None, timeout: float | None = None) -> list[Any]:
        """Execute, hydrate model instances and load requested relations.

        Without a model the raw row dicts are returned.
        """
        instances, _ = await self._scan(ctx, timeout)
        return instances

    async def scan_one(self, ctx: QueryContext | None = None, timeout: float | None = None) -> Any:
        """Like :meth:`scan` but return the first row.

        Raises:
            NoRowsError: If nothing matched.
        """
        instances, _ = await self._scan(ctx, timeout, one=True)
        return instances[0]

    async def _scan(
        self,
        ctx: QueryContext | None,
        timeout: float | None,
        one: bool = False,
        with_rows: bool = False,
    ) -> tuple[list[Any], list[dict[str, Any]]]:
        self._check()
        table = self.plan.table
        if table is not None:
            await call_model_hook(table.model, "before_select", self)

        sql, args = self._render(RenderMode.SELECT, ctx)
        instances: list[Any] = []
        rows: list[dict[str, Any]] = []

        async def hydrate(result: ExecResult) -> None:
            rows.extend(result.rows)
            if one and not rows:
                raise NoRowsError()
            if table is None:
                instances.extend(dict(r) for r in rows)
                return
            instances.extend(await scan_rows(table, rows, self.plan.relations))

        await self._run(ctx, timeout, sql, args, hydrate)

        if table is not None:
            if instances and self.plan.relations:
                await load_relations(self, instances, self.plan.relations, ctx, timeout)
            await call_model_hook(table.model, "after_select", self)
        return instances, rows if with_rows else []

    async def count(self, ctx: QueryContext | None = None, timeout: float | None = None) -> int:
        """Return the number of rows the query would produce (ignoring limits)."""
        sql, args = self._render(RenderMode.COUNT, ctx)
        result = await self._run(ctx, timeout, sql, args)
        if not result.rows:
            return 0
        return int(next(iter(result.rows[0].values())))

    async def exists(self, ctx: QueryContext | None = None, timeout: float | None = None) -> bool:
        """Return whether the query matches at least one row."""
        mode = self.exists_mode()
        sql, args = self._render(mode, ctx)
        result = await self._run(ctx, timeout, sql, args)
        if mode is RenderMode.WHERE_EXISTS:
            return len(result.rows) == 1
        if not result.rows:
            return False
        return bool(next(iter(result.rows[0].values())))

    async def scan_and_count(
        self, ctx: QueryContext | None = None, timeout: float | None = None
    ) -> tuple[list[Any], int]:
        """Scan the (limited) page and count the unlimited total.

        Without limit / offset a single scan provides both.  Otherwise the
        scan and the count of a clone run concurrently, or one after the
        other when the query is pinned to a connection.  Both statements run
        even when one fails; the first recorded error is raised.
        ``limit(-1)`` skips the scan.
        """
        self._check()
        plan = self.plan
        if plan.limit == 0 and plan.offset == 0:
            items = await self.scan(ctx, timeout)
            return items, len(items)

        scan_wanted = plan.limit >= 0
        first_error: Exception | None = None
        items: list[Any] = []
        total = 0

        if self.pinned:
            if scan_wanted:
                try:
                    items = await self.scan(ctx, timeout)
                except Exception as exc:
                    first_error = exc
            try:
                total = await self.count(ctx, timeout)
            except Exception as exc:
                if first_error is None:
                    first_error = exc
            if first_error is not None:
                raise first_error
            return items, total

        counter = self.clone()
        lock = asyncio.Lock()

        async def record(exc: Exception) -> None:
            nonlocal first_error
            async with lock:
                if first_error is None:
                    first_error = exc

        async def do_scan() -> None:
            nonlocal items
            try:
                items = await self.scan(ctx, timeout)
            except Exception as exc:
                await record(exc)

        async def do_count() -> None:
            nonlocal total
            try:
                total = await counter.count(ctx, timeout)
            except Exception as exc:
                await record(exc)

        if scan_wanted:
            await asyncio.gather(do_scan(), do_count())
        else:
            await do_count()
        if first_error is not None:
            raise first_error
        return items, total
