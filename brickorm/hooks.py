"""Statement-level and model-level lifecycle hooks.

Statement level
---------------
A :class:`HookPipeline` holds an ordered list of :class:`QueryHook`
interceptors.  For every statement it builds a :class:`QueryEvent`, calls
``before_query`` in registration order (each hook may return a derived
:class:`QueryContext`), runs the statement, fills in ``result`` / ``error``
and calls ``after_query`` in reverse registration order.  The ``after``
phase also runs when the statement fails or is cancelled.

When no hooks are registered no event is built at all; the statement and
error counters in :class:`DBStats` are updated either way.

Model level
-----------
Models may implement any of::

    before_insert(self, query)   after_insert(self, query)
    before_update(self, query)   after_update(self, query)
    before_delete(self, query)   after_delete(self, query)
    after_scan(self)
    before_select(cls, query)    after_select(cls, query)   # classmethods
    before_scan(cls, row)                                   # classmethod

Hooks may be plain functions or coroutines.  Which hooks a model class
implements is resolved once per class and cached (:func:`model_hooks`).
``before_scan`` receives each raw row dict before hydration and may edit it
in place.  Batch semantics: ``before_*`` hooks (``before_scan`` included)
stop at the first error; ``after_*`` and ``after_scan`` hooks run for every
entity and the first error is raised once the whole batch has been visited.
"""
from __future__ import annotations

import functools
import threading
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from inspect import isawaitable
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from brickorm.errors import NoRowsError

if TYPE_CHECKING:
    from brickorm.adapters.base import ExecResult

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Propagation context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QueryContext:
    """Immutable key/value context threaded through hooks and adapters.

    Attributes:
        values: Read-only mapping of caller / hook supplied values.
        comment: Optional comment that terminal operations prepend to the
            statement as ``/* comment */``.
    """

    values: Mapping[Any, Any] = field(default_factory=lambda: MappingProxyType({}))
    comment: str | None = None

    def with_value(self, key: Any, value: Any) -> QueryContext:
        """Return a derived context with ``key`` set to ``value``."""
        return replace(self, values=MappingProxyType({**self.values, key: value}))

    def value(self, key: Any, default: Any = None) -> Any:
        return self.values.get(key, default)

    def with_comment(self, comment: str) -> QueryContext:
        return replace(self, comment=comment)


EMPTY_CONTEXT = QueryContext()


# ---------------------------------------------------------------------------
# Statement-level hooks
# ---------------------------------------------------------------------------


@dataclass
class QueryEvent:
    """One statement travelling through the hook pipeline.

    Attributes:
        db: The :class:`~brickorm.db.Database` executing the statement.
        query: The query object that rendered ``sql``.
        operation: ``SELECT``, ``INSERT``, ``UPDATE`` or ``DELETE``.
        sql: Rendered statement text.
        args: Values that were inlined into ``sql``, in order.
        model: Model class the statement is bound to, if any.
        start_time: ``time.perf_counter()`` when the event was created.
        started_at: Wall-clock start time (UTC).
        end_time: ``time.perf_counter()`` when the statement finished.
        result: Adapter result, set before ``after_query``.
        error: Exception raised by the statement, set before ``after_query``.
        stash: Free-form storage for hook-to-hook communication.
    """

    db: Any
    query: Any
    operation: str
    sql: str
    args: tuple[Any, ...] = ()
    model: type | None = None
    start_time: float = field(default_factory=time.perf_counter)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: float | None = None
    result: ExecResult | None = None
    error: BaseException | None = None
    stash: dict[Any, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float | None:
        """Seconds between start and end, once the statement has finished."""
        if self.end_time is None:
            return None
        return self.end_time - self.start_time


@runtime_checkable
class QueryHook(Protocol):
    """Interceptor invoked around every statement.

    ``before_query`` may return a derived context (or ``None`` to keep the
    current one).  Both methods may be coroutines.
    """

    def before_query(self, ctx: QueryContext, event: QueryEvent) -> QueryContext | None | Awaitable[QueryContext | None]:
        ...

    def after_query(self, ctx: QueryContext, event: QueryEvent) -> None | Awaitable[None]:
        ...


@dataclass
class DBStats:
    """Statement counters; ``errors`` excludes :class:`NoRowsError`."""

    queries: int = 0
    errors: int = 0


class HookPipeline:
    """Ordered statement interceptors plus execution statistics."""

    def __init__(self, hooks: Iterable[QueryHook] = ()) -> None:
        self._hooks: list[QueryHook] = list(hooks)
        self._stats = DBStats()
        self._stats_lock = threading.Lock()

    def add(self, hook: QueryHook) -> None:
        self._hooks.append(hook)

    @property
    def hooks(self) -> tuple[QueryHook, ...]:
        return tuple(self._hooks)

    @property
    def stats(self) -> DBStats:
        """A snapshot of the counters."""
        with self._stats_lock:
            return replace(self._stats)

    async def run(
        self,
        ctx: QueryContext,
        event_factory: Callable[[], QueryEvent],
        fn: Callable[[QueryContext], Awaitable[ExecResult]],
    ) -> ExecResult:
        """Run ``fn`` between the ``before`` and ``after`` phases.

        Args:
            ctx: Context supplied by the caller.
            event_factory: Builds the event; only called when hooks exist.
            fn: Executes the statement with the (possibly derived) context.

        Returns:
            Whatever ``fn`` returns.
        """
        ctx, event = await self.before_query(ctx, event_factory)
        try:
            result = await fn(ctx)
        except BaseException as exc:
            await self.after_query(ctx, event, None, exc)
            raise
        await self.after_query(ctx, event, result, None)
        return result

    async def before_query(
        self, ctx: QueryContext, event_factory: Callable[[], QueryEvent]
    ) -> tuple[QueryContext, QueryEvent | None]:
        with self._stats_lock:
            self._stats.queries += 1

        if not self._hooks:
            return ctx, None

        event = event_factory()
        for hook in self._hooks:
            derived = hook.before_query(ctx, event)
            if isawaitable(derived):
                derived = await derived
            if derived is not None:
                ctx = derived
        return ctx, event

    async def after_query(
        self,
        ctx: QueryContext,
        event: QueryEvent | None,
        result: ExecResult | None,
        error: BaseException | None,
    ) -> None:
        if error is not None and not isinstance(error, NoRowsError):
            with self._stats_lock:
                self._stats.errors += 1

        if event is None:
            return

        event.result = result
        event.error = error
        event.end_time = time.perf_counter()
        for hook in reversed(self._hooks):
            done = hook.after_query(ctx, event)
            if isawaitable(done):
                await done


# ---------------------------------------------------------------------------
# Model-level hooks
# ---------------------------------------------------------------------------

MODEL_HOOK_NAMES: tuple[str, ...] = (
    "before_insert",
    "after_insert",
    "before_update",
    "after_update",
    "before_delete",
    "after_delete",
    "before_select",
    "after_select",
    "before_scan",
    "after_scan",
)


class BeforeInsertHook(Protocol):
    def before_insert(self, query: Any) -> None | Awaitable[None]: ...


class AfterInsertHook(Protocol):
    def after_insert(self, query: Any) -> None | Awaitable[None]: ...


class BeforeUpdateHook(Protocol):
    def before_update(self, query: Any) -> None | Awaitable[None]: ...


class AfterUpdateHook(Protocol):
    def after_update(self, query: Any) -> None | Awaitable[None]: ...


class BeforeDeleteHook(Protocol):
    def before_delete(self, query: Any) -> None | Awaitable[None]: ...


class AfterDeleteHook(Protocol):
    def after_delete(self, query: Any) -> None | Awaitable[None]: ...


class BeforeScanHook(Protocol):
    @classmethod
    def before_scan(cls, row: dict[str, Any]) -> None | Awaitable[None]: ...


class AfterScanHook(Protocol):
    def after_scan(self) -> None | Awaitable[None]: ...


@dataclass(frozen=True)
class ModelHooks:
    """The set of lifecycle hooks one model class implements."""

    names: frozenset[str]

    def has(self, name: str) -> bool:
        return name in self.names


@functools.lru_cache(maxsize=None)
def model_hooks(model: type) -> ModelHooks:
    """Return the hooks ``model`` implements (cached per class)."""
    return ModelHooks(
        frozenset(name for name in MODEL_HOOK_NAMES if callable(getattr(model, name, None)))
    )


async def _call(target: Any, name: str, *args: Any) -> None:
    done = getattr(target, name)(*args)
    if isawaitable(done):
        await done


async def call_model_hook(model: type, name: str, arg: Any) -> None:
    """Call a class-level hook (``before_select``, ``after_select`` or
    ``before_scan``) if present."""
    if model_hooks(model).has(name):
        await _call(model, name, arg)


async def call_before_hooks(entities: Iterable[Any], name: str, query: Any) -> None:
    """Call ``name`` on every entity, stopping at the first error."""
    for entity in entities:
        if model_hooks(type(entity)).has(name):
            await _call(entity, name, query)


async def call_after_hooks(entities: Iterable[Any], name: str, *args: Any) -> None:
    """Call ``name`` on every entity; raise the first error afterwards."""
    first_error: Exception | None = None
    for entity in entities:
        if not model_hooks(type(entity)).has(name):
            continue
        try:
            await _call(entity, name, *args)
        except Exception as exc:
            if first_error is None:
                first_error = exc
    if first_error is not None:
        raise first_error
