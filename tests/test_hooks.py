"""Unit tests for the statement hook pipeline, model lifecycle hooks and
the logging debug hook."""
from __future__ import annotations

import logging
from typing import ClassVar

import pytest
from pydantic import BaseModel

from brickorm import QueryContext, QueryDebugHook, QueryEvent
from brickorm.adapters.base import ExecResult
from brickorm.errors import NoRowsError
from brickorm.hooks import HookPipeline, QueryHook, model_hooks
from tests.fixtures import RecordingAdapter, User, make_db


class Recorder:
    def __init__(self, name: str, log: list[str]) -> None:
        self.name = name
        self.log = log

    def before_query(self, ctx, event):
        self.log.append(f"before {self.name}")
        return ctx.with_value(self.name, True)

    def after_query(self, ctx, event):
        self.log.append(f"after {self.name}")


class AsyncRecorder(Recorder):
    async def before_query(self, ctx, event):
        return super().before_query(ctx, event)

    async def after_query(self, ctx, event):
        super().after_query(ctx, event)


class Capture:
    def __init__(self) -> None:
        self.events: list[QueryEvent] = []
        self.contexts: list[QueryContext] = []

    def before_query(self, ctx, event):
        return None

    def after_query(self, ctx, event):
        self.events.append(event)
        self.contexts.append(ctx)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


def test_query_context_is_immutable():
    base = QueryContext()
    derived = base.with_value("k", 1)
    assert base.value("k") is None
    assert derived.value("k") == 1
    with pytest.raises(TypeError):
        derived.values["k"] = 2


def test_recorder_satisfies_protocol():
    assert isinstance(Recorder("a", []), QueryHook)


# ---------------------------------------------------------------------------
# Statement hooks
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_before_in_order_after_in_reverse():
    log: list[str] = []
    db = make_db()
    for name in ("A", "B", "C"):
        db.add_query_hook(Recorder(name, log))
    await db.select().table("t").rows()
    assert log == ["before A", "before B", "before C", "after C", "after B", "after A"]


@pytest.mark.asyncio
async def test_async_hooks_are_awaited():
    log: list[str] = []
    db = make_db()
    db.add_query_hook(AsyncRecorder("A", log))
    db.add_query_hook(Recorder("B", log))
    await db.select().table("t").rows()
    assert log == ["before A", "before B", "after B", "after A"]


@pytest.mark.asyncio
async def test_derived_context_reaches_after_phase():
    capture = Capture()
    db = make_db()
    db.add_query_hook(Recorder("A", []))
    db.add_query_hook(capture)
    await db.select().table("t").rows(QueryContext().with_value("req", 7))
    ctx = capture.contexts[0]
    assert ctx.value("req") == 7
    assert ctx.value("A") is True


@pytest.mark.asyncio
async def test_event_describes_statement():
    capture = Capture()
    adapter = RecordingAdapter([[{"id": 1, "name": "a", "age": 2}]])
    db = make_db(adapter=adapter)
    db.add_query_hook(capture)
    await db.select(User).where("age > ?", 18).scan()

    event = capture.events[0]
    assert event.operation == "SELECT"
    assert event.sql == adapter.statements[0]
    assert event.args == (18,)
    assert event.model is User
    assert event.db is db
    assert event.error is None
    assert event.result.rows == [{"id": 1, "name": "a", "age": 2}]
    assert event.duration is not None and event.duration >= 0


@pytest.mark.asyncio
async def test_after_phase_sees_error():
    def failing(sql: str) -> list[dict]:
        raise RuntimeError("driver down")

    capture = Capture()
    db = make_db(adapter=RecordingAdapter(responder=failing))
    db.add_query_hook(capture)
    with pytest.raises(RuntimeError, match="driver down"):
        await db.select().table("t").rows()
    assert isinstance(capture.events[0].error, RuntimeError)
    assert capture.events[0].result is None


@pytest.mark.asyncio
async def test_stats():
    def responder(sql: str) -> list[dict]:
        if "bad" in sql:
            raise RuntimeError("bad")
        return []

    db = make_db(adapter=RecordingAdapter(responder=responder))
    await db.select().table("t").rows()
    with pytest.raises(RuntimeError):
        await db.select().table("bad").rows()
    with pytest.raises(NoRowsError):
        await db.select(User).scan_one()
    assert db.stats.queries == 3
    assert db.stats.errors == 1


@pytest.mark.asyncio
async def test_no_event_built_without_hooks():
    def factory() -> QueryEvent:
        raise AssertionError("event built")

    async def fn(ctx):
        return ExecResult()

    pipeline = HookPipeline()
    result = await pipeline.run(QueryContext(), factory, fn)
    assert result.rows == []
    assert pipeline.stats.queries == 1


# ---------------------------------------------------------------------------
# Model hooks
# ---------------------------------------------------------------------------


class Audited(BaseModel):
    __tablename__: ClassVar[str] = "audited"

    calls: ClassVar[list[tuple[str, str]]] = []

    id: int | None = None
    name: str = ""

    @classmethod
    def before_select(cls, query):
        cls.calls.append(("before_select", ""))

    @classmethod
    async def after_select(cls, query):
        cls.calls.append(("after_select", ""))

    @classmethod
    def before_scan(cls, row):
        cls.calls.append(("before_scan", row["name"]))
        row["name"] = row["name"].strip()

    def after_scan(self):
        Audited.calls.append(("after_scan", self.name))

    def before_insert(self, query):
        Audited.calls.append(("before_insert", self.name))

    async def after_insert(self, query):
        Audited.calls.append(("after_insert", self.name))
        if self.name == "bad":
            raise ValueError("bad after_insert")

    def before_delete(self, query):
        Audited.calls.append(("before_delete", self.name))
        if self.name == "locked":
            raise PermissionError("locked")


@pytest.fixture(autouse=True)
def _reset_calls():
    Audited.calls.clear()


def test_model_hooks_detected_once_per_class():
    hooks = model_hooks(Audited)
    assert hooks.has("after_scan")
    assert hooks.has("before_scan")
    assert not hooks.has("before_update")
    assert model_hooks(Audited) is hooks
    assert not model_hooks(User).names


@pytest.mark.asyncio
async def test_select_hooks():
    adapter = RecordingAdapter([[{"id": 1, "name": " a"}, {"id": 2, "name": "b"}]])
    items = await make_db(adapter=adapter).select(Audited).scan()
    assert Audited.calls == [
        ("before_select", ""),
        ("before_scan", " a"),
        ("before_scan", "b"),
        ("after_scan", "a"),
        ("after_scan", "b"),
        ("after_select", ""),
    ]
    assert [i.name for i in items] == ["a", "b"]


@pytest.mark.asyncio
async def test_insert_hooks_and_write_back():
    adapter = RecordingAdapter([[{"id": 9}]])
    item = Audited(name="a")
    await make_db(adapter=adapter).insert(item).execute()
    assert adapter.statements == ['INSERT INTO "audited" ("name") VALUES (\'a\') RETURNING "id"']
    assert item.id == 9
    assert Audited.calls == [("before_insert", "a"), ("after_insert", "a")]


@pytest.mark.asyncio
async def test_after_hooks_visit_every_entity_then_raise_first_error():
    items = [Audited(name="a"), Audited(name="bad"), Audited(name="c")]
    with pytest.raises(ValueError, match="bad after_insert"):
        await make_db().insert(items).execute()
    after = [name for hook, name in Audited.calls if hook == "after_insert"]
    assert after == ["a", "bad", "c"]


@pytest.mark.asyncio
async def test_before_hook_error_stops_before_statement():
    adapter = RecordingAdapter()
    items = [Audited(id=1, name="locked"), Audited(id=2, name="b")]
    with pytest.raises(PermissionError):
        await make_db(adapter=adapter).delete(items).execute()
    assert adapter.statements == []
    assert Audited.calls == [("before_delete", "locked")]


@pytest.mark.asyncio
async def test_before_scan_error_aborts_scan():
    class Strict(BaseModel):
        __tablename__: ClassVar[str] = "strict"

        id: int | None = None

        @classmethod
        async def before_scan(cls, row):
            if row["id"] < 0:
                raise ValueError("negative id")

        def after_scan(self):
            Audited.calls.append(("after_scan", str(self.id)))

    adapter = RecordingAdapter([[{"id": 1}, {"id": -1}]])
    with pytest.raises(ValueError, match="negative id"):
        await make_db(adapter=adapter).select(Strict).scan()
    assert Audited.calls == []


# ---------------------------------------------------------------------------
# Debug hook
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_debug_hook_logs_statements(caplog):
    caplog.set_level(logging.DEBUG, logger="brickorm.debug")
    db = make_db(debug=True, log_arguments=True)
    await db.select().table("t").where("a = ?", 1).rows()
    record = caplog.records[-1]
    assert record.levelno == logging.DEBUG
    assert 'SELECT * FROM "t" WHERE (a = 1)' in record.getMessage()
    assert "args=(1,)" in record.getMessage()


@pytest.mark.asyncio
async def test_debug_hook_warns_on_slow_statement(caplog):
    caplog.set_level(logging.DEBUG, logger="brickorm.debug")
    db = make_db(debug=True, slow_query_threshold=1e-9)
    await db.select().table("t").rows()
    assert caplog.records[-1].levelno == logging.WARNING
    assert caplog.records[-1].getMessage().startswith("slow SELECT took")


@pytest.mark.asyncio
async def test_debug_hook_logs_errors(caplog):
    def failing(sql: str) -> list[dict]:
        raise RuntimeError("boom")

    caplog.set_level(logging.DEBUG, logger="brickorm.debug")
    db = make_db(adapter=RecordingAdapter(responder=failing))
    db.add_query_hook(QueryDebugHook())
    with pytest.raises(RuntimeError):
        await db.select().table("t").rows()
    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert "SELECT failed after" in record.getMessage()
    assert "RuntimeError" in record.getMessage()


@pytest.mark.asyncio
async def test_debug_hook_treats_no_rows_as_success(caplog):
    caplog.set_level(logging.DEBUG, logger="brickorm.debug")
    db = make_db(debug=True)
    with pytest.raises(NoRowsError):
        await db.select(User).scan_one()
    assert caplog.records[-1].levelno == logging.DEBUG
