"""SQLAlchemy-backed execution adapter.

Statements are sent with ``exec_driver_sql`` and ``no_parameters=True`` so
the driver never re-interprets ``%`` / ``:`` inside the inlined literals.

Example::

    from sqlalchemy.ext.asyncio import create_async_engine
    from brickorm.adapters.sqlalchemy import SQLAlchemyAdapter

    engine = create_async_engine("sqlite+aiosqlite:///app.db")
    adapter = SQLAlchemyAdapter(engine)

    async with adapter.connect() as conn:
        await db.insert(user).conn(conn).execute()
"""
from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from brickorm.adapters.base import ExecResult

if TYPE_CHECKING:
    from sqlalchemy.engine import CursorResult
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = logging.getLogger(__name__)

_EXECUTION_OPTIONS: dict[str, Any] = {"no_parameters": True}


def _to_result(result: CursorResult[Any]) -> ExecResult:
    if result.returns_rows:
        rows = [dict(row) for row in result.mappings().all()]
        return ExecResult(rows=rows, rowcount=len(rows))
    cursor = result.context.cursor
    return ExecResult(
        rows=[],
        rowcount=result.rowcount,
        last_insert_id=getattr(cursor, "lastrowid", None),
    )


async def _execute(conn: AsyncConnection, sql: str) -> ExecResult:
    result = await conn.exec_driver_sql(sql, execution_options=_EXECUTION_OPTIONS)
    return _to_result(result)


class PinnedConnection:
    """An adapter bound to one open connection / transaction."""

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn

    @property
    def connection(self) -> AsyncConnection:
        return self._conn

    async def execute(self, sql: str) -> ExecResult:
        return await _execute(self._conn, sql)


class SQLAlchemyAdapter:
    """Runs each statement in its own transaction on an ``AsyncEngine``.

    Args:
        engine: SQLAlchemy async engine.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def execute(self, sql: str) -> ExecResult:
        async with self._engine.begin() as conn:
            return await _execute(conn, sql)

    @contextlib.asynccontextmanager
    async def connect(self) -> AsyncIterator[PinnedConnection]:
        """Open one connection and transaction for several statements.

        The transaction commits when the block exits normally and rolls back
        when it raises.
        """
        async with self._engine.begin() as conn:
            logger.debug("pinned connection opened")
            yield PinnedConnection(conn)

    async def dispose(self) -> None:
        await self._engine.dispose()
