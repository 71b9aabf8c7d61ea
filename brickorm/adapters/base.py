"""Execution adapter protocol.

The query engine renders self-contained SQL text (values are inlined by the
:class:`~brickorm.compile.formatter.Formatter`) and hands it to an adapter.
Transport, pooling and driver specifics live behind this protocol.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class ExecResult:
    """Outcome of one statement.

    Attributes:
        rows: Result rows as dicts keyed by column label, in order.
        rowcount: Rows affected (or returned) as reported by the driver.
        last_insert_id: Driver-reported id of the last inserted row, if any.
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0
    last_insert_id: int | None = None


@runtime_checkable
class ExecutionAdapter(Protocol):
    """Runs rendered SQL text and returns its rows."""

    async def execute(self, sql: str) -> ExecResult:
        ...
