"""Row → model hydration.

Rows arrive from the adapter as dicts keyed by column label.  Primary-table
columns use their bare field names; columns of inline relation joins use
``<join alias>__<field>`` labels (see
:class:`~brickorm.compile.clause_builders.RelationJoinBuilder`).

:func:`scan_rows` wraps hydration with the ``before_scan`` / ``after_scan``
model hooks.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import Any

from brickorm.hooks import call_after_hooks, call_model_hook, model_hooks
from brickorm.schema.query_plan import RelationJoin
from brickorm.schema.table import Field, Table


def key_of(obj: Any, fields: Sequence[Field]) -> tuple[Any, ...]:
    """Return the values of ``fields`` on ``obj`` as a tuple."""
    return tuple(getattr(obj, f.name) for f in fields)


def hydrate(table: Table, row: dict[str, Any], joins: Sequence[RelationJoin] = (), prefix: str = "") -> Any:
    """Build one model instance (plus inline related instances) from ``row``.

    An inline relation whose columns are all NULL (no matching row in the
    ``LEFT JOIN``) is set to ``None``.
    """
    data = {f.name: row[prefix + f.name] for f in table.fields if prefix + f.name in row}
    instance = table.new_instance(data)

    for join in joins:
        if not join.is_inline:
            continue
        related_table = join.relation.join_table
        child_prefix = join.alias + "__"
        present = [
            row[child_prefix + f.name]
            for f in related_table.fields
            if child_prefix + f.name in row
        ]
        child = None
        if any(v is not None for v in present):
            child = hydrate(related_table, row, join.children, child_prefix)
        setattr(instance, join.name, child)
    return instance


def hydrate_rows(table: Table, rows: Iterable[dict[str, Any]], joins: Sequence[RelationJoin] = ()) -> list[Any]:
    return [hydrate(table, row, joins) for row in rows]


def inline_instances(instances: Iterable[Any], joins: Sequence[RelationJoin]) -> Iterator[Any]:
    """Yield ``instances`` and every non-null inline related instance below them."""
    for instance in instances:
        yield instance
        for join in joins:
            if not join.is_inline:
                continue
            child = getattr(instance, join.name, None)
            if child is not None:
                yield from inline_instances([child], join.children)


async def scan_rows(table: Table, rows: Sequence[dict[str, Any]], joins: Sequence[RelationJoin] = ()) -> list[Any]:
    """Hydrate ``rows`` into ``table.model`` instances, running scan hooks.

    ``before_scan`` is called on the model class with each raw row before any
    instance is built; the first error aborts the scan.  ``after_scan`` runs
    on every hydrated instance, inline related instances included.
    """
    model = table.model
    if model_hooks(model).has("before_scan"):
        for row in rows:
            await call_model_hook(model, "before_scan", row)
    instances = hydrate_rows(table, rows, joins)
    await call_after_hooks(inline_instances(instances, joins), "after_scan")
    return instances
