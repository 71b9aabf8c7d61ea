"""Logging query hook.

``QueryDebugHook`` logs every statement after it ran:

- DEBUG for successful statements (and for :class:`NoRowsError`),
- WARNING for statements slower than ``slow_query_threshold``,
- ERROR for failed statements.

Install it with ``DatabaseConfig(debug=True)`` or
``db.add_query_hook(QueryDebugHook())`` and configure the
``brickorm.debug`` logger as usual.
"""
from __future__ import annotations

import logging

from brickorm.errors import NoRowsError
from brickorm.hooks import QueryContext, QueryEvent

logger = logging.getLogger(__name__)


class QueryDebugHook:
    """Logs statements, their duration and their outcome.

    Args:
        slow_query_threshold: Seconds; slower statements are logged at WARNING.
        log_arguments: Append the inlined values to each record.
        log: Logger to use instead of the module logger.
    """

    def __init__(
        self,
        slow_query_threshold: float | None = None,
        log_arguments: bool = False,
        log: logging.Logger | None = None,
    ) -> None:
        self.slow_query_threshold = slow_query_threshold
        self.log_arguments = log_arguments
        self._log = log or logger

    def before_query(self, ctx: QueryContext, event: QueryEvent) -> QueryContext:
        return ctx

    def after_query(self, ctx: QueryContext, event: QueryEvent) -> None:
        duration_ms = (event.duration or 0.0) * 1000
        extra = f" args={event.args!r}" if self.log_arguments and event.args else ""

        if event.error is not None and not isinstance(event.error, NoRowsError):
            self._log.error(
                "%s failed after %.3fms: %s: %s%s",
                event.operation, duration_ms, type(event.error).__name__, event.sql, extra,
            )
            return

        threshold = self.slow_query_threshold
        if threshold is not None and (event.duration or 0.0) >= threshold:
            self._log.warning(
                "slow %s took %.3fms: %s%s", event.operation, duration_ms, event.sql, extra
            )
            return

        self._log.debug("%s took %.3fms: %s%s", event.operation, duration_ms, event.sql, extra)
