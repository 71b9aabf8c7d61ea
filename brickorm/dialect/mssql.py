"""Microsoft SQL Server dialect."""
from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from brickorm.dialect.base import Dialect
from brickorm.dialect.feature import Feature

if TYPE_CHECKING:
    from brickorm.schema.table import Field, Table


class MSSQLDialect(Dialect):
    """SQL Server backend profile.

    Row limiting uses ``OFFSET n ROWS FETCH NEXT m ROWS ONLY``, which SQL
    Server only accepts after an ``ORDER BY``.  When a query is limited but
    unordered, the engine injects :attr:`synthetic_order_column` as a constant
    column and orders by it.
    """

    features: ClassVar[Feature] = (
        Feature.CTE
        | Feature.DEFAULT_PLACEHOLDER
        | Feature.IDENTITY
        | Feature.OFFSET_FETCH
        | Feature.UPDATE_FROM_TABLE
        | Feature.TABLE_TRUNCATE
    )

    synthetic_order_column: ClassVar[str | None] = "_temp_sort"

    @property
    def name(self) -> str:
        return "mssql"

    def append_bool(self, value: bool) -> str:
        return "1" if value else "0"

    def append_bytes(self, value: bytes) -> str:
        return f"0x{value.hex()}"

    def append_string(self, value: str) -> str:
        return "N'" + value.replace("'", "''") + "'"

    def append_sequence(self, table: Table, field: Field) -> str:
        return " IDENTITY"

    def append_limit_offset(self, limit: int, offset: int) -> str:
        if limit <= 0 and offset <= 0:
            return ""
        sql = f" OFFSET {max(offset, 0)} ROWS"
        if limit > 0:
            sql += f" FETCH NEXT {limit} ROWS ONLY"
        return sql
