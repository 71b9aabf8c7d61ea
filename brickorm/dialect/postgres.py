"""PostgreSQL dialect."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, ClassVar

from brickorm.dialect.base import Dialect
from brickorm.dialect.feature import Feature

if TYPE_CHECKING:
    from brickorm.schema.table import Field, Table


class PostgresDialect(Dialect):
    """PostgreSQL backend profile.

    Identifiers are double-quoted, arrays render as ``ARRAY[...]`` and casts
    use the ``::type`` shorthand.  Unsigned 32-bit integers are stored in
    ``integer`` columns, so they are rendered as their signed 32-bit
    reinterpretation.
    """

    features: ClassVar[Feature] = (
        Feature.CTE
        | Feature.WITH_VALUES
        | Feature.RETURNING
        | Feature.INSERT_RETURNING
        | Feature.DEFAULT_PLACEHOLDER
        | Feature.DOUBLE_COLON_CAST
        | Feature.INSERT_TABLE_ALIAS
        | Feature.UPDATE_TABLE_ALIAS
        | Feature.DELETE_TABLE_ALIAS
        | Feature.TABLE_CASCADE
        | Feature.TABLE_IDENTITY
        | Feature.TABLE_TRUNCATE
        | Feature.TABLE_NOT_EXISTS
        | Feature.INSERT_ON_CONFLICT
        | Feature.SELECT_EXISTS
        | Feature.GENERATED_IDENTITY
        | Feature.COMPOSITE_IN
    )

    @property
    def name(self) -> str:
        return "postgres"

    def append_bytes(self, value: bytes) -> str:
        return f"'\\x{value.hex()}'"

    def append_uint32(self, value: int) -> str:
        value &= 0xFFFFFFFF
        if value >= 1 << 31:
            value -= 1 << 32
        return str(value)

    def append_uint64(self, value: int) -> str:
        value &= 0xFFFFFFFFFFFFFFFF
        if value >= 1 << 63:
            value -= 1 << 64
        return str(value)

    def append_array(self, values: Sequence[Any], append_value: Callable[[Any], str]) -> str:
        return "ARRAY[" + ", ".join(append_value(v) for v in values) + "]"

    def append_sequence(self, table: Table, field: Field) -> str:
        return " GENERATED BY DEFAULT AS IDENTITY"
