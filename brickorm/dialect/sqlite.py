"""SQLite dialect."""
from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from brickorm.dialect.base import Dialect
from brickorm.dialect.feature import Feature

if TYPE_CHECKING:
    from brickorm.schema.table import Field, Table


class SQLiteDialect(Dialect):
    """SQLite backend profile.

    Note: SQLite has no array type; list arguments are rejected.  Booleans
    render as ``TRUE`` / ``FALSE`` (SQLite 3.23+ aliases for 1 / 0).
    """

    features: ClassVar[Feature] = (
        Feature.CTE
        | Feature.WITH_VALUES
        | Feature.RETURNING
        | Feature.INSERT_RETURNING
        | Feature.INSERT_TABLE_ALIAS
        | Feature.UPDATE_TABLE_ALIAS
        | Feature.DELETE_TABLE_ALIAS
        | Feature.INSERT_ON_CONFLICT
        | Feature.TABLE_NOT_EXISTS
        | Feature.SELECT_EXISTS
        | Feature.AUTO_INCREMENT
        | Feature.COMPOSITE_IN
    )

    # SQLite rejects parenthesized compound SELECT branches.
    parenthesize_compound: ClassVar[bool] = False

    @property
    def name(self) -> str:
        return "sqlite"

    def append_sequence(self, table: Table, field: Field) -> str:
        return " PRIMARY KEY AUTOINCREMENT"
