"""MySQL dialect."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from brickorm.dialect.base import Dialect
from brickorm.dialect.feature import Feature

if TYPE_CHECKING:
    from brickorm.schema.table import Field, Table


class MySQLDialect(Dialect):
    """MySQL backend profile.

    Identifiers are quoted with backticks (`` ` ``) rather than double-quotes.

    MySQL has no ``SELECT EXISTS`` feature flag here, so ``exists()`` uses the
    portable ``SELECT 1 WHERE EXISTS (...)`` form.  Common table expressions
    are only available from server version 8.  Index hints
    (``USE`` / ``IGNORE`` / ``FORCE INDEX``) are MySQL-only.

    Args:
        server_version: Major server version; CTE support requires 8+.
    """

    ident_quote: ClassVar[str] = "`"

    _BASE_FEATURES: ClassVar[Feature] = (
        Feature.AUTO_INCREMENT
        | Feature.DEFAULT_PLACEHOLDER
        | Feature.UPDATE_MULTI_TABLE
        | Feature.VALUES_ROW
        | Feature.TABLE_TRUNCATE
        | Feature.TABLE_NOT_EXISTS
        | Feature.INSERT_IGNORE
        | Feature.INSERT_ON_DUPLICATE_KEY
        | Feature.DELETE_TABLE_ALIAS
        | Feature.COMPOSITE_IN
        | Feature.INDEX_HINTS
    )

    def __init__(self, server_version: int = 8) -> None:
        super().__init__()
        features = self._BASE_FEATURES
        if server_version >= 8:
            features |= Feature.CTE | Feature.WITH_VALUES
        self.server_version = server_version
        # Instance attribute shadows the class-level default.
        self.features = features  # type: ignore[misc]

    @property
    def name(self) -> str:
        return "mysql"

    def append_string(self, value: str) -> str:
        escaped = value.replace("\\", "\\\\").replace("'", "''")
        return f"'{escaped}'"

    def append_sequence(self, table: Table, field: Field) -> str:
        return " AUTO_INCREMENT"

    def __repr__(self) -> str:
        return f"MySQLDialect(server_version={self.server_version})"
