"""brickORM dialects: capability sets, quoting and literal rendering."""
from brickorm.dialect.base import Dialect
from brickorm.dialect.feature import Feature
from brickorm.dialect.mssql import MSSQLDialect
from brickorm.dialect.mysql import MySQLDialect
from brickorm.dialect.postgres import PostgresDialect
from brickorm.dialect.registry import DialectRegistry
from brickorm.dialect.sqlite import SQLiteDialect

__all__ = [
    "Dialect",
    "DialectRegistry",
    "Feature",
    "MSSQLDialect",
    "MySQLDialect",
    "PostgresDialect",
    "SQLiteDialect",
]
