"""Shared pytest fixtures for brickORM unit and integration tests."""
from __future__ import annotations

import pytest

from brickorm import Database
from brickorm.dialect import MSSQLDialect, MySQLDialect, PostgresDialect, SQLiteDialect
from tests.fixtures import RecordingAdapter, make_db


@pytest.fixture()
def adapter() -> RecordingAdapter:
    return RecordingAdapter()


@pytest.fixture()
def pg_db(adapter: RecordingAdapter) -> Database:
    """Postgres database answering from the recording adapter."""
    return make_db(PostgresDialect(), adapter)


@pytest.fixture()
def sqlite_db(adapter: RecordingAdapter) -> Database:
    return make_db(SQLiteDialect(), adapter)


@pytest.fixture()
def mysql_db(adapter: RecordingAdapter) -> Database:
    return make_db(MySQLDialect(), adapter)


@pytest.fixture()
def mssql_db(adapter: RecordingAdapter) -> Database:
    return make_db(MSSQLDialect(), adapter)
