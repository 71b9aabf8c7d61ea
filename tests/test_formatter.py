"""Unit tests for placeholder interpolation and value rendering."""
from __future__ import annotations

import datetime as dt
import enum
import uuid
from decimal import Decimal

import pytest

from brickorm.compile.formatter import Formatter
from brickorm.dialect import PostgresDialect, SQLiteDialect
from brickorm.errors import FeatureNotSupportedError, QueryBuildError
from brickorm.schema import Cast, Ident, In, Safe
from brickorm.schema.fragment import safe_query, unsafe_ident
from tests.fixtures import User, make_db

PG = PostgresDialect()


def _fmt(query: str, *args) -> str:
    return Formatter(PG).format_query(query, args)


class Color(enum.Enum):
    RED = "red"


def test_positional_placeholders():
    assert _fmt("a = ? AND b = ?", 1, "x") == "a = 1 AND b = 'x'"


def test_indexed_placeholders():
    assert _fmt("?1 > ?0", 1, 2) == "2 > 1"


def test_escaped_question_mark():
    assert _fmt("data \\? 'key'") == "data ? 'key'"


def test_query_without_args_keeps_placeholder():
    assert _fmt("a = ?") == "a = ?"


def test_too_few_arguments():
    with pytest.raises(QueryBuildError):
        _fmt("a = ? AND b = ?", 1)


def test_missing_indexed_argument():
    with pytest.raises(QueryBuildError):
        _fmt("?3", 1)


def test_wrappers():
    assert _fmt("? = 1", Ident("user.id")) == '"user"."id" = 1'
    assert _fmt("?", Safe("now()")) == "now()"
    assert _fmt("id IN ?", In([1, 2, 3])) == "id IN (1, 2, 3)"
    assert _fmt("? IN ?", Safe("(a, b)"), In([(1, 2), (3, 4)])) == "(a, b) IN ((1, 2), (3, 4))"
    assert _fmt("?", Cast("1", "int")) == "'1'::int"


def test_scalar_values():
    assert _fmt("?", None) == "NULL"
    assert _fmt("?", True) == "TRUE"
    assert _fmt("?", 1.5) == "1.5"
    assert _fmt("?", float("nan")) == "'nan'"
    assert _fmt("?", Decimal("1.10")) == "1.10"
    assert _fmt("?", b"\x00") == "'\\x00'"
    assert _fmt("?", Color.RED) == "'red'"
    assert _fmt("?", {"a": 1}) == "'{\"a\": 1}'"
    assert _fmt("?", [1, 2]) == "ARRAY[1, 2]"


def test_temporal_and_uuid_values():
    assert _fmt("?", dt.datetime(2024, 1, 2, 3, 4, 5)) == "'2024-01-02 03:04:05'"
    assert _fmt("?", dt.date(2024, 1, 2)) == "'2024-01-02'"
    value = uuid.UUID("12345678-1234-5678-1234-567812345678")
    assert _fmt("?", value) == "'12345678-1234-5678-1234-567812345678'"


def test_unsupported_type():
    with pytest.raises(QueryBuildError, match="Unsupported argument type"):
        _fmt("?", object())


def test_list_on_sqlite_rejected():
    with pytest.raises(FeatureNotSupportedError):
        Formatter(SQLiteDialect()).format_query("?", ([1],))


def test_runtime_records_inlined_values():
    fmter = Formatter(PG)
    fmter.format_query("a = ? AND b = ?", (1, Ident("x")))
    fmter.format_query("c = ?", ("z",))
    assert fmter.runtime.args == [1, "z"]


def test_table_placeholders():
    db = make_db()
    table = db.dialect.tables.get(User)
    fmter = Formatter(db.dialect, table)
    assert fmter.format_query("?TableName") == '"users"'
    assert fmter.format_query("?TableAlias.id") == '"user".id'
    assert fmter.format_query("?PKs") == '"user"."id"'
    assert fmter.format_query("?Columns") == '"id", "name", "age"'
    assert fmter.format_query("?TableColumns") == '"user"."id", "user"."name", "user"."age"'


def test_alias_override():
    db = make_db()
    table = db.dialect.tables.get(User)
    assert Formatter(db.dialect, table, '"u2"').format_query("?TableAlias") == '"u2"'


def test_unknown_named_placeholder_left_alone():
    assert Formatter(PG).format_query("?Nope") == "?Nope"


def test_format_fragment():
    fmter = Formatter(PG)
    assert fmter.format(unsafe_ident("users")) == '"users"'
    assert fmter.format(safe_query("age > ?", (18,))) == "age > 18"


def test_subquery_argument():
    db = make_db()
    sub = db.select(User).column("id").where("age > ?", 30)
    sql = Formatter(db.dialect).format_query("id IN ?", (sub,))
    assert sql == 'id IN (SELECT "user"."id" FROM "users" AS "user" WHERE (age > 30))'
