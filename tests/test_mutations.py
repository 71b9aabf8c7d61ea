"""Unit tests for INSERT / UPDATE / DELETE compilation and execution."""
from __future__ import annotations

import pytest

from brickorm import QueryContext
from brickorm.adapters.base import ExecResult
from brickorm.dialect import MSSQLDialect, MySQLDialect, PostgresDialect
from brickorm.compile.context import CompilationContext
from brickorm.errors import FeatureNotSupportedError, NilModelError, QueryBuildError
from brickorm.schema.query_plan import DeletePlan, SelectPlan
from tests.fixtures import RecordingAdapter, User, make_db


def _pg():
    return make_db(PostgresDialect())


def _my():
    return make_db(MySQLDialect())


# ---------------------------------------------------------------------------
# INSERT
# ---------------------------------------------------------------------------


def test_insert_omits_generated_pk_and_returns_it():
    sql = _pg().insert(User(name="bob", age=3)).render()
    assert sql == 'INSERT INTO "users" ("name", "age") VALUES (\'bob\', 3) RETURNING "id"'


def test_insert_several_rows():
    sql = _pg().insert([User(name="a"), User(name="b", age=2)]).render()
    assert sql == (
        'INSERT INTO "users" ("name", "age") VALUES (\'a\', 0), (\'b\', 2) RETURNING "id"'
    )


def test_insert_with_explicit_pk():
    sql = _pg().insert(User(id=5, name="a")).render()
    assert sql == 'INSERT INTO "users" ("id", "name", "age") VALUES (5, \'a\', 0)'


def test_insert_explicit_columns():
    sql = _pg().insert(User(id=5, name="a", age=9)).column("id", "age").render()
    assert sql == 'INSERT INTO "users" ("id", "age") VALUES (5, 9)'


def test_insert_on_conflict_do_update_fills_excluded():
    sql = _pg().insert(User(id=5, name="a")).on("CONFLICT (id) DO UPDATE").render()
    assert sql == (
        'INSERT INTO "users" AS "user" ("id", "name", "age") VALUES (5, \'a\', 0) '
        'ON CONFLICT (id) DO UPDATE SET "name" = EXCLUDED."name", "age" = EXCLUDED."age"'
    )


def test_insert_on_conflict_with_set_and_where():
    sql = (
        _pg()
        .insert(User(id=5, name="a"))
        .on("CONFLICT (id) DO UPDATE")
        .set_("name = EXCLUDED.name")
        .where("?TableAlias.age < ?", 10)
        .render()
    )
    assert sql.endswith(
        'ON CONFLICT (id) DO UPDATE SET name = EXCLUDED.name WHERE ("user".age < 10)'
    )


def test_insert_ignore_postgres():
    sql = _pg().insert(User(id=5, name="a")).ignore().render()
    assert sql == (
        'INSERT INTO "users" ("id", "name", "age") VALUES (5, \'a\', 0) ON CONFLICT DO NOTHING'
    )


def test_insert_ignore_mysql():
    sql = _my().insert(User(id=5, name="a")).ignore().render()
    assert sql == "INSERT IGNORE INTO `users` (`id`, `name`, `age`) VALUES (5, 'a', 0)"


def test_insert_on_duplicate_key():
    sql = _my().insert(User(id=5, name="a")).on("DUPLICATE KEY UPDATE").set_("name = VALUES(name)").render()
    assert sql == (
        "INSERT INTO `users` (`id`, `name`, `age`) VALUES (5, 'a', 0) "
        "ON DUPLICATE KEY UPDATE name = VALUES(name)"
    )


def test_insert_ignore_needs_conflict_support():
    with pytest.raises(FeatureNotSupportedError):
        make_db(MSSQLDialect()).insert(User(id=1, name="a")).ignore().render()


def test_insert_returning_needs_support():
    with pytest.raises(FeatureNotSupportedError):
        make_db(MSSQLDialect()).insert(User(id=1, name="a")).returning("id").render()


def test_insert_requires_model():
    with pytest.raises(NilModelError):
        _pg().insert().render()


def test_insert_requires_instances():
    with pytest.raises(QueryBuildError, match="requires model instances"):
        _pg().insert(User).render()


@pytest.mark.asyncio
async def test_insert_writes_back_returned_keys():
    adapter = RecordingAdapter([[{"id": 1}, {"id": 2}]])
    users = [User(name="a"), User(name="b")]
    await make_db(adapter=adapter).insert(users).execute()
    assert [u.id for u in users] == [1, 2]


class _LastIdAdapter:
    def __init__(self) -> None:
        self.statements: list[str] = []

    async def execute(self, sql):
        self.statements.append(sql)
        return ExecResult(rowcount=1, last_insert_id=42)


@pytest.mark.asyncio
async def test_insert_writes_back_last_insert_id():
    adapter = _LastIdAdapter()
    user = User(name="a")
    result = await make_db(MySQLDialect(), adapter).insert(user).execute()
    assert adapter.statements == ["INSERT INTO `users` (`name`, `age`) VALUES ('a', 0)"]
    assert result.rowcount == 1
    assert user.id == 42


@pytest.mark.asyncio
async def test_insert_context_comment():
    adapter = RecordingAdapter()
    await make_db(adapter=adapter).insert(User(id=1, name="a")).execute(QueryContext().with_comment("seed"))
    assert adapter.statements[0].startswith('/* seed */ INSERT INTO "users"')


# ---------------------------------------------------------------------------
# UPDATE
# ---------------------------------------------------------------------------


def test_update_instance():
    sql = _pg().update(User(id=1, name="a", age=2)).render()
    assert sql == 'UPDATE "users" AS "user" SET "name" = \'a\', "age" = 2 WHERE ("user"."id" = 1)'


def test_update_selected_columns():
    sql = _pg().update(User(id=1, name="a", age=2)).column("name").render()
    assert sql == 'UPDATE "users" AS "user" SET "name" = \'a\' WHERE ("user"."id" = 1)'


def test_update_explicit_set_and_where():
    sql = _pg().update(User).set_("age = age + ?", 1).where("?TableAlias.id = ?", 1).render()
    assert sql == 'UPDATE "users" AS "user" SET age = age + 1 WHERE ("user".id = 1)'


def test_update_from_and_returning():
    sql = (
        _pg()
        .update(User)
        .set_("age = o.age")
        .table_expr("others AS o")
        .where("o.id = ?TableAlias.id")
        .returning("*")
        .render()
    )
    assert sql == (
        'UPDATE "users" AS "user" SET age = o.age FROM others AS o '
        'WHERE (o.id = "user".id) RETURNING *'
    )


def test_update_without_alias_support_uses_table_name():
    sql = make_db(MSSQLDialect()).update(User(id=1, name="a", age=2)).render()
    assert sql == 'UPDATE "users" SET "name" = N\'a\', "age" = 2 WHERE ("users"."id" = 1)'


def test_update_without_where_is_rejected():
    with pytest.raises(QueryBuildError, match="without WHERE"):
        _pg().update(User).set_("age = 0").render()


def test_update_allow_unfiltered():
    sql = _pg().update(User).set_("age = 0").allow_unfiltered().render()
    assert sql == 'UPDATE "users" AS "user" SET age = 0'


def test_update_without_set_is_rejected():
    with pytest.raises(QueryBuildError, match="no SET"):
        _pg().update(User).where("id = 1").render()


def test_update_several_instances_needs_set():
    users = [User(id=1, name="a"), User(id=2, name="b")]
    with pytest.raises(QueryBuildError, match="explicit set_"):
        _pg().update(users).render()


def test_update_several_instances_with_set():
    users = [User(id=1, name="a"), User(id=2, name="b")]
    sql = _pg().update(users).set_("age = 0").render()
    assert sql.endswith('WHERE ("user"."id" IN (1, 2))')


@pytest.mark.asyncio
async def test_update_returning_writes_back():
    adapter = RecordingAdapter([[{"age": 5}]])
    user = User(id=1, name="a", age=2)
    await make_db(adapter=adapter).update(user).column("name").returning("age").execute()
    assert user.age == 5


# ---------------------------------------------------------------------------
# DELETE
# ---------------------------------------------------------------------------


def test_delete_instance():
    sql = _pg().delete(User(id=1, name="a")).render()
    assert sql == 'DELETE FROM "users" AS "user" WHERE ("user"."id" = 1)'


def test_delete_several_instances():
    sql = _pg().delete([User(id=1, name="a"), User(id=2, name="b")]).render()
    assert sql == 'DELETE FROM "users" AS "user" WHERE ("user"."id" IN (1, 2))'


def test_delete_mysql():
    sql = _my().delete(User(id=1, name="a")).render()
    assert sql == "DELETE FROM `users` AS `user` WHERE (`user`.`id` = 1)"


def test_delete_using():
    sql = _pg().delete(User).table_expr("banned AS b").where("b.user_id = ?TableAlias.id").render()
    assert sql == 'DELETE FROM "users" AS "user" USING banned AS b WHERE (b.user_id = "user".id)'


def test_delete_with_cte():
    db = _pg()
    old = db.select(User).column("id").where("age > 90")
    sql = db.delete(User).with_("old", old).where("?TableAlias.id IN (SELECT id FROM old)").render()
    assert sql.startswith('WITH "old" AS (SELECT "user"."id" FROM "users" AS "user" WHERE (age > 90)) DELETE FROM')


def test_delete_without_where_is_rejected():
    with pytest.raises(QueryBuildError, match="without WHERE"):
        _pg().delete(User).render()


def test_delete_allow_unfiltered():
    assert _pg().delete(User).allow_unfiltered().render() == 'DELETE FROM "users" AS "user"'


def test_delete_requires_model():
    with pytest.raises(NilModelError):
        _pg().delete().render()


def test_mutation_rejects_foreign_plan():
    db = _pg()
    with pytest.raises(QueryBuildError, match="DELETE cannot render a SelectPlan"):
        db.delete(User)._compile_plan(SelectPlan(), CompilationContext(db.dialect), None)
    with pytest.raises(QueryBuildError, match="UPDATE cannot render a DeletePlan"):
        db.update(User)._compile_plan(DeletePlan(), CompilationContext(db.dialect), None)
