"""Integration tests: render → execute against a real SQLite database.

Statements run through :class:`SQLAlchemyAdapter` on an aiosqlite engine, so
these tests check that the rendered SQL is accepted by SQLite and that rows
come back hydrated: inline joins, has-many and many-to-many follow-ups,
counts over grouped queries, both EXISTS forms, paging, RETURNING
write-back and pinned transactions.
"""
from __future__ import annotations

from typing import ClassVar

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from brickorm import Database, DatabaseConfig, Feature, SQLiteDialect
from brickorm.adapters.sqlalchemy import SQLAlchemyAdapter
from brickorm.errors import NoRowsError
from tests.fixtures import MODELS, Post, Profile, Tag, User, load_ddl

N_USERS = 4
POSTS_PER_USER = 3


class NoExistsSQLiteDialect(SQLiteDialect):
    """SQLite without the native EXISTS select, to exercise the fallback form."""

    features: ClassVar[Feature] = SQLiteDialect.features & ~Feature.SELECT_EXISTS


@pytest.fixture()
async def adapter(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'brickorm.db'}")
    async with engine.begin() as conn:
        for statement in load_ddl("sqlite").split(";"):
            if statement.strip():
                await conn.exec_driver_sql(statement)
    adapter = SQLAlchemyAdapter(engine)
    yield adapter
    await adapter.dispose()


def _db(adapter, dialect=None) -> Database:
    dialect = dialect or SQLiteDialect()
    db = Database(adapter, dialect, DatabaseConfig(dialect="sqlite"))
    db.register_models(*MODELS)
    return db


@pytest.fixture()
async def seeded(adapter):
    db = _db(adapter)
    users = [User(name=f"user{i}", age=20 + i % 2) for i in range(N_USERS)]
    await db.insert(users).execute()

    posts = [
        Post(author_id=u.id, title=f"{u.name}-post{j}")
        for u in users
        for j in range(POSTS_PER_USER)
    ]
    await db.insert(posts).execute()

    await db.insert(Profile(user_id=users[0].id, bio="first")).execute()

    tags = [Tag(name="red"), Tag(name="blue")]
    await db.insert(tags).execute()
    links = ", ".join(f"({posts[0].id}, {t.id})" for t in tags) + f", ({posts[1].id}, {tags[0].id})"
    await adapter.execute(f"INSERT INTO post_tags (post_id, tag_id) VALUES {links}")
    return db


# ---------------------------------------------------------------------------
# Inserts and scans
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_insert_returning_writes_back_ids(seeded):
    users = await seeded.select(User).order("id").scan()
    assert [u.id for u in users] == [1, 2, 3, 4]
    assert users[0].name == "user0"


@pytest.mark.asyncio
async def test_scan_with_filter(seeded):
    users = await seeded.select(User).where("?TableAlias.age = ?", 21).order("id").scan()
    assert [u.name for u in users] == ["user1", "user3"]


@pytest.mark.asyncio
async def test_scan_one_and_no_rows(seeded):
    user = await seeded.select(User).where("?TableAlias.name = ?", "user2").scan_one()
    assert user.age == 20
    with pytest.raises(NoRowsError):
        await seeded.select(User).where("?TableAlias.name = ?", "ghost").scan_one()


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_inline_has_one(seeded):
    users = await seeded.select(User).relation("profile").order("id").scan()
    assert users[0].profile.bio == "first"
    assert all(u.profile is None for u in users[1:])


@pytest.mark.asyncio
async def test_inline_belongs_to(seeded):
    posts = await seeded.select(Post).relation("author").order("id").scan()
    assert posts[0].author.name == "user0"
    assert posts[-1].author.name == f"user{N_USERS - 1}"


@pytest.mark.asyncio
async def test_has_many_fan_out(seeded):
    users = await seeded.select(User).relation("posts", lambda q: q.order("id")).order("id").scan()
    assert len(users) == N_USERS
    for user in users:
        assert len(user.posts) == POSTS_PER_USER
        assert all(p.author_id == user.id for p in user.posts)


@pytest.mark.asyncio
async def test_many_to_many(seeded):
    posts = await seeded.select(Post).relation("tags", lambda q: q.order("id")).order("id").scan()
    assert [t.name for t in posts[0].tags] == ["red", "blue"]
    assert [t.name for t in posts[1].tags] == ["red"]
    assert posts[2].tags == []


@pytest.mark.asyncio
async def test_nested_relations(seeded):
    users = await (
        seeded.select(User)
        .relation("profile")
        .relation("posts.tags")
        .where("?TableAlias.id = ?", 1)
        .scan()
    )
    (user,) = users
    assert user.profile.bio == "first"
    first = min(user.posts, key=lambda p: p.id)
    assert len(first.tags) == 2


# ---------------------------------------------------------------------------
# Count, exists, paging
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_count(seeded):
    assert await seeded.select(User).count() == N_USERS
    assert await seeded.select(Post).where("?TableAlias.author_id = ?", 1).count() == POSTS_PER_USER


@pytest.mark.asyncio
async def test_count_of_groups(seeded):
    q = seeded.select(User).column("age").group("age")
    assert await q.count() == 2


@pytest.mark.asyncio
async def test_count_of_distinct(seeded):
    assert await seeded.select(User).distinct().column("age").count() == 2


@pytest.mark.asyncio
async def test_exists_native(seeded):
    assert await seeded.select(User).where("?TableAlias.id = ?", 1).exists() is True
    assert await seeded.select(User).where("?TableAlias.id = ?", 99).exists() is False


@pytest.mark.asyncio
async def test_exists_fallback_form(adapter, seeded):
    db = _db(adapter, NoExistsSQLiteDialect())
    assert db.select(User).exists_mode().name == "WHERE_EXISTS"
    assert await db.select(User).where("?TableAlias.id = ?", 1).exists() is True
    assert await db.select(User).where("?TableAlias.id = ?", 99).exists() is False


@pytest.mark.asyncio
async def test_scan_and_count_paged(seeded):
    users, total = await seeded.select(User).order("id").limit(2).offset(1).scan_and_count()
    assert [u.id for u in users] == [2, 3]
    assert total == N_USERS


@pytest.mark.asyncio
async def test_union(seeded):
    young = seeded.select(User).column("name").where("?TableAlias.age = ?", 20)
    old = seeded.select(User).column("name").where("?TableAlias.age = ?", 21)
    rows = await young.union(old).rows()
    assert sorted(r["name"] for r in rows) == [f"user{i}" for i in range(N_USERS)]


# ---------------------------------------------------------------------------
# Updates, deletes, transactions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_and_delete(seeded):
    user = await seeded.select(User).where("?TableAlias.id = ?", 2).scan_one()
    user.name = "renamed"
    result = await seeded.update(user).column("name").execute()
    assert result.rowcount == 1

    again = await seeded.select(User).where("?TableAlias.id = ?", 2).scan_one()
    assert again.name == "renamed"

    await seeded.delete(Post).where("?TableAlias.author_id = ?", 2).execute()
    assert await seeded.select(Post).where("?TableAlias.author_id = ?", 2).count() == 0


@pytest.mark.asyncio
async def test_upsert(seeded):
    await seeded.insert(User(id=1, name="upserted", age=99)).on("CONFLICT (id) DO UPDATE").execute()
    user = await seeded.select(User).where("?TableAlias.id = ?", 1).scan_one()
    assert (user.name, user.age) == ("upserted", 99)
    assert await seeded.select(User).count() == N_USERS


@pytest.mark.asyncio
async def test_pinned_transaction_rolls_back(adapter, seeded):
    with pytest.raises(RuntimeError):
        async with adapter.connect() as conn:
            await seeded.insert(User(name="temp")).conn(conn).execute()
            assert await seeded.select(User).conn(conn).count() == N_USERS + 1
            raise RuntimeError("abort")
    assert await seeded.select(User).count() == N_USERS
