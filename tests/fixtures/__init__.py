"""Test fixtures: sample models, the SQLite DDL and a recording adapter."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel

from brickorm import Database, DatabaseConfig
from brickorm.adapters.base import ExecResult
from brickorm.dialect import Dialect, PostgresDialect
from brickorm.schema import RelationSpec, belongs_to, has_many, has_one, many_to_many

_FIXTURES_DIR = Path(__file__).parent


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class User(BaseModel):
    __tablename__: ClassVar[str] = "users"
    __relations__: ClassVar[dict[str, RelationSpec]] = {
        "profile": has_one("Profile", join={"id": "user_id"}),
        "posts": has_many("Post", join={"id": "author_id"}),
    }

    id: int | None = None
    name: str
    age: int = 0
    profile: Profile | None = None
    posts: list[Post] = []


class Profile(BaseModel):
    __relations__: ClassVar[dict[str, RelationSpec]] = {
        "user": belongs_to("User"),
    }

    id: int | None = None
    user_id: int
    bio: str = ""
    user: User | None = None


class Post(BaseModel):
    __relations__: ClassVar[dict[str, RelationSpec]] = {
        "author": belongs_to("User", join={"author_id": "id"}),
        "tags": many_to_many("Tag", through="post_tags"),
    }

    id: int | None = None
    author_id: int
    title: str
    author: User | None = None
    tags: list[Tag] = []


class Tag(BaseModel):
    id: int | None = None
    name: str


User.model_rebuild()
Profile.model_rebuild()
Post.model_rebuild()

MODELS = (User, Profile, Post, Tag)


# ---------------------------------------------------------------------------
# Adapters and databases
# ---------------------------------------------------------------------------


class RecordingAdapter:
    """Records statements and answers them from canned rows.

    Args:
        results: Row lists returned in order; an empty list once exhausted.
        responder: Alternatively, computes the rows for each statement.
    """

    def __init__(
        self,
        results: list[list[dict[str, Any]]] | None = None,
        responder: Callable[[str], list[dict[str, Any]]] | None = None,
    ) -> None:
        self.statements: list[str] = []
        self._results = list(results or [])
        self._responder = responder

    async def execute(self, sql: str) -> ExecResult:
        self.statements.append(sql)
        if self._responder is not None:
            rows = self._responder(sql)
        elif self._results:
            rows = self._results.pop(0)
        else:
            rows = []
        return ExecResult(rows=rows, rowcount=len(rows))


def make_db(
    dialect: Dialect | None = None,
    adapter: Any = None,
    **config: Any,
) -> Database:
    """Return a database with the sample models registered."""
    dialect = dialect or PostgresDialect()
    db = Database(
        adapter if adapter is not None else RecordingAdapter(),
        dialect,
        DatabaseConfig(dialect=dialect.name, **config),
    )
    db.register_models(*MODELS)
    return db


def load_ddl(target: str = "sqlite") -> str:
    """Return the sample DDL for ``target``."""
    return (_FIXTURES_DIR / f"ddl_{target}.sql").read_text()
