"""Table, field and relation metadata.

Models are plain pydantic models that describe their table with a few
class-level declarations::

    class User(BaseModel):
        __tablename__: ClassVar[str] = "users"
        __relations__: ClassVar[dict[str, RelationSpec]] = {
            "profile": has_one("Profile", join={"id": "user_id"}),
            "posts": has_many("Post", join={"id": "author_id"}),
        }

        id: int
        name: str
        profile: Profile | None = None
        posts: list[Post] = []

Optional declarations: ``__alias__`` (default: snake-cased class name),
``__pk__`` (default: ``("id",)`` when the model has an ``id`` field) and
``__soft_delete__``, the name of a nullable column marking deleted rows.
Queries on a soft-delete model only see rows where that column is NULL
unless they call ``where_deleted()`` or ``where_all_with_deleted()``.

``RelationSpec`` is the user-facing declaration (a pydantic model, like the
rest of the public schema types).  :class:`Table`, :class:`Field` and
:class:`Relation` are the resolved runtime metadata produced by
:class:`~brickorm.schema.tables.Tables`; they reference model classes and
each other, so they are dataclasses rather than pydantic models.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from brickorm.schema.tables import Tables


class RelationKind(str, enum.Enum):
    """The four supported relationship kinds."""

    HAS_ONE = "has-one"
    BELONGS_TO = "belongs-to"
    HAS_MANY = "has-many"
    MANY_TO_MANY = "many-to-many"

    @property
    def is_inline(self) -> bool:
        """To-one relations are folded into the primary statement."""
        return self in (RelationKind.HAS_ONE, RelationKind.BELONGS_TO)


class RelationSpec(BaseModel):
    """Declaration of one relationship on a model.

    Attributes:
        kind: Relationship kind.
        model: Related model class, or its class name when declared before
            the related class exists.
        join: Maps owner columns to related columns (``{"id": "user_id"}``).
            For many-to-many relations the values are columns of the
            ``through`` table.
        through: Join table name (many-to-many only).
        through_alias: Alias for the join table; defaults to ``through``.
        through_join: Maps ``through`` columns to related columns
            (many-to-many only).
        conditions: Static SQL conditions applied whenever the relation is
            loaded.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    kind: RelationKind
    model: Union[str, type]
    join: dict[str, str] | None = None
    through: str | None = None
    through_alias: str | None = None
    through_join: dict[str, str] | None = None
    conditions: tuple[str, ...] = ()


def has_one(model: str | type, join: dict[str, str] | None = None, conditions: tuple[str, ...] = ()) -> RelationSpec:
    """Owner's key is referenced by exactly one related row."""
    return RelationSpec(kind=RelationKind.HAS_ONE, model=model, join=join, conditions=conditions)


def belongs_to(model: str | type, join: dict[str, str] | None = None, conditions: tuple[str, ...] = ()) -> RelationSpec:
    """Owner holds the foreign key of one related row."""
    return RelationSpec(kind=RelationKind.BELONGS_TO, model=model, join=join, conditions=conditions)


def has_many(model: str | type, join: dict[str, str] | None = None, conditions: tuple[str, ...] = ()) -> RelationSpec:
    """Owner's key is referenced by any number of related rows."""
    return RelationSpec(kind=RelationKind.HAS_MANY, model=model, join=join, conditions=conditions)


def many_to_many(
    model: str | type,
    through: str,
    join: dict[str, str] | None = None,
    through_join: dict[str, str] | None = None,
    through_alias: str | None = None,
    conditions: tuple[str, ...] = (),
) -> RelationSpec:
    """Owner and related rows are linked through the ``through`` table."""
    return RelationSpec(
        kind=RelationKind.MANY_TO_MANY,
        model=model,
        through=through,
        through_alias=through_alias,
        join=join,
        through_join=through_join,
        conditions=conditions,
    )


# ---------------------------------------------------------------------------
# Resolved metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Field:
    """One mapped column.

    Attributes:
        name: Model attribute name, also the column name.
        sql_name: Dialect-quoted column name.
        is_pk: Whether the column is part of the primary key.
        required: Whether the model field has no default.
    """

    name: str
    sql_name: str
    is_pk: bool = False
    required: bool = True


@dataclass(frozen=True, eq=False)
class Relation:
    """A resolved relationship edge from ``table`` to ``join_table``.

    ``base_fields[i]`` on the owner matches ``join_fields[i]`` on the related
    table.  For many-to-many relations ``m2m_base_columns[i]`` (a column of
    the join table) matches ``base_fields[i]`` and ``m2m_join_columns[i]``
    matches ``join_fields[i]``.
    """

    name: str
    kind: RelationKind
    table: Table
    join_table: Table
    base_fields: tuple[Field, ...]
    join_fields: tuple[Field, ...]
    conditions: tuple[str, ...] = ()
    m2m_table: str | None = None
    m2m_alias: str | None = None
    m2m_base_columns: tuple[str, ...] = ()
    m2m_join_columns: tuple[str, ...] = ()

    @property
    def is_inline(self) -> bool:
        return self.kind.is_inline


@dataclass(eq=False)
class Table:
    """Metadata for one model class.

    Attributes:
        model: The pydantic model class.
        name: Table name.
        alias: Default table alias.
        sql_name: Quoted table name.
        sql_alias: Quoted alias.
        fields: Ordered column fields.
        pk_fields: Primary-key fields in declaration order.
        relation_specs: Declared relations by attribute name.
        soft_delete_field: Column marking soft-deleted rows, if declared.
    """

    model: type
    name: str
    alias: str
    sql_name: str
    sql_alias: str
    fields: tuple[Field, ...]
    pk_fields: tuple[Field, ...]
    relation_specs: dict[str, RelationSpec] = field(default_factory=dict)
    soft_delete_field: Field | None = None
    field_map: dict[str, Field] = field(init=False)
    _tables: Tables | None = field(default=None, repr=False)
    _relations: dict[str, Relation] | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.field_map = {f.name: f for f in self.fields}

    @property
    def relations(self) -> dict[str, Relation]:
        """Resolved relations, computed once on first access."""
        if self._relations is None:
            if self._tables is None:
                return {}
            self._relations = self._tables.resolve_relations(self)
        return self._relations

    def relation(self, name: str) -> Relation | None:
        return self.relations.get(name)

    def has_field(self, name: str) -> bool:
        return name in self.field_map

    def new_instance(self, data: dict[str, Any]) -> Any:
        """Build a model instance from column values.

        Rows that carry every required field are validated (so backend
        representations such as SQLite's 0/1 booleans are coerced); partial
        rows produced by narrowed column lists are constructed without
        validation.
        """
        model: type[BaseModel] = self.model
        missing = [f.name for f in self.fields if f.required and f.name not in data]
        if missing:
            return model.model_construct(**data)
        return model.model_validate(data)

    def __repr__(self) -> str:
        return f"Table(name={self.name!r}, alias={self.alias!r})"
