"""brickORM schema layer: SQL fragments and table metadata."""
from brickorm.schema.fragment import (
    Cast,
    Ident,
    In,
    QueryWithArgs,
    QueryWithSep,
    Safe,
    WhereGroup,
)
from brickorm.schema.table import (
    Field,
    Relation,
    RelationKind,
    RelationSpec,
    Table,
    belongs_to,
    has_many,
    has_one,
    many_to_many,
)
from brickorm.schema.tables import Tables

__all__ = [
    "Cast",
    "Ident",
    "In",
    "QueryWithArgs",
    "QueryWithSep",
    "Safe",
    "WhereGroup",
    "Field",
    "Relation",
    "RelationKind",
    "RelationSpec",
    "Table",
    "Tables",
    "belongs_to",
    "has_many",
    "has_one",
    "many_to_many",
]
